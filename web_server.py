"""
HTTP server for the Cloudflare domain provisioner
Receives requests from Nginx by reverse proxy under /cloudflare/v1/
"""

import time
import uuid
import logging
from typing import Optional

from aiohttp import web
from aiohttp.web_request import Request
from aiohttp.web_response import Response

from health_monitor import get_health_monitor, log_error
from localization import bilingual, t
from message_utils import Responder
from request_validation import get_request_schema, validate_provisioning_request
from service_config import ServiceConfig
from services.cloudflare import CloudflareService
from services.provisioning_models import ErrorCode
from services.provisioning_orchestrator import ProvisioningOrchestrator
from services.translator import YandexTranslator

logger = logging.getLogger(__name__)

# Suppress aiohttp access logs for successful requests but keep errors
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

CONFIG_KEY = web.AppKey('config', ServiceConfig)
ORCHESTRATOR_KEY = web.AppKey('orchestrator', ProvisioningOrchestrator)


def _resource_id(request: Request) -> Optional[str]:
    """Resource id from the URL, without a trailing .json extension"""
    resource_id = request.match_info.get('resource_id')
    if resource_id and resource_id.endswith('.json'):
        resource_id = resource_id[:-len('.json')]
    return resource_id or None


@web.middleware
async def proxy_guard_middleware(request: Request, handler):
    """Only requests forwarded by the reverse proxy reach the endpoints"""
    config = request.app[CONFIG_KEY]
    if not request.path.startswith(config.base_uri):
        return await handler(request)

    responder = Responder(request.headers.get('X-Request-ID'))
    if config.proxy_auth and request.headers.get('X-Authentication') != config.proxy_auth:
        logger.warning(f"🚫 Proxy authentication failed for {request.method} {request.path}")
        return responder({}, None, 401, ErrorCode.PROXY_AUTH, t('errors.proxy_auth'),
                         bilingual('errors.proxy_auth'))

    if not isinstance(request.headers.get('X-Real-IP'), str):
        logger.warning(f"🚫 Rejected request without X-Real-IP: {request.method} {request.path}")
        return responder({}, None, 403, ErrorCode.UNKNOWN_IP, t('errors.unknown_ip'),
                         bilingual('errors.unknown_ip'))

    return await handler(request)


async def post_domain_handler(request: Request) -> Response:
    """Provision a store subdomain"""
    responder = Responder(request.headers.get('X-Request-ID') or uuid.uuid4().hex[:12])

    if _resource_id(request):
        responder({}, None, 406, ErrorCode.UNEXPECTED_ID, t('errors.unexpected_resource_id'))
        return responder.response

    body = await request.read()
    provisioning_request, failure = validate_provisioning_request(body)
    if failure is not None:
        responder.fail(failure)
        return responder.response

    monitor = get_health_monitor()
    monitor.record_run()
    outcome = await request.app[ORCHESTRATOR_KEY].provision(provisioning_request)
    if not outcome.success:
        log_error(f"{outcome.failure.error_code}: {outcome.failure.dev_message}")

    responder.emit(outcome)
    return responder.response


async def get_domain_handler(request: Request) -> Response:
    """GET is only acceptable for the request JSON schema"""
    responder = Responder(request.headers.get('X-Request-ID'))
    if _resource_id(request) == 'schema':
        responder(get_request_schema())
    else:
        responder({}, None, 406, ErrorCode.GET_NOT_ACCEPTABLE, t('errors.get_schema_only'))
    return responder.response


async def health_handler(request: Request) -> Response:
    health = get_health_monitor().get_health_status()
    orchestrator = request.app[ORCHESTRATOR_KEY]
    response_data = {
        'status': health['overall'],
        'service': 'cloudflare_domain_provisioner',
        'timestamp': time.time(),
        'orphaned_calls': orchestrator.in_flight,
        'checks': health
    }
    status_code = 503 if health['overall'] == 'critical' else 200
    return web.json_response(response_data, status=status_code)


async def _on_cleanup(app: web.Application):
    await app[ORCHESTRATOR_KEY].drain()
    await CloudflareService.close_client()
    logger.info("✅ Cloudflare client closed")


def create_app(config: ServiceConfig, orchestrator: Optional[ProvisioningOrchestrator] = None) -> web.Application:
    """Build the aiohttp application with its routes"""
    if orchestrator is None:
        translator = YandexTranslator(config.yandex_api_key, timeout=config.translator_timeout)
        orchestrator = ProvisioningOrchestrator(config, translator)

    app = web.Application(middlewares=[proxy_guard_middleware])
    app[CONFIG_KEY] = config
    app[ORCHESTRATOR_KEY] = orchestrator

    base = config.base_uri.rstrip('/')
    app.router.add_post(f'{base}/domain', post_domain_handler)
    app.router.add_post(f'{base}/domain/{{resource_id}}', post_domain_handler)
    app.router.add_get(f'{base}/domain', get_domain_handler)
    app.router.add_get(f'{base}/domain/{{resource_id}}', get_domain_handler)
    app.router.add_get('/health', health_handler)

    app.on_cleanup.append(_on_cleanup)
    return app


async def start_web_server(config: ServiceConfig) -> web.AppRunner:
    """Start the aiohttp server in the running event loop"""
    try:
        app = create_app(config)
        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(runner, config.host, config.port)
        await site.start()

        logger.info(f"✅ Web server started on http://{config.host}:{config.port}{config.base_uri}")
        return runner

    except Exception as e:
        logger.error(f"❌ Failed to start web server: {e}")
        raise


async def stop_web_server(runner: web.AppRunner):
    await runner.cleanup()
    logger.info("✅ Web server stopped")
