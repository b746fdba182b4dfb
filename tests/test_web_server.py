"""
Web Server Tests
End-to-end tests of the provisioning endpoints through aiohttp's test client
"""

import json
import pytest
import httpx
from aiohttp import test_utils

from conftest import ZONE_ERROR_BODY, ProvisioningPayloadFactory
from localization import bilingual, t
from service_config import ServiceConfig
from services.provisioning_orchestrator import ProvisioningOrchestrator
from web_server import create_app

BASE = '/cloudflare/v1'
PROXY_HEADERS = {'X-Real-IP': '203.0.113.7'}


@pytest.fixture
async def make_client(mock_cloudflare_transport):
    """Start the app against the mocked Cloudflare transport"""
    clients = []

    async def factory(config, translator=None):
        app = create_app(config, ProvisioningOrchestrator(config, translator))
        client = test_utils.TestClient(test_utils.TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()


@pytest.fixture(autouse=True)
def fresh_health_monitor(monkeypatch):
    monkeypatch.setattr('health_monitor._health_monitor', None)


@pytest.mark.asyncio
class TestProvisioningEndpoint:
    """POST /domain"""

    async def test_successful_provisioning_returns_204(self, make_client, service_config,
                                                       translator, mock_cloudflare_transport):
        client = await make_client(service_config, translator)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)

        assert response.status == 204
        assert await response.read() == b''
        assert len(mock_cloudflare_transport['requests']) == 3
        translator.translate.assert_not_called()

    async def test_redirect_provisioning_issues_five_calls(self, make_client, service_config,
                                                          mock_cloudflare_transport):
        client = await make_client(service_config)

        response = await client.post(
            f'{BASE}/domain', json=ProvisioningPayloadFactory(domain_redirect=True), headers=PROXY_HEADERS
        )

        assert response.status == 204
        paths = [request.url.path for request in mock_cloudflare_transport['requests']]
        assert len(paths) == 5
        assert sum(path.endswith('/dns_records') for path in paths) == 2

    async def test_cloudflare_rejection_is_reported_bilingually(self, make_client, service_config,
                                                               translator, mock_cloudflare_transport):
        def reject_dns(request):
            if request.url.path.endswith('/dns_records'):
                return httpx.Response(400, json=ZONE_ERROR_BODY)
            return httpx.Response(200, json={'success': True, 'errors': [], 'messages': []})
        mock_cloudflare_transport['handler'] = reject_dns
        client = await make_client(service_config, translator)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)

        assert response.status == 400
        assert await response.json() == {
            'status': 400,
            'error_code': 'CF1005',
            'message': 'Error code: 1003, more details on user_message',
            'user_message': {
                'en_us': 'Invalid or missing zone id.',
                'pt_br': 'ID de zona inválido ou ausente.'
            },
            'more_info': None
        }
        translator.translate.assert_awaited_once()

    async def test_translation_failure_still_answers(self, make_client, service_config,
                                                    failing_translator, mock_cloudflare_transport):
        mock_cloudflare_transport['handler'] = lambda request: httpx.Response(400, json=ZONE_ERROR_BODY)
        client = await make_client(service_config, failing_translator)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 400
        assert body['error_code'] == 'CF1005'
        assert body['user_message'] == {'en_us': 'Invalid or missing zone id.'}

    async def test_invalid_body_makes_no_cloudflare_calls(self, make_client, service_config,
                                                         mock_cloudflare_transport):
        payload = ProvisioningPayloadFactory()
        del payload['credentials']['zone_id']
        client = await make_client(service_config)

        response = await client.post(f'{BASE}/domain', data=json.dumps(payload), headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 400
        assert body['error_code'] == 'CF1001'
        assert body['message'] == t('errors.bad_formatted_body')
        assert body['more_info'] == '/domain/schema.json'
        assert "should have required property 'zone_id'" in body['user_message']['en_us']
        assert 'zone_id' in body['user_message']['pt_br']
        assert mock_cloudflare_transport['requests'] == []

    async def test_cloudflare_unreachable(self, make_client, service_config, mock_cloudflare_transport):
        def refuse(request):
            raise httpx.ConnectError('Connection refused', request=request)
        mock_cloudflare_transport['handler'] = refuse
        client = await make_client(service_config)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 500
        assert body['error_code'] == 'CF1004'
        assert body['user_message'] == bilingual('errors.provider_transport')

    async def test_invalid_json_on_200_is_reported_as_failure(self, make_client, service_config,
                                                            mock_cloudflare_transport):
        def html_for_page_rules(request):
            if request.url.path.endswith('/pagerules'):
                return httpx.Response(200, text='<html>oops</html>')
            return httpx.Response(200, json={'success': True, 'errors': [], 'messages': []})
        mock_cloudflare_transport['handler'] = html_for_page_rules
        client = await make_client(service_config)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 502
        assert body['status'] == 502
        assert body['error_code'] == 'CF1007'
        assert body['message'] == t('errors.provider_invalid_json')
        assert body['user_message'] == bilingual('errors.provider_invalid_json')

    async def test_resource_id_on_post_is_rejected(self, make_client, service_config, mock_cloudflare_transport):
        client = await make_client(service_config)

        response = await client.post(f'{BASE}/domain/42', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 406
        assert body['error_code'] == 'CF1002'
        assert body['message'] == t('errors.unexpected_resource_id')
        assert body['user_message'] == bilingual('errors.unexpected')
        assert mock_cloudflare_transport['requests'] == []


@pytest.mark.asyncio
class TestSchemaEndpoint:
    """GET /domain"""

    @pytest.mark.parametrize('path', ['/domain/schema', '/domain/schema.json'])
    async def test_schema_is_served(self, path, make_client, service_config):
        client = await make_client(service_config)

        response = await client.get(f'{BASE}{path}', headers=PROXY_HEADERS)
        schema = await response.json()

        assert response.status == 200
        assert 'credentials' in schema['properties']

    @pytest.mark.parametrize('path', ['/domain', '/domain/42'])
    async def test_other_gets_are_not_acceptable(self, path, make_client, service_config):
        client = await make_client(service_config)

        response = await client.get(f'{BASE}{path}', headers=PROXY_HEADERS)
        body = await response.json()

        assert response.status == 406
        assert body['error_code'] == 'CF1003'
        assert body['message'] == t('errors.get_schema_only')


@pytest.mark.asyncio
class TestProxyGuard:
    """Requests that did not come through the reverse proxy"""

    async def test_missing_real_ip_is_forbidden(self, make_client, service_config, mock_cloudflare_transport):
        client = await make_client(service_config)

        response = await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory())
        body = await response.json()

        assert response.status == 403
        assert body['error_code'] == 100
        assert mock_cloudflare_transport['requests'] == []

    async def test_wrong_proxy_secret_is_unauthorized(self, make_client):
        config = ServiceConfig(yandex_api_key='test-yandex-key', proxy_auth='s3cret')
        client = await make_client(config)

        response = await client.get(
            f'{BASE}/domain/schema', headers=dict(PROXY_HEADERS, **{'X-Authentication': 'guess'})
        )
        body = await response.json()

        assert response.status == 401
        assert body['error_code'] == 101

    async def test_matching_proxy_secret_is_accepted(self, make_client):
        config = ServiceConfig(yandex_api_key='test-yandex-key', proxy_auth='s3cret')
        client = await make_client(config)

        response = await client.get(
            f'{BASE}/domain/schema', headers=dict(PROXY_HEADERS, **{'X-Authentication': 's3cret'})
        )

        assert response.status == 200


@pytest.mark.asyncio
class TestHealthEndpoint:
    """GET /health"""

    async def test_health_reports_runs_and_errors(self, make_client, service_config, mock_cloudflare_transport):
        mock_cloudflare_transport['handler'] = lambda request: httpx.Response(400, json=ZONE_ERROR_BODY)
        client = await make_client(service_config)
        await client.post(f'{BASE}/domain', json=ProvisioningPayloadFactory(), headers=PROXY_HEADERS)

        response = await client.get('/health')
        body = await response.json()

        assert response.status == 200
        assert body['service'] == 'cloudflare_domain_provisioner'
        assert body['checks']['provisioning_runs'] == 1
        assert body['checks']['error_count_1h'] == 1
        assert 'CF1005' in body['checks']['last_error']['message']
