"""
Shared test fixtures for the Cloudflare domain provisioner test suite
Provides request payload factories, scripted Cloudflare clients and translators
"""

import os
import json
import secrets
import asyncio
import logging
import pytest
import factory
from factory.faker import Faker
from factory.declarations import LazyFunction, SubFactory
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx

from request_validation import ProvisioningRequest
from service_config import ServiceConfig
from services.cloudflare import CloudflareService
from services.provisioning_models import CallOutcome, CallSpec, PARSE_ERROR
from services.translator import TranslationError

# Configure test logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)

# Test environment configuration
test_env_vars = {
    'FATAL_LOG_PATH': os.path.join(os.getenv('TMPDIR', '/tmp'), 'provisioner_test_stderr'),
}
for key, value in test_env_vars.items():
    os.environ[key] = str(value)


# Test data factories
class CredentialsFactory(factory.Factory):  # type: ignore[misc]
    """Factory for Cloudflare credentials as sent in the request body"""
    class Meta:  # type: ignore[misc]
        model = dict

    api_key = LazyFunction(lambda: secrets.token_hex(20))
    email = Faker('email')
    zone_id = LazyFunction(lambda: secrets.token_hex(16))


class ProvisioningPayloadFactory(factory.Factory):  # type: ignore[misc]
    """Factory for POST /domain bodies"""
    class Meta:  # type: ignore[misc]
        model = dict

    domain = 'shop.com'
    subdomain = 'store'
    domain_redirect = False
    credentials = SubFactory(CredentialsFactory)


ZONE_ERROR_BODY = {
    'result': None,
    'success': False,
    'errors': [{'code': 1003, 'message': 'Invalid or missing zone id.'}],
    'messages': []
}


def make_outcome(call: CallSpec, status: int = 200, body: Any = None,
                 error_kind: Optional[str] = None) -> CallOutcome:
    """Build a CallOutcome the way CloudflareService.send would"""
    if error_kind is not None:
        return CallOutcome(call=call, error_kind=error_kind, error='boom')
    if body is None:
        body = {'success': True, 'errors': [], 'messages': [], 'result': {}}
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except ValueError:
            parsed = PARSE_ERROR
        return CallOutcome(call=call, status_code=status, raw_body=body, parsed=parsed)
    return CallOutcome(call=call, status_code=status, raw_body=json.dumps(body), parsed=body)


class ScriptedCloudflareClient:
    """
    Stand-in for CloudflareService.send

    Responses are scripted per call label; a label with a gate waits for
    that asyncio.Event before answering so tests control completion order.
    """

    def __init__(self, responses: Optional[Dict[str, Dict[str, Any]]] = None,
                 gates: Optional[Dict[str, asyncio.Event]] = None):
        self.responses = responses or {}
        self.gates = gates or {}
        self.sent: List[CallSpec] = []
        self.finished: List[str] = []

    async def send(self, call: CallSpec) -> CallOutcome:
        self.sent.append(call)
        gate = self.gates.get(call.label)
        if gate is not None:
            await gate.wait()
        script = self.responses.get(call.label, {})
        if 'raise' in script:
            raise script['raise']
        outcome = make_outcome(call, script.get('status', 200), script.get('body'), script.get('error_kind'))
        self.finished.append(call.label)
        return outcome


def build_request(**overrides):
    """Validated ProvisioningRequest from a factory payload"""
    return ProvisioningRequest.model_validate_json(json.dumps(ProvisioningPayloadFactory(**overrides)))


@pytest.fixture
def payload_factory():
    return ProvisioningPayloadFactory


@pytest.fixture
def service_config():
    return ServiceConfig(yandex_api_key='test-yandex-key', fatal_log_path=os.environ['FATAL_LOG_PATH'])


@pytest.fixture
def translator():
    """Translator mock that always succeeds"""
    mock = AsyncMock()
    mock.translate = AsyncMock(return_value='ID de zona inválido ou ausente.')
    return mock


@pytest.fixture
def failing_translator():
    mock = AsyncMock()
    mock.translate = AsyncMock(side_effect=TranslationError('quota exceeded'))
    return mock


@pytest.fixture
async def mock_cloudflare_transport():
    """
    Route CloudflareService through an httpx.MockTransport

    Yields a dict whose 'handler' entry tests replace; requests are recorded
    in 'requests'.
    """
    state: Dict[str, Any] = {
        'requests': [],
        'handler': lambda request: httpx.Response(200, json={'success': True, 'errors': [], 'messages': []}),
    }

    def dispatch(request: httpx.Request) -> httpx.Response:
        state['requests'].append(request)
        return state['handler'](request)

    await CloudflareService.close_client()
    CloudflareService._client = httpx.AsyncClient(transport=httpx.MockTransport(dispatch))
    try:
        yield state
    finally:
        await CloudflareService.close_client()
