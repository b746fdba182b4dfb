"""
Cloudflare Client Tests
Tests for request signing, body parsing and transport failures as outcomes
"""

import json
import logging
import pytest
import httpx

from services.cloudflare import CloudflareService
from services.provisioning_models import CallSpec, ERROR_KIND_TIMEOUT, ERROR_KIND_TRANSPORT

CALL = CallSpec(
    path='/zones/0123456789abcdef0123456789abcdef/dns_records',
    payload={'type': 'A', 'name': 'store', 'content': '174.138.108.73', 'proxied': True},
    label='subdomain_dns_record'
)


def make_service():
    return CloudflareService(email=' owner@shop.com ', api_key='a' * 37)


@pytest.mark.asyncio
class TestCloudflareRequests:
    """Outgoing request shape"""

    async def test_request_is_signed_and_posted(self, mock_cloudflare_transport):
        outcome = await make_service().send(CALL)

        request = mock_cloudflare_transport['requests'][0]
        assert request.method == 'POST'
        assert str(request.url) == (
            'https://api.cloudflare.com/client/v4/zones/0123456789abcdef0123456789abcdef/dns_records'
        )
        assert request.headers['X-Auth-Email'] == 'owner@shop.com'
        assert request.headers['X-Auth-Key'] == 'a' * 37
        assert request.headers['Content-Type'] == 'application/json'
        assert json.loads(request.content) == CALL.payload
        assert outcome.succeeded

    async def test_custom_base_url(self, mock_cloudflare_transport):
        service = CloudflareService(email='owner@shop.com', api_key='b' * 37, base_url='http://cf.test/v4/')
        await service.send(CALL)

        assert str(mock_cloudflare_transport['requests'][0].url).startswith('http://cf.test/v4/zones/')


@pytest.mark.asyncio
class TestCloudflareOutcomes:
    """Responses and failures reported as CallOutcome"""

    async def test_error_response_is_parsed(self, mock_cloudflare_transport):
        body = {'success': False, 'errors': [{'code': 1003, 'message': 'Invalid or missing zone id.'}]}
        mock_cloudflare_transport['handler'] = lambda request: httpx.Response(400, json=body)

        outcome = await make_service().send(CALL)

        assert outcome.status_code == 400
        assert outcome.parsed == body
        assert not outcome.succeeded
        assert outcome.error_kind is None

    async def test_invalid_json_is_marked(self, mock_cloudflare_transport, caplog):
        mock_cloudflare_transport['handler'] = lambda request: httpx.Response(200, text='<html>502</html>')

        with caplog.at_level(logging.INFO, logger='services.cloudflare'):
            outcome = await make_service().send(CALL)

        assert outcome.status_code == 200
        assert outcome.is_parse_error
        assert outcome.raw_body == '<html>502</html>'
        assert not outcome.succeeded
        assert 'invalid JSON' in caplog.text
        assert 'succeeded' not in caplog.text

    async def test_connection_error_is_transport_outcome(self, mock_cloudflare_transport):
        def refuse(request):
            raise httpx.ConnectError('Connection refused', request=request)
        mock_cloudflare_transport['handler'] = refuse

        outcome = await make_service().send(CALL)

        assert outcome.error_kind == ERROR_KIND_TRANSPORT
        assert outcome.status_code is None
        assert 'Connection refused' in outcome.error

    async def test_timeout_is_timeout_outcome(self, mock_cloudflare_transport):
        def slow(request):
            raise httpx.ReadTimeout('timed out', request=request)
        mock_cloudflare_transport['handler'] = slow

        outcome = await make_service().send(CALL)

        assert outcome.error_kind == ERROR_KIND_TIMEOUT
        assert not outcome.succeeded


@pytest.mark.asyncio
class TestClientLifecycle:
    """Shared connection pool"""

    async def test_client_is_reused_and_closed(self):
        await CloudflareService.close_client()
        first = await CloudflareService.get_client()
        second = await CloudflareService.get_client()
        assert first is second

        await CloudflareService.close_client()
        assert first.is_closed
        assert CloudflareService._client is None
