"""
Cloudflare API client used for subdomain provisioning
Sends one authenticated request per call and reports every result as data
"""

import json
import logging
import asyncio
import httpx  # HTTP client for Cloudflare API
from typing import Optional

from service_config import DEFAULT_CLOUDFLARE_API_BASE
from services.provisioning_models import (
    CallOutcome, CallSpec, PARSE_ERROR, ERROR_KIND_TIMEOUT, ERROR_KIND_TRANSPORT
)

logger = logging.getLogger(__name__)

class CloudflareService:
    """Cloudflare API service bound to one account's credentials"""
    _client: Optional[httpx.AsyncClient] = None

    def __init__(self, email: str, api_key: str, base_url: str = DEFAULT_CLOUDFLARE_API_BASE,
                 timeout: float = 30.0):
        self.email = email
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {
            'X-Auth-Email': self.email.strip(),
            'X-Auth-Key': self.api_key.strip(),
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'User-Agent': 'Cloudflare-Domain-Provisioner/1.0'
        }

    @classmethod
    async def get_client(cls) -> httpx.AsyncClient:
        """Get or create persistent HTTP client with connection pooling"""
        if cls._client is None or cls._client.is_closed:
            limits = httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
                keepalive_expiry=30
            )
            cls._client = httpx.AsyncClient(limits=limits)
        return cls._client

    @classmethod
    async def close_client(cls):
        """Close HTTP client for clean shutdown"""
        if cls._client and not cls._client.is_closed:
            await cls._client.aclose()
            cls._client = None

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0))

    async def send(self, call: CallSpec) -> CallOutcome:
        """
        Execute one Cloudflare API call

        Transport failures and timeouts are returned as outcomes with an
        `error_kind`; the body is parsed as JSON or marked PARSE_ERROR.

        Args:
            call: The planned call (method, path, payload)

        Returns:
            CallOutcome for this call
        """
        url = f"{self.base_url}{call.path}"
        try:
            client = await self.get_client()
            response = await client.request(
                call.method,
                url,
                headers=self.headers,
                content=json.dumps(call.payload),
                timeout=self._timeout()
            )
        except asyncio.CancelledError:
            logger.warning(f"Cloudflare call {call.label} cancelled")
            raise
        except httpx.TimeoutException as e:
            logger.error(f"⏰ Cloudflare call {call.label} timed out after {self.timeout}s: {e!r}")
            return CallOutcome(call=call, error_kind=ERROR_KIND_TIMEOUT, error=str(e) or e.__class__.__name__)
        except (httpx.HTTPError, OSError) as e:
            logger.error(f"❌ Cloudflare call {call.label} failed: {e!r}")
            return CallOutcome(call=call, error_kind=ERROR_KIND_TRANSPORT, error=str(e) or e.__class__.__name__)

        raw_body = response.text
        try:
            parsed = json.loads(raw_body)
        except ValueError:
            logger.error(f"❌ Cloudflare sent invalid JSON for {call.label} (HTTP {response.status_code})")
            parsed = PARSE_ERROR

        if parsed is not PARSE_ERROR:
            if response.status_code == 200:
                logger.info(f"✅ Cloudflare call {call.label} succeeded")
            else:
                logger.warning(f"⚠️ Cloudflare call {call.label} returned HTTP {response.status_code}")

        return CallOutcome(
            call=call,
            status_code=response.status_code,
            raw_body=raw_body,
            parsed=parsed
        )
