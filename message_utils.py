"""
Response formatting utilities for the provisioning API

Builds the JSON error envelope shared by every endpoint and the single-use
Responder that turns a terminal outcome into exactly one HTTP response.
"""

import logging
from typing import Any, Dict, Optional

from aiohttp import web

from localization import bilingual, t
from services.provisioning_models import ProvisioningFailure, TerminalOutcome

logger = logging.getLogger(__name__)


def create_error_body(
    http_status: int,
    error_code: Any,
    dev_message: Optional[str] = None,
    user_message: Optional[Dict[str, str]] = None,
    more_info: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the error envelope returned on any failed request

    Missing developer or user messages are replaced by the default
    "unknown error" texts.
    """
    return {
        'status': http_status,
        'error_code': error_code,
        'message': dev_message or t('errors.dev_unknown'),
        'user_message': user_message or bilingual('errors.unexpected'),
        'more_info': more_info
    }


class Responder:
    """
    Single-use response callback for one request

    The first call builds the HTTP response; any later call is logged and
    ignored so a request can never be answered twice.
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id
        self.response: Optional[web.Response] = None
        self.calls = 0

    def __call__(
        self,
        data: Any = None,
        error: Any = None,
        http_status: Optional[int] = None,
        error_code: Any = None,
        dev_message: Optional[str] = None,
        user_message: Optional[Dict[str, str]] = None,
        more_info_path: Optional[str] = None
    ) -> Optional[web.Response]:
        self.calls += 1
        if self.response is not None:
            logger.error(f"🚫 Duplicate response suppressed for request {self.request_id} "
                         f"(status {http_status}, code {error_code})")
            return None

        if error is None and (http_status is None or 200 <= http_status < 300):
            if data is None:
                self.response = web.Response(status=204)
            else:
                self.response = web.json_response(data, status=http_status or 200)
            return self.response

        status = http_status or 500
        if 200 <= status < 300:
            # Provider failures on a 2xx status (e.g. invalid JSON on 200) are answered as bad gateway
            logger.warning(f"⚠️ Failure {error_code} carried HTTP {status}, responding 502")
            status = 502
        body = create_error_body(status, error_code, dev_message, user_message, more_info_path)
        self.response = web.json_response(body, status=status)
        return self.response

    def fail(self, failure: ProvisioningFailure) -> Optional[web.Response]:
        """Always answers with the error envelope"""
        return self(
            {}, failure, failure.http_status, failure.error_code,
            failure.dev_message, failure.user_message or None, failure.more_info
        )

    def emit(self, outcome: TerminalOutcome) -> Optional[web.Response]:
        """Send a terminal outcome: 204 on success, the error envelope otherwise"""
        if outcome.success:
            return self(None, None, 204)
        return self.fail(outcome.failure)
