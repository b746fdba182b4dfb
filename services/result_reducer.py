"""
Result reducer for Cloudflare call outcomes
Turns a failed call into the structured failure reported to the client
"""

import json
import logging
from typing import Any, Dict, Optional

from localization import bilingual, t
from services.provisioning_models import (
    CallOutcome, ErrorCode, ProvisioningFailure,
    ERROR_KIND_INTERNAL, ERROR_KIND_TIMEOUT, ERROR_KIND_TRANSPORT
)
from services.translator import TranslationError

logger = logging.getLogger(__name__)


def _generic_failure(http_status: int, error_code: str, message_key: str) -> ProvisioningFailure:
    return ProvisioningFailure(
        http_status=http_status,
        error_code=error_code,
        dev_message=t(f"errors.{message_key}"),
        user_message=bilingual(f"errors.{message_key}")
    )


def _first_error(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for error in payload['errors']:
        if isinstance(error, dict) and 'message' in error:
            return error
    return None


class ResultReducer:
    """
    Reduce one CallOutcome to a ProvisioningFailure, or None on success

    The translator is only used for provider rejections that carry a
    message; any translator failure leaves the Portuguese text out and
    changes nothing else.
    """

    def __init__(self, translator=None):
        self.translator = translator

    async def reduce(self, outcome: CallOutcome) -> Optional[ProvisioningFailure]:
        if outcome.error_kind == ERROR_KIND_INTERNAL:
            return _generic_failure(500, ErrorCode.INTERNAL, 'internal')
        if outcome.error_kind == ERROR_KIND_TIMEOUT:
            return _generic_failure(504, ErrorCode.TIMEOUT, 'provider_timeout')
        if outcome.error_kind == ERROR_KIND_TRANSPORT:
            return _generic_failure(500, ErrorCode.TRANSPORT, 'provider_transport')

        status = outcome.status_code or 500
        if outcome.is_parse_error:
            return _generic_failure(status, ErrorCode.PROVIDER_INVALID_JSON, 'provider_invalid_json')

        if status == 200:
            return None

        payload = outcome.parsed
        if not isinstance(payload, dict) or not isinstance(payload.get('errors'), list):
            logger.warning(f"⚠️ Unknown Cloudflare error shape for {outcome.call.label}: {outcome.raw_body[:200]}")
            return _generic_failure(status, ErrorCode.PROVIDER_UNKNOWN_ERROR, 'provider_unknown')

        # Example error payload:
        # {"result": null, "success": false,
        #  "errors": [{"code": 1003, "message": "Invalid or missing zone id."}], "messages": []}
        error = _first_error(payload)
        if error is None:
            return _generic_failure(status, ErrorCode.PROVIDER_NO_ERROR_OBJECT, 'provider_no_error_object')

        dev_message = f"Error code: {error.get('code')}"
        if payload.get('messages'):
            dev_message += '\n' + json.dumps(payload['messages'])
        else:
            dev_message += ', more details on user_message'

        user_message = {'en_us': str(error['message'])}
        pt_br = await self._translate(user_message['en_us'])
        if pt_br is not None:
            user_message['pt_br'] = pt_br

        logger.error(f"❌ Cloudflare rejected {outcome.call.label} (HTTP {status}): {dev_message}")
        return ProvisioningFailure(
            http_status=status,
            error_code=ErrorCode.PROVIDER_REJECTED,
            dev_message=dev_message,
            user_message=user_message
        )

    async def _translate(self, text: str) -> Optional[str]:
        if self.translator is None:
            return None
        try:
            translated = await self.translator.translate(text, target='pt')
        except TranslationError as e:
            logger.error(f"❌ Translation failed, responding without pt_br: {e}")
            return None
        except Exception as e:
            logger.exception(f"❌ Unexpected translator error, responding without pt_br: {e}")
            return None
        return translated or None
