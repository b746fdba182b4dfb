"""
Provisioning request validation
Validates the POST /domain body and exposes its JSON schema
"""

import re
import logging
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from localization import format_validation_errors, t
from services.provisioning_models import ErrorCode, ProvisioningFailure

logger = logging.getLogger(__name__)

SCHEMA_PATH = '/domain/schema.json'

_HOSTNAME_LABEL = re.compile(r'^(?!-)[a-z0-9-]{1,63}(?<!-)$', re.IGNORECASE)


class Credentials(BaseModel):
    """Cloudflare account credentials sent with each request"""
    model_config = ConfigDict(extra='forbid', frozen=True, strict=True)

    api_key: str = Field(..., min_length=30, max_length=90, pattern=r'^[a-f0-9]+$')
    email: str = Field(..., max_length=100, pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$',
                       json_schema_extra={'format': 'email'})
    zone_id: str = Field(..., pattern=r'^[a-f0-9]{32}$')


class ProvisioningRequest(BaseModel):
    """Validated request to provision `subdomain.domain` on Cloudflare"""
    model_config = ConfigDict(extra='ignore', frozen=True, strict=True)

    domain: str = Field(..., max_length=70, json_schema_extra={'format': 'hostname'})
    subdomain: str = Field(..., max_length=30, pattern=r'^[a-z0-9-]+$')
    domain_redirect: bool
    credentials: Credentials

    @field_validator('domain')
    @classmethod
    def check_hostname(cls, value: str) -> str:
        labels = value.split('.')
        if len(value) > 253 or not all(_HOSTNAME_LABEL.match(label) for label in labels):
            raise PydanticCustomError('hostname_format', 'should match format "hostname"')
        return value

    @property
    def full_domain(self) -> str:
        return f"{self.subdomain}.{self.domain}"


def get_request_schema() -> Dict[str, Any]:
    """JSON schema served at /domain/schema.json"""
    schema = ProvisioningRequest.model_json_schema()
    schema['$schema'] = 'http://json-schema.org/draft-07/schema#'
    return schema


def validation_failure(error: ValidationError) -> ProvisioningFailure:
    """Convert pydantic errors into the CF1001 failure with bilingual details"""
    errors = error.errors(include_url=False)
    return ProvisioningFailure(
        http_status=400,
        error_code=ErrorCode.INVALID_BODY,
        dev_message=t('errors.bad_formatted_body'),
        user_message={
            'en_us': format_validation_errors(errors, 'en_us'),
            'pt_br': format_validation_errors(errors, 'pt_br'),
        },
        more_info=SCHEMA_PATH,
    )


def validate_provisioning_request(
    body: Union[str, bytes]
) -> Tuple[Optional[ProvisioningRequest], Optional[ProvisioningFailure]]:
    """
    Parse and validate a raw JSON request body

    Args:
        body: Raw request body

    Returns:
        (request, None) when valid, (None, failure) otherwise
    """
    try:
        request = ProvisioningRequest.model_validate_json(body)
    except ValidationError as e:
        logger.info(f"⚠️ Rejected provisioning request: {e.error_count()} validation error(s)")
        return None, validation_failure(e)
    return request, None
