"""
Provisioning data model shared by the call plan, coordinator and reducer

Everything here is plain data: call specs produced by the plan builder,
call outcomes produced by the Cloudflare client, the per-run batch state
and the single terminal outcome handed back to the HTTP layer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ErrorCode:
    """Error codes reported in the `error_code` field of failure responses"""
    UNKNOWN_IP = 100
    PROXY_AUTH = 101
    INTERNAL = 'CF1000'
    INVALID_BODY = 'CF1001'
    UNEXPECTED_ID = 'CF1002'
    GET_NOT_ACCEPTABLE = 'CF1003'
    TRANSPORT = 'CF1004'
    PROVIDER_REJECTED = 'CF1005'
    PROVIDER_INVALID_JSON = 'CF1007'
    PROVIDER_UNKNOWN_ERROR = 'CF1008'
    PROVIDER_NO_ERROR_OBJECT = 'CF1010'
    TIMEOUT = 'CF1011'


class _ParseError:
    """Marker stored in CallOutcome.parsed when the body is not valid JSON"""

    def __repr__(self) -> str:
        return 'PARSE_ERROR'

    def __bool__(self) -> bool:
        return False


PARSE_ERROR = _ParseError()

ERROR_KIND_TRANSPORT = 'transport'
ERROR_KIND_TIMEOUT = 'timeout'
ERROR_KIND_INTERNAL = 'internal'


@dataclass(frozen=True)
class CallSpec:
    """One independent Cloudflare API call in a call plan"""
    path: str
    payload: Dict[str, Any]
    label: str
    required: bool = True
    redirect_only: bool = False
    method: str = 'POST'


@dataclass(frozen=True)
class CallOutcome:
    """Result of a single Cloudflare round trip, produced once per CallSpec"""
    call: CallSpec
    status_code: Optional[int] = None
    raw_body: str = ''
    parsed: Any = PARSE_ERROR
    error_kind: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_parse_error(self) -> bool:
        return self.parsed is PARSE_ERROR

    @property
    def succeeded(self) -> bool:
        return self.error_kind is None and self.status_code == 200 and not self.is_parse_error


@dataclass
class BatchState:
    """Counters and failure latch owned by exactly one provisioning run"""
    total_dispatched: int
    total_completed: int = 0
    failed: bool = False
    terminal_emitted: bool = False

    def latch_failure(self) -> bool:
        """Set the failure latch. Returns True only for the call that set it."""
        if self.failed or self.terminal_emitted:
            return False
        self.failed = True
        return True

    @property
    def all_completed(self) -> bool:
        return self.total_completed == self.total_dispatched


@dataclass(frozen=True)
class ProvisioningFailure:
    """Terminal failure with developer and bilingual user messages"""
    http_status: int
    error_code: Any
    dev_message: Optional[str] = None
    user_message: Dict[str, str] = field(default_factory=dict)
    more_info: Optional[str] = None


@dataclass(frozen=True)
class TerminalOutcome:
    """The single Success or Failure emitted for one provisioning run"""
    failure: Optional[ProvisioningFailure] = None

    @property
    def success(self) -> bool:
        return self.failure is None

    @property
    def http_status(self) -> int:
        return 204 if self.failure is None else self.failure.http_status

    @classmethod
    def succeeded(cls) -> 'TerminalOutcome':
        return cls()

    @classmethod
    def failed(cls, failure: ProvisioningFailure) -> 'TerminalOutcome':
        return cls(failure=failure)
