"""
Service configuration for the Cloudflare domain provisioner
Command-line arguments take precedence over environment variables
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PORT = 31234
DEFAULT_BASE_URI = '/cloudflare/v1/'
DEFAULT_CLOUDFLARE_API_BASE = 'https://api.cloudflare.com/client/v4'
DEFAULT_FATAL_LOG_PATH = '/var/log/nodejs/_stderr'

# Store proxy address and the placeholder target used for apex redirects
DEFAULT_INGRESS_ADDRESS = '174.138.108.73'
DEFAULT_REDIRECT_TARGET = '8.8.8.8'


class ConfigurationError(Exception):
    """Raised when the service cannot start with the given configuration"""
    pass


def _parse_port(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        logger.warning(f"⚠️ Ignoring invalid port value: {value!r}")
        return None
    if not 0 < port < 65536:
        logger.warning(f"⚠️ Ignoring out of range port: {port}")
        return None
    return port


def _parse_float(value: Optional[str], default: float) -> float:
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"⚠️ Ignoring invalid timeout value: {value!r}")
        return default


@dataclass
class ServiceConfig:
    """Runtime settings resolved once at process start"""
    yandex_api_key: str
    proxy_auth: Optional[str] = None
    port: int = DEFAULT_PORT
    host: str = '127.0.0.1'
    base_uri: str = DEFAULT_BASE_URI
    cloudflare_api_base: str = DEFAULT_CLOUDFLARE_API_BASE
    cloudflare_timeout: float = 30.0
    translator_timeout: float = 5.0
    fatal_log_path: str = DEFAULT_FATAL_LOG_PATH
    ingress_address: str = DEFAULT_INGRESS_ADDRESS
    redirect_target: str = DEFAULT_REDIRECT_TARGET
    cancel_on_failure: bool = False

    @classmethod
    def from_args(cls, argv: List[str]) -> 'ServiceConfig':
        """
        Build configuration from `<yandex_api_key> [auth] [port]` arguments

        Args:
            argv: Arguments after the program name

        Returns:
            Resolved ServiceConfig

        Raises:
            ConfigurationError: When no Yandex API key is available
        """
        yandex_api_key = argv[0] if len(argv) > 0 and argv[0] else os.getenv('YANDEX_API_KEY')
        if not yandex_api_key:
            raise ConfigurationError('yandexApiKey argument is required and must be a string')

        proxy_auth = argv[1] if len(argv) > 1 and argv[1] else os.getenv('PROXY_AUTH')
        port = _parse_port(argv[2] if len(argv) > 2 else os.getenv('PORT'))

        return cls(
            yandex_api_key=yandex_api_key,
            proxy_auth=proxy_auth or None,
            port=port or DEFAULT_PORT,
            host=os.getenv('HOST') or '127.0.0.1',
            cloudflare_api_base=os.getenv('CLOUDFLARE_API_BASE') or DEFAULT_CLOUDFLARE_API_BASE,
            cloudflare_timeout=_parse_float(os.getenv('CLOUDFLARE_TIMEOUT'), 30.0),
            translator_timeout=_parse_float(os.getenv('TRANSLATOR_TIMEOUT'), 5.0),
            fatal_log_path=os.getenv('FATAL_LOG_PATH') or DEFAULT_FATAL_LOG_PATH,
            ingress_address=os.getenv('INGRESS_ADDRESS') or DEFAULT_INGRESS_ADDRESS,
            redirect_target=os.getenv('REDIRECT_TARGET') or DEFAULT_REDIRECT_TARGET,
            cancel_on_failure=(os.getenv('CANCEL_ON_FAILURE', 'false').lower() == 'true'),
        )
