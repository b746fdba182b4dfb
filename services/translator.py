"""
Yandex Translate integration for user-facing error messages
Translates Cloudflare's English error text to Brazilian Portuguese
"""

import time
import logging
import httpx
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

YANDEX_TRANSLATE_URL = 'https://translate.yandex.net/api/v1.5/tr.json/translate'


class TranslationError(Exception):
    """Raised when a translation cannot be obtained"""
    pass


class TranslationCache:
    """In-memory TTL cache keyed by language pair and source text"""

    def __init__(self, default_ttl: int = 3600, max_entries: int = 500):
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self.max_entries = max_entries

    def get(self, key: str) -> Optional[str]:
        entry = self.cache.get(key)
        if entry is None:
            return None
        if entry['expires'] <= time.time():
            del self.cache[key]
            return None
        return entry['value']

    def set(self, key: str, value: str) -> None:
        if len(self.cache) >= self.max_entries:
            # Drop the oldest entry
            oldest = min(self.cache, key=lambda k: self.cache[k]['created'])
            del self.cache[oldest]
        now = time.time()
        self.cache[key] = {
            'value': value,
            'expires': now + self.default_ttl,
            'created': now
        }


class YandexTranslator:
    """Best-effort translator backed by the Yandex Translate v1.5 API"""

    def __init__(self, api_key: Optional[str], timeout: float = 5.0,
                 api_url: str = YANDEX_TRANSLATE_URL,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.api_url = api_url
        self._transport = transport
        self._cache = TranslationCache()

    async def translate(self, text: str, target: str = 'pt', source: str = 'en') -> str:
        """
        Translate text between languages

        Args:
            text: Source text
            target: Target language code
            source: Source language code

        Returns:
            Translated text

        Raises:
            TranslationError: On missing key, transport failure or malformed reply
        """
        if not self.api_key:
            raise TranslationError('Yandex API key not configured')
        if not text:
            return text

        lang = f"{source}-{target}"
        cache_key = f"{lang}:{text}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"💾 Translation cache HIT for {lang}")
            return cached

        params = {'key': self.api_key, 'text': text, 'lang': lang}
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), transport=self._transport) as client:
                response = await client.get(self.api_url, params=params)
        except httpx.HTTPError as e:
            raise TranslationError(f"Yandex Translate request failed: {e!r}") from e

        if response.status_code != 200:
            raise TranslationError(f"Yandex Translate returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TranslationError('Yandex Translate sent invalid JSON') from e

        texts = data.get('text') if isinstance(data, dict) else None
        if not isinstance(texts, list) or not texts or not isinstance(texts[0], str):
            raise TranslationError(f"Unexpected Yandex Translate payload: {data!r}")

        translated = texts[0]
        self._cache.set(cache_key, translated)
        logger.info(f"🌐 Translated provider message ({lang})")
        return translated
