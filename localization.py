"""
Bilingual localization system for the Cloudflare domain provisioner

Every user-facing message is delivered in English (en_us) and Brazilian
Portuguese (pt_br). Messages live in JSON catalogs under `locales/` and are
looked up with dot-separated keys, with English as the fallback.
"""

import json
import logging
from typing import Dict, Optional, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)

class LanguageConfig:
    """
    Language catalog loader and lookup

    Features:
    - Fallback to English for missing translations
    - Variable substitution using format() method
    - Validation error rendering per locale
    """

    _instance = None
    _initialized = False

    SUPPORTED_LANGUAGES = {
        'en_us': 'English',
        'pt_br': 'Português (Brasil)'
    }

    DEFAULT_LANGUAGE = 'en_us'

    def __new__(cls):
        """Singleton pattern to ensure consistent translation loading"""
        if cls._instance is None:
            cls._instance = super(LanguageConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if LanguageConfig._initialized:
            return

        self.translations: Dict[str, Dict[str, Any]] = {}
        self.locales_path = Path(__file__).parent / 'locales'
        self._load_translations()

        LanguageConfig._initialized = True
        logger.info(f"🌍 Language system initialized - Supported: {list(self.SUPPORTED_LANGUAGES.keys())}")

    def _load_translations(self) -> None:
        """Load translation files from locales directory"""
        for lang_code in self.SUPPORTED_LANGUAGES.keys():
            translation_file = self.locales_path / f"{lang_code}.json"

            try:
                if translation_file.exists():
                    with open(translation_file, 'r', encoding='utf-8') as f:
                        self.translations[lang_code] = json.load(f)
                    logger.debug(f"✅ Loaded translations for {lang_code}")
                else:
                    logger.warning(f"⚠️ Translation file not found: {translation_file}")
                    self.translations[lang_code] = {}
            except (OSError, ValueError) as e:
                logger.error(f"❌ Failed to load translations for {lang_code}: {e}")
                self.translations[lang_code] = {}

    def is_language_supported(self, lang_code: str) -> bool:
        return lang_code in self.SUPPORTED_LANGUAGES

    def get_translation(self, key: str, lang_code: str, **kwargs) -> str:
        """
        Get translation for a specific key with variable substitution

        Args:
            key: Translation key (e.g., 'errors.unexpected')
            lang_code: Target language code
            **kwargs: Variables for string formatting

        Returns:
            Translated string, falling back to English and then to the key itself
        """
        if not self.is_language_supported(lang_code):
            lang_code = self.DEFAULT_LANGUAGE

        translation = self._get_nested_translation(key, lang_code)

        if translation is None and lang_code != self.DEFAULT_LANGUAGE:
            translation = self._get_nested_translation(key, self.DEFAULT_LANGUAGE)
            logger.debug(f"Using fallback translation for key '{key}' (lang: {lang_code} -> {self.DEFAULT_LANGUAGE})")

        if translation is None:
            logger.warning(f"⚠️ No translation found for key '{key}' in any language")
            translation = key

        try:
            if kwargs:
                return translation.format(**kwargs)
            return translation
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"⚠️ Translation formatting failed for key '{key}': {e}")
            return translation

    def _get_nested_translation(self, key: str, lang_code: str) -> Optional[str]:
        current: Any = self.translations.get(lang_code)
        if current is None:
            return None

        for part in key.split('.'):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return None

        return current if isinstance(current, str) else None


_language_config = None

def get_language_config() -> LanguageConfig:
    """Get the global LanguageConfig instance"""
    global _language_config
    if _language_config is None:
        _language_config = LanguageConfig()
    return _language_config


def t(key: str, lang_code: str = 'en_us', **kwargs) -> str:
    """
    Main translation function - get localized string with variable substitution

    Args:
        key: Translation key (e.g., 'errors.unexpected')
        lang_code: Target language code (defaults to English)
        **kwargs: Variables for string formatting

    Returns:
        Localized string with variables substituted
    """
    return get_language_config().get_translation(key, lang_code, **kwargs)


def bilingual(key: str, **kwargs) -> Dict[str, str]:
    """Render a key in every supported language, as used in `user_message`"""
    return {
        lang_code: t(key, lang_code, **kwargs)
        for lang_code in LanguageConfig.SUPPORTED_LANGUAGES
    }


def _format_location(loc: List[Any]) -> str:
    path = 'data'
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def format_validation_error(error: Dict[str, Any], lang_code: str = 'en_us') -> str:
    """
    Render one pydantic validation error in the given language

    Missing properties are reported against their parent object, the way
    JSON schema validators phrase `required` violations.
    """
    error_type = error.get('type', '')
    loc = list(error.get('loc', ()))
    ctx = dict(error.get('ctx') or {})

    if error_type == 'missing' and loc:
        ctx['property'] = loc[-1]
        loc = loc[:-1]
    elif error_type == 'extra_forbidden' and loc:
        ctx['property'] = loc[-1]
        loc = loc[:-1]

    key = f"validation.{error_type}"
    if get_language_config()._get_nested_translation(key, lang_code) is None:
        key = 'validation.generic'
        ctx.setdefault('detail', error.get('msg', ''))

    message = t(key, lang_code, **ctx)
    return f"{_format_location(loc)} {message}"


def format_validation_errors(errors: List[Dict[str, Any]], lang_code: str = 'en_us') -> str:
    """Join validation errors one per line"""
    return '\n'.join(format_validation_error(error, lang_code) for error in errors)
