"""
Centralized configuration for the book translation pipeline
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
from dotenv import load_dotenv

from booktranslator.core.exceptions import ConfigurationError

# Setup debug logger for configuration
_config_logger = logging.getLogger('config')

# Check for DEBUG_MODE early (before .env is loaded, check environment)
_debug_mode = os.getenv('DEBUG_MODE', 'false').lower() == 'true'
if _debug_mode:
    logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    _config_logger.setLevel(logging.DEBUG)
    _config_logger.debug("DEBUG_MODE enabled - verbose logging active")

# .env is looked up in the current working directory
_env_file = Path.cwd() / '.env'
if _debug_mode:
    _config_logger.debug(f"Looking for .env at: {_env_file.absolute()} (exists: {_env_file.exists()})")

_dotenv_result = load_dotenv(_env_file)
if _debug_mode:
    _config_logger.debug(f"load_dotenv() returned: {_dotenv_result}")

DEBUG_MODE = os.getenv('DEBUG_MODE', 'false').lower() == 'true'

# Languages
DEFAULT_SOURCE_LANGUAGE = os.getenv('DEFAULT_SOURCE_LANGUAGE', 'en')
DEFAULT_TARGET_LANGUAGE = os.getenv('DEFAULT_TARGET_LANGUAGE', 'zh')

# Translation backend (OpenAI-compatible chat completions)
LLM_API_BASE_URL = os.getenv('LLM_API_BASE_URL', 'https://api.openai.com/v1')
LLM_API_KEY = os.getenv('LLM_API_KEY', '')
LLM_MODEL = os.getenv('LLM_MODEL', 'gpt-4o-mini')
LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '4096'))
LLM_TEMPERATURE = float(os.getenv('LLM_TEMPERATURE', '0.3'))
GLOSSARY_TEMPERATURE = float(os.getenv('GLOSSARY_TEMPERATURE', '0.1'))
REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT', '120'))
MAX_TRANSLATION_RETRIES = int(os.getenv('MAX_TRANSLATION_RETRIES', '3'))
RETRY_BASE_DELAY = float(os.getenv('RETRY_BASE_DELAY', '1.0'))

# Storage backend: 'remote' (HTTP SQL API) or 'local' (SQLite file)
STORE_BACKEND = os.getenv('STORE_BACKEND', 'local').lower()
STORE_API_URL = os.getenv('STORE_API_URL', '')
STORE_API_TOKEN = os.getenv('STORE_API_TOKEN', '')
STORE_MAX_RETRIES = int(os.getenv('STORE_MAX_RETRIES', '3'))
STORE_RETRY_BASE_DELAY = float(os.getenv('STORE_RETRY_BASE_DELAY', '0.5'))
STORE_TIMEOUT = int(os.getenv('STORE_TIMEOUT', '30'))
DATABASE_PATH = os.getenv('DATABASE_PATH', 'data/books.db')

# Pipeline tuning
CHECKPOINT_INTERVAL = int(os.getenv('CHECKPOINT_INTERVAL', '10'))
CONTEXT_SEGMENTS = int(os.getenv('CONTEXT_SEGMENTS', '2'))
PLACEHOLDER_TEXT = os.getenv('PLACEHOLDER_TEXT', '[Translation pending]')
MIN_SEGMENT_LENGTH = int(os.getenv('MIN_SEGMENT_LENGTH', '2'))

# Glossary sampling windows (segments)
GLOSSARY_HEAD_SAMPLE = 100
GLOSSARY_MIDDLE_SAMPLE = 50
GLOSSARY_MIDDLE_THRESHOLD = 200
GLOSSARY_TAIL_SAMPLE = 50
GLOSSARY_TAIL_THRESHOLD = 150

# Prompt markers
TRANSLATE_TAG_IN = "<translate>"
TRANSLATE_TAG_OUT = "</translate>"
CONTEXT_TAG_IN = "<context>"
CONTEXT_TAG_OUT = "</context>"

# Extraction point elements
BLOCK_TAGS = frozenset({
    'p', 'div', 'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'li', 'blockquote', 'pre', 'td', 'th', 'dt', 'dd',
    'caption', 'figcaption', 'article', 'section', 'aside', 'header', 'footer',
})

# Never extracted, never recursed into
SKIP_TAGS = frozenset({'script', 'style', 'noscript', 'head', 'meta', 'link', 'title'})

NAMESPACES = {
    'opf': 'http://www.idpf.org/2007/opf',
    'dc': 'http://purl.org/dc/elements/1.1/',
    'xhtml': 'http://www.w3.org/1999/xhtml',
    'epub': 'http://www.idpf.org/2007/ops',
    'ncx': 'http://www.daisy.org/z3986/2005/ncx/',
    'container': 'urn:oasis:names:tc:opendocument:xmlns:container',
}

LANGUAGE_NAMES = {
    'zh': 'Chinese',
    'en': 'English',
    'ja': 'Japanese',
    'ko': 'Korean',
    'fr': 'French',
    'de': 'German',
    'es': 'Spanish',
    'it': 'Italian',
    'pt': 'Portuguese',
    'ru': 'Russian',
}

_SECRET_FIELDS = ('api_key', 'store_token')


def language_name(code: str) -> str:
    """Human readable language name for prompts (falls back to the code)."""
    return LANGUAGE_NAMES.get((code or '').lower(), code)


@dataclass
class TranslationConfig:
    """Runtime configuration for one translation service instance.

    Defaults come from the environment (.env) so that a bare
    ``TranslationConfig()`` matches the deployment settings.
    """
    source_language: str = DEFAULT_SOURCE_LANGUAGE
    target_language: str = DEFAULT_TARGET_LANGUAGE

    api_base_url: str = LLM_API_BASE_URL
    api_key: str = LLM_API_KEY
    model: str = LLM_MODEL
    max_tokens: int = LLM_MAX_TOKENS
    temperature: float = LLM_TEMPERATURE
    glossary_temperature: float = GLOSSARY_TEMPERATURE
    request_timeout: int = REQUEST_TIMEOUT
    max_retries: int = MAX_TRANSLATION_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY

    store_backend: str = STORE_BACKEND
    store_url: str = STORE_API_URL
    store_token: str = STORE_API_TOKEN
    store_max_retries: int = STORE_MAX_RETRIES
    store_retry_base_delay: float = STORE_RETRY_BASE_DELAY
    store_timeout: int = STORE_TIMEOUT
    database_path: str = DATABASE_PATH

    checkpoint_interval: int = CHECKPOINT_INTERVAL
    context_segments: int = CONTEXT_SEGMENTS
    placeholder_text: str = PLACEHOLDER_TEXT

    def __post_init__(self):
        """Validate configuration."""
        if self.checkpoint_interval < 1:
            raise ConfigurationError("checkpoint_interval must be >= 1")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.store_max_retries < 0:
            raise ConfigurationError("store_max_retries must be >= 0")
        if self.context_segments < 0:
            raise ConfigurationError("context_segments must be >= 0")
        if self.store_backend not in ('remote', 'local'):
            raise ConfigurationError(
                f"Unknown store backend '{self.store_backend}'",
                context={'expected': 'remote|local'}
            )
        if self.store_backend == 'remote' and not self.store_url:
            raise ConfigurationError("STORE_API_URL is required for the remote store backend")

        if DEBUG_MODE:
            _config_logger.debug(f"TranslationConfig: {self.to_dict()}")

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]] = None) -> 'TranslationConfig':
        """Create config from a partial mapping (unknown keys are ignored)."""
        overrides = overrides or {}
        known = {name: value for name, value in overrides.items()
                 if name in cls.__dataclass_fields__ and value is not None}
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with secrets masked."""
        data = asdict(self)
        for name in _SECRET_FIELDS:
            if data.get(name):
                data[name] = '***'
        return data
