"""Unit tests for TranslationConfig."""

import pytest

from booktranslator.config import TranslationConfig, language_name
from booktranslator.core.exceptions import ConfigurationError


class TestTranslationConfig:

    def test_custom_values(self):
        config = TranslationConfig(
            store_backend='local',
            checkpoint_interval=5,
            context_segments=3,
            placeholder_text='[TODO]',
        )

        assert config.checkpoint_interval == 5
        assert config.context_segments == 3
        assert config.placeholder_text == '[TODO]'

    @pytest.mark.parametrize("field, value", [
        ('checkpoint_interval', 0),
        ('max_retries', -1),
        ('store_max_retries', -1),
        ('context_segments', -1),
    ])
    def test_invalid_numbers(self, field, value):
        with pytest.raises(ConfigurationError):
            TranslationConfig(store_backend='local', **{field: value})

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError, match="Unknown store backend"):
            TranslationConfig(store_backend='mongo')

    def test_remote_backend_requires_url(self):
        with pytest.raises(ConfigurationError, match="STORE_API_URL"):
            TranslationConfig(store_backend='remote', store_url='')

    def test_remote_backend(self):
        config = TranslationConfig(store_backend='remote', store_url='https://db.example.com')

        assert config.store_url == 'https://db.example.com'

    def test_from_overrides_ignores_unknown_and_none(self):
        config = TranslationConfig.from_overrides({
            'store_backend': 'local',
            'target_language': 'ja',
            'model': None,
            'not_a_field': 1,
        })

        assert config.target_language == 'ja'
        assert config.model == TranslationConfig.__dataclass_fields__['model'].default

    def test_to_dict_masks_secrets(self):
        config = TranslationConfig(store_backend='local', api_key='sk-secret', store_token='tok')

        data = config.to_dict()

        assert data['api_key'] == '***'
        assert data['store_token'] == '***'
        assert data['target_language'] == config.target_language


class TestLanguageName:

    def test_known_code(self):
        assert language_name('zh') == 'Chinese'
        assert language_name('EN') == 'English'

    def test_unknown_code_passes_through(self):
        assert language_name('tlh') == 'tlh'
