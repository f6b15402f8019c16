"""
Unit tests for configuration management.
"""

import pytest
from unittest.mock import patch
import os


def test_settings_loads_from_environment():
    """Test that settings can be loaded from environment variables."""
    with patch.dict(os.environ, {
        'APP_ENV': 'production',
        'LOG_LEVEL': 'DEBUG',
        'LOG_FORMAT': 'json',
        'GENERATION_PROVIDER': 'together_ai',
        'HUGGINGFACE_API_KEY': 'hf_test_key',
        'TOGETHER_API_KEY': 'together_test_key',
        'GENERATION_TIMEOUT_SECONDS': '10',
        'GENERATION_MAX_RETRIES': '5',
        'BACKEND_URL': 'http://backend.local:9000',
    }):
        from storywriter.config import Settings
        settings = Settings(_env_file=None)

        assert settings.app_env == 'production'
        assert settings.log_level == 'DEBUG'
        assert settings.log_format == 'json'
        assert settings.generation_provider == 'together_ai'
        assert settings.huggingface_api_key == 'hf_test_key'
        assert settings.together_api_key == 'together_test_key'
        assert settings.generation_timeout_seconds == 10.0
        assert settings.generation_max_retries == 5
        assert settings.backend_url == 'http://backend.local:9000'


def test_settings_has_default_values():
    """Test that settings have appropriate default values."""
    with patch.dict(os.environ, {}, clear=True):
        from storywriter.config import Settings
        settings = Settings(_env_file=None)

        assert settings.app_env == 'development'
        assert settings.log_level is None
        assert settings.log_format == 'console'
        assert settings.generation_provider == 'huggingface'
        assert settings.huggingface_api_key is None
        assert settings.huggingface_api_url.endswith('mistralai/Mistral-7B-Instruct-v0.3')
        assert settings.generation_timeout_seconds == 30.0
        assert settings.generation_max_retries == 3
        assert settings.generation_initial_delay_seconds == 1.0
        assert settings.generation_max_wait_hint_seconds == 120.0


@pytest.mark.parametrize(
    "app_env, production, development, test",
    [
        ("production", True, False, False),
        ("Development", False, True, False),
        ("test", False, False, True),
        ("staging", False, False, False),
    ],
)
def test_environment_flags(app_env, production, development, test):
    """Test environment helper properties."""
    from storywriter.config import Settings
    settings = Settings(_env_file=None, app_env=app_env)

    assert settings.is_production is production
    assert settings.is_development is development
    assert settings.is_test is test


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
