"""
Tests for configuration loading and validation.

Validates environment variable handling, aliases, defaults and the
validation rules that make startup fail fast.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from caselli.config import Settings, get_settings, reset_settings

VALID_KEY = "sk-ant-REDACTED"


class TestConfiguration:
    """Test suite for configuration management."""

    def test_settings_loads_with_defaults(self):
        """Settings should load with reasonable defaults."""
        with patch.dict(os.environ, {"APP_ENV": "test", "ANTHROPIC_API_KEY": VALID_KEY}):
            settings = Settings(_env_file=None)

        assert settings.app_env == "test"
        assert settings.agent_max_rounds == 5
        assert settings.agent_token_ceiling == 120000
        assert settings.context_window_messages == 10
        assert settings.memory_cooldown_seconds == 300
        assert settings.memory_similarity_threshold == 0.8
        assert settings.conversational_text_threshold == 80
        assert settings.signed_url_ttl_seconds == 3600

    def test_settings_requires_anthropic_key(self):
        """A missing inference key is a startup error."""
        with patch.dict(os.environ, {"APP_ENV": "test"}, clear=True):
            with pytest.raises(ValidationError) as exc_info:
                Settings(_env_file=None)

        assert "anthropic_api_key" in str(exc_info.value)

    def test_settings_rejects_malformed_anthropic_key(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, anthropic_api_key="not-a-real-key")

    def test_database_url_aliases(self):
        """DATABASE_URL and DB_URL both populate database_url."""
        with patch.dict(
            os.environ,
            {"ANTHROPIC_API_KEY": VALID_KEY, "DB_URL": "postgresql://u:p@db:5432/caselli"},
            clear=True,
        ):
            settings = Settings(_env_file=None)

        assert settings.database_url == "postgresql://u:p@db:5432/caselli"

    def test_property_api_key_accepts_rentcast_name(self):
        with patch.dict(
            os.environ,
            {"ANTHROPIC_API_KEY": VALID_KEY, "RENTCAST_API_KEY": "rc-key"},
            clear=True,
        ):
            settings = Settings(_env_file=None)

        assert settings.property_api_key == "rc-key"

    def test_log_level_is_normalized(self):
        settings = Settings(_env_file=None, anthropic_api_key=VALID_KEY, log_level="warning")
        assert settings.log_level == "WARNING"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, anthropic_api_key=VALID_KEY, log_level="LOUD")

    def test_invalid_app_env_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, anthropic_api_key=VALID_KEY, app_env="qa")

    def test_cors_origins_from_comma_separated_env(self):
        with patch.dict(
            os.environ,
            {
                "ANTHROPIC_API_KEY": VALID_KEY,
                "CORS_ORIGINS": "https://app.caselli.ai, https://staging.caselli.ai",
            },
            clear=True,
        ):
            settings = Settings(_env_file=None)

        origins = [str(origin).rstrip("/") for origin in settings.cors_origins]
        assert origins == ["https://app.caselli.ai", "https://staging.caselli.ai"]

    def test_base_urls_lose_trailing_slash(self):
        settings = Settings(
            _env_file=None,
            anthropic_api_key=VALID_KEY,
            supabase_url="https://project.supabase.co/",
            anthropic_base_url="https://api.anthropic.com/",
        )
        assert settings.supabase_url == "https://project.supabase.co"
        assert settings.anthropic_base_url == "https://api.anthropic.com"

    def test_loop_bounds_validated(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, anthropic_api_key=VALID_KEY, agent_max_rounds=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, anthropic_api_key=VALID_KEY, context_window_messages=1)

    def test_production_requires_database_and_supabase_keys(self):
        with patch.dict(os.environ, {"ANTHROPIC_API_KEY": VALID_KEY}, clear=True):
            settings = Settings(_env_file=None, app_env="production")

        with pytest.raises(ValueError) as exc_info:
            settings.validate_required_for_production()

        message = str(exc_info.value)
        assert "DATABASE_URL" in message
        assert "SUPABASE_SERVICE_ROLE_KEY" in message

    def test_get_settings_is_a_singleton(self):
        reset_settings()
        try:
            first = get_settings()
            assert get_settings() is first
        finally:
            reset_settings()
