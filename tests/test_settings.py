"""Tests for environment-driven intake settings."""

import pytest

from config.settings import TURNSTILE_VERIFY_URL, IntakeSettings
from core.exceptions import ConfigurationError


class TestFromEnv:
    def test_defaults(self) -> None:
        settings = IntakeSettings.from_env({})
        assert settings.allowed_origins == '*'
        assert settings.required_fields == ('name', 'email', 'message')
        assert settings.rate_limit_per_minute == 60
        assert settings.rate_limit_window_seconds == 60
        assert settings.csrf_enabled is True
        assert settings.redis_url is None
        assert settings.turnstile_verify_url == TURNSTILE_VERIFY_URL
        assert not settings.record_store_configured
        assert not settings.notifier_configured
        assert not settings.spam_verification_enabled

    def test_values_are_parsed(self) -> None:
        settings = IntakeSettings.from_env({
            'ALLOWED_ORIGINS': 'https://a.example,.b.example',
            'REQUIRED_FIELDS': 'email, phone',
            'RATE_LIMIT_REQUESTS_PER_MINUTE': '10',
            'CSRF_ENABLED': 'false',
            'TURNSTILE_SECRET_KEY': 'shh',
            'AIRTABLE_API_KEY': 'pat',
            'AIRTABLE_BASE_ID': 'app',
            'RESEND_API_KEY': 're',
            'RESEND_FROM_EMAIL': 'from@a.example',
            'RESEND_TO_EMAIL': 'to@a.example',
            'LOG_LEVEL': 'debug',
        })
        assert settings.required_fields == ('email', 'phone')
        assert settings.rate_limit_per_minute == 10
        assert settings.csrf_enabled is False
        assert settings.spam_verification_enabled
        assert settings.record_store_configured
        assert settings.notifier_configured
        assert settings.log_level == 'DEBUG'

    def test_empty_required_fields(self) -> None:
        assert IntakeSettings.from_env({'REQUIRED_FIELDS': ''}).required_fields == ()

    @pytest.mark.parametrize('env', [
        {'RATE_LIMIT_REQUESTS_PER_MINUTE': 'lots'},
        {'RATE_LIMIT_REQUESTS_PER_MINUTE': '0'},
        {'CSRF_ENABLED': 'maybe'},
        {'HTTP_TIMEOUT_SECONDS': '-1'},
    ])
    def test_malformed_values_raise(self, env) -> None:
        with pytest.raises(ConfigurationError):
            IntakeSettings.from_env(env)

    def test_secrets_hidden_from_repr(self) -> None:
        settings = IntakeSettings(api_key='topsecret', airtable_api_key='pat-secret')
        assert 'topsecret' not in repr(settings)
        assert 'pat-secret' not in repr(settings)
