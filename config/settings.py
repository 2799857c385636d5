# config/settings.py
"""
Intake Settings

Explicit, typed configuration for the form intake pipeline. Values are
resolved once from the environment (or a mapping) before any request is
handled; nothing downstream reads environment variables directly.
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from core.exceptions import ConfigurationError


TURNSTILE_VERIFY_URL = 'https://challenges.cloudflare.com/turnstile/v0/siteverify'
AIRTABLE_BASE_URL = 'https://api.airtable.com/v0'
RESEND_BASE_URL = 'https://api.resend.com'

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off', ''}


def _split_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(',') if item.strip())


def _get_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean flag, got {raw!r}")


def _get_str(environ: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    raw = environ.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


@dataclass(frozen=True)
class IntakeSettings:
    """Configuration consumed by the admission pipeline and delivery services"""

    # Origin policy
    allowed_origins: str = '*'

    # Validation
    required_fields: Tuple[str, ...] = ('name', 'email', 'message')

    # Rate limiting
    rate_limit_per_minute: int = 60
    rate_limit_window_seconds: int = 60
    redis_url: Optional[str] = None

    # Anti-forgery and API key guards
    csrf_enabled: bool = True
    api_key: Optional[str] = field(default=None, repr=False)
    client_ip_header: str = 'CF-Connecting-IP'

    # Spam challenge
    turnstile_secret_key: Optional[str] = field(default=None, repr=False)
    turnstile_verify_url: str = TURNSTILE_VERIFY_URL
    spam_timeout_seconds: float = 5.0

    # Record store
    airtable_api_key: Optional[str] = field(default=None, repr=False)
    airtable_base_id: Optional[str] = None
    airtable_table_name: str = 'Form_Submissions'
    airtable_base_url: str = AIRTABLE_BASE_URL

    # Notifier
    resend_api_key: Optional[str] = field(default=None, repr=False)
    resend_from_email: Optional[str] = None
    resend_to_email: Optional[str] = None
    resend_base_url: str = RESEND_BASE_URL
    notification_subject: str = 'New Form Submission'

    # Outbound delivery
    http_timeout_seconds: float = 10.0
    max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0

    log_level: str = 'INFO'

    @property
    def record_store_configured(self) -> bool:
        return bool(self.airtable_api_key and self.airtable_base_id)

    @property
    def notifier_configured(self) -> bool:
        return bool(self.resend_api_key and self.resend_from_email and self.resend_to_email)

    @property
    def spam_verification_enabled(self) -> bool:
        return bool(self.turnstile_secret_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'IntakeSettings':
        """
        Build settings from environment-shaped variables

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Fully resolved IntakeSettings

        Raises:
            ConfigurationError: If a numeric or boolean value is malformed
        """
        env = os.environ if environ is None else environ

        required = env.get('REQUIRED_FIELDS')
        required_fields = _split_list(required) if required is not None else cls.required_fields

        return cls(
            allowed_origins=_get_str(env, 'ALLOWED_ORIGINS', '*'),
            required_fields=required_fields,
            rate_limit_per_minute=_get_int(env, 'RATE_LIMIT_REQUESTS_PER_MINUTE', 60, minimum=1),
            rate_limit_window_seconds=_get_int(env, 'RATE_LIMIT_WINDOW_SECONDS', 60, minimum=1),
            redis_url=_get_str(env, 'REDIS_URL'),
            csrf_enabled=_get_bool(env, 'CSRF_ENABLED', True),
            api_key=_get_str(env, 'FORM_API_KEY'),
            client_ip_header=_get_str(env, 'CLIENT_IP_HEADER', 'CF-Connecting-IP'),
            turnstile_secret_key=_get_str(env, 'TURNSTILE_SECRET_KEY'),
            turnstile_verify_url=_get_str(env, 'TURNSTILE_VERIFY_URL', TURNSTILE_VERIFY_URL),
            spam_timeout_seconds=_get_float(env, 'SPAM_VERIFY_TIMEOUT_SECONDS', 5.0),
            airtable_api_key=_get_str(env, 'AIRTABLE_API_KEY'),
            airtable_base_id=_get_str(env, 'AIRTABLE_BASE_ID'),
            airtable_table_name=_get_str(env, 'AIRTABLE_TABLE_NAME', 'Form_Submissions'),
            airtable_base_url=_get_str(env, 'AIRTABLE_BASE_URL', AIRTABLE_BASE_URL),
            resend_api_key=_get_str(env, 'RESEND_API_KEY'),
            resend_from_email=_get_str(env, 'RESEND_FROM_EMAIL'),
            resend_to_email=_get_str(env, 'RESEND_TO_EMAIL'),
            resend_base_url=_get_str(env, 'RESEND_BASE_URL', RESEND_BASE_URL),
            notification_subject=_get_str(env, 'NOTIFICATION_SUBJECT', 'New Form Submission'),
            http_timeout_seconds=_get_float(env, 'HTTP_TIMEOUT_SECONDS', 10.0),
            max_attempts=_get_int(env, 'DELIVERY_MAX_ATTEMPTS', 3, minimum=1),
            retry_base_delay_seconds=_get_float(env, 'DELIVERY_RETRY_BASE_DELAY', 1.0),
            log_level=_get_str(env, 'LOG_LEVEL', 'INFO').upper(),
        )
