# core/exceptions.py
"""
Exception hierarchy for the form intake pipeline

Guard failures are raised and short-circuit the pipeline; the API layer
turns any IntakeError into the JSON response envelope. Delivery failures
never surface here as request errors: the dispatcher folds them into the
per-service result.
"""

from typing import List, Optional


class IntakeError(Exception):
    """Base exception for requests rejected before dispatch"""

    status_code = 500
    public_message = 'Internal server error. Please try again later.'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message

    def to_dict(self):
        return {'success': False, 'error': self.message}


class PolicyRejection(IntakeError):
    """Origin, API key, anti-forgery or spam policy refused the request"""
    status_code = 403
    public_message = 'Request rejected by security policy.'


class OriginRejected(PolicyRejection):
    public_message = 'Origin not allowed.'


class ApiKeyRejected(PolicyRejection):
    public_message = 'Invalid or missing API key.'


class CsrfRejected(PolicyRejection):
    public_message = 'Invalid CSRF token. Please refresh and try again.'


class SpamRejected(PolicyRejection):
    public_message = 'Spam protection validation failed. Please try again.'


class ValidationFailure(IntakeError):
    """Submitted fields failed validation"""
    status_code = 400
    public_message = 'Validation failed'

    def __init__(self, details: Optional[List[str]] = None, message: Optional[str] = None):
        super().__init__(message)
        self.details = list(details or [])

    def to_dict(self):
        payload = super().to_dict()
        if self.details:
            payload['details'] = self.details
        return payload


class RateLimited(IntakeError):
    """Client exceeded its request budget for the current window"""
    status_code = 429
    public_message = 'Rate limit exceeded. Please try again later.'

    def __init__(self, limit: int, remaining: int, reset_time: float, retry_after: int):
        super().__init__()
        self.limit = limit
        self.remaining = remaining
        self.reset_time = reset_time
        self.retry_after = retry_after

    def to_dict(self):
        payload = super().to_dict()
        payload['resetTime'] = self.reset_time
        payload['retryAfter'] = self.retry_after
        return payload


class TransientIntegrationFailure(Exception):
    """Outbound call could not complete after exhausting retries"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class ConfigurationError(Exception):
    """Configuration value is present but malformed"""
    pass
