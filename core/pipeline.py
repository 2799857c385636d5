# core/pipeline.py
"""
Request admission pipeline

Guards run strictly in order and each may short-circuit the rest:

    origin -> API key -> anti-forgery -> rate limit -> spam challenge
    -> validation -> sanitization

Local, stateless checks come first. The rate limiter (shared-store I/O)
runs before spam verification (network I/O) so a client that is already
over budget cannot trigger outbound verification calls.
"""

import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from config.settings import IntakeSettings
from core.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, CsrfGuard
from core.exceptions import (
    ApiKeyRejected, CsrfRejected, OriginRejected, RateLimited,
    SpamRejected, ValidationFailure,
)
from core.models import METADATA_KEYS, Submission
from core.origin_policy import is_allowed
from core.rate_limiter import RateLimiter, RateLimitResult
from core.security_events import log_security_event
from core.spam_verifier import TOKEN_FIELD, SpamVerifier
from core.validator import FormValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundRequest:
    """Framework-independent view of an inbound HTTP request"""
    headers: Mapping[str, str]
    cookies: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b''
    remote_addr: Optional[str] = None

    def header(self, name: str) -> Optional[str]:
        value = self.headers.get(name)
        if value is None:
            lowered = name.lower()
            for key, candidate in self.headers.items():
                if key.lower() == lowered:
                    return candidate
        return value


@dataclass(frozen=True)
class Admission:
    """A request that passed every guard"""
    submission: Submission
    rate_limit: RateLimitResult


class AdmissionPipeline:
    """
    Applies the guard sequence to one inbound request

    Holds no per-request state; one instance serves every request.
    """

    def __init__(self,
                 settings: IntakeSettings,
                 rate_limiter: RateLimiter,
                 spam_verifier: SpamVerifier,
                 csrf_guard: Optional[CsrfGuard] = None,
                 validator: Optional[FormValidator] = None):
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.spam_verifier = spam_verifier
        self.csrf_guard = csrf_guard or CsrfGuard()
        self.validator = validator or FormValidator()

    # ------------------------------------------------------------------

    def client_ip(self, request: InboundRequest) -> str:
        """Resolve the client IP from proxy headers, falling back to the socket"""
        direct = request.header(self.settings.client_ip_header)
        if direct:
            return direct.strip()
        forwarded = request.header('X-Forwarded-For')
        if forwarded:
            first_hop = forwarded.split(',')[0].strip()
            if first_hop:
                return first_hop
        real_ip = request.header('X-Real-IP')
        if real_ip:
            return real_ip.strip()
        return request.remote_addr or 'unknown'

    def admit(self, request: InboundRequest) -> Admission:
        """
        Run every guard and build the sanitized submission

        Raises:
            PolicyRejection: Origin, API key, CSRF or spam check failed
            RateLimited: Client is over its per-window budget
            ValidationFailure: Body is malformed or fields are invalid
        """
        origin = request.header('Origin')
        client_ip = self.client_ip(request)

        self.check_origin(origin, client_ip)
        self.check_api_key(request, client_ip)
        self.check_csrf(request, client_ip)
        rate_limit = self.check_rate_limit(client_ip)

        fields = self.parse_body(request.body)
        spam_token = fields.pop(TOKEN_FIELD, None)
        self.check_spam(spam_token, client_ip)

        for key in METADATA_KEYS.intersection(fields):
            del fields[key]

        result = self.validator.validate(fields, self.settings.required_fields)
        if not result.is_valid:
            logger.info(f"Validation failed for {client_ip}: {len(result.errors)} error(s)")
            raise ValidationFailure(result.errors)

        submission = Submission.create(
            self.validator.sanitize(fields),
            client_ip=client_ip,
            user_agent=request.header('User-Agent') or 'unknown',
            origin=origin,
        )
        return Admission(submission=submission, rate_limit=rate_limit)

    # ------------------------------------------------------------------
    # Individual guards
    # ------------------------------------------------------------------

    def check_origin(self, origin: Optional[str], client_ip: str) -> None:
        if not is_allowed(origin, self.settings.allowed_origins):
            log_security_event('origin_rejected', {'origin': origin, 'ip': client_ip})
            raise OriginRejected()

    def check_api_key(self, request: InboundRequest, client_ip: str) -> None:
        expected = self.settings.api_key
        if not expected:
            return
        header = request.header('Authorization') or ''
        provided = header[len('Bearer '):] if header.startswith('Bearer ') else ''
        if not provided or not hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8')):
            log_security_event('api_key_rejected', {'ip': client_ip, 'credentials_sent': bool(header)})
            raise ApiKeyRejected()

    def check_csrf(self, request: InboundRequest, client_ip: str) -> None:
        if not self.settings.csrf_enabled:
            return
        header_token = request.header(CSRF_HEADER_NAME)
        cookie_token = request.cookies.get(CSRF_COOKIE_NAME)
        if not self.csrf_guard.validate(header_token, cookie_token):
            log_security_event('csrf_violation', {
                'ip': client_ip,
                'header_sent': bool(header_token),
                'pair_complete': bool(header_token and cookie_token),
            })
            raise CsrfRejected()

    def check_rate_limit(self, client_ip: str) -> RateLimitResult:
        result = self.rate_limiter.check(
            client_ip,
            self.settings.rate_limit_per_minute,
            self.settings.rate_limit_window_seconds,
        )
        if not result.allowed:
            log_security_event('rate_limit_exceeded', {'ip': client_ip, 'limit': result.limit})
            raise RateLimited(
                limit=result.limit,
                remaining=result.remaining,
                reset_time=result.reset_time,
                retry_after=result.retry_after(self.rate_limiter.clock()),
            )
        return result

    @staticmethod
    def parse_body(body: bytes) -> Dict[str, Any]:
        try:
            data = json.loads(body or b'')
        except (ValueError, UnicodeDecodeError, RecursionError):
            raise ValidationFailure(['Request body must be valid JSON'], message='Invalid request body')
        if not isinstance(data, dict):
            raise ValidationFailure(['Request body must be a JSON object'], message='Invalid request body')
        return data

    def check_spam(self, token: Any, client_ip: str) -> None:
        if not self.spam_verifier.verify(token if isinstance(token, str) else None, client_ip):
            log_security_event('spam_verification_failed', {'ip': client_ip, 'challenge_sent': bool(token)})
            raise SpamRejected()
