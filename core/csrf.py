# core/csrf.py
"""
Stateless double-submit cookie guard

The server keeps no token state: a request is genuine when the token in
the X-CSRF-Token header equals the token in the __Host- cookie, which a
third-party page can neither read nor set.
"""

import hmac
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

CSRF_COOKIE_NAME = '__Host-csrf-token'
CSRF_HEADER_NAME = 'X-CSRF-Token'

# 32 bytes from the OS CSPRNG, 256 bits of entropy
TOKEN_BYTES = 32


@dataclass(frozen=True)
class CookieDirectives:
    """Attributes the issued cookie must carry"""
    name: str = CSRF_COOKIE_NAME
    path: str = '/'
    secure: bool = True
    httponly: bool = True
    samesite: str = 'Strict'
    max_age: Optional[int] = None

    def as_set_cookie_kwargs(self) -> Dict[str, Any]:
        return {
            'path': self.path,
            'secure': self.secure,
            'httponly': self.httponly,
            'samesite': self.samesite,
            'max_age': self.max_age,
        }


class CsrfGuard:
    """Issues and checks double-submit anti-forgery tokens"""

    def __init__(self, directives: Optional[CookieDirectives] = None):
        self.directives = directives or CookieDirectives()

    def issue(self) -> Tuple[str, CookieDirectives]:
        """
        Generate a fresh token

        Returns:
            Tuple of (token, cookie directives for setting it)
        """
        return secrets.token_urlsafe(TOKEN_BYTES), self.directives

    @staticmethod
    def validate(header_token: Optional[str], cookie_token: Optional[str]) -> bool:
        """
        Check a header/cookie token pair

        Both values must be present and identical. Comparison is constant-time.
        """
        if not header_token or not cookie_token:
            return False
        return hmac.compare_digest(header_token.encode('utf-8'), cookie_token.encode('utf-8'))
