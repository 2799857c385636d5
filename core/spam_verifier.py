# core/spam_verifier.py
"""
Spam challenge verification (Cloudflare Turnstile siteverify)
"""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

TOKEN_FIELD = 'cf-turnstile-response'


class SpamVerifier:
    """
    Forwards a client challenge token to the verification endpoint

    Policy:
        - no secret configured: verification disabled, request allowed
        - secret configured but no token: rejected
        - network failure or malformed response: rejected
    There is no retry; a failed verification rejects only this request.
    """

    def __init__(self, secret: Optional[str], verify_url: str,
                 timeout: float = 5.0, transport: Optional[httpx.BaseTransport] = None):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def verify(self, token: Optional[str], client_ip: str) -> bool:
        """
        Verify a challenge token

        Args:
            token: Token produced by the client-side widget
            client_ip: Client IP forwarded to the provider

        Returns:
            True if the request may proceed
        """
        if not self.enabled:
            logger.warning("Spam verification secret not configured, skipping verification")
            return True

        if not token or not isinstance(token, str):
            return False

        form = {
            'secret': self.secret,
            'response': token,
            'remoteip': client_ip,
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.verify_url, data=form)
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Spam verification request failed: {e}")
            return False

        if not isinstance(data, dict):
            logger.error("Spam verification returned a malformed response")
            return False

        verdict = data.get('success') is True
        if not verdict:
            logger.info(f"Spam verification rejected token: {data.get('error-codes', [])}")
        return verdict
