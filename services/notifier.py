# services/notifier.py
"""
Resend transactional email adapter
"""

import html
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from email_validator import EmailNotValidError, validate_email

from core.exceptions import TransientIntegrationFailure
from core.models import ServiceResult, Submission
from core.retry import with_retry
from services.email_templates import NotificationRenderer

logger = logging.getLogger(__name__)


class ResendNotifier:
    """Sends a notification email for every submission"""

    name = 'notifier'

    def __init__(self,
                 api_key: str,
                 from_email: str,
                 to_email: str,
                 subject: str = 'New Form Submission',
                 base_url: str = 'https://api.resend.com',
                 timeout: float = 10.0,
                 max_attempts: int = 3,
                 retry_base_delay: float = 1.0,
                 renderer: Optional[NotificationRenderer] = None,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.api_key = api_key
        self.from_email = from_email
        self.to_email = [addr.strip() for addr in to_email.split(',') if addr.strip()]
        self.subject = subject
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay
        self.renderer = renderer or NotificationRenderer(title=subject)
        self.transport = transport
        self.sleep = sleep

    def build_payload(self, submission: Submission, submission_id: str) -> Dict[str, Any]:
        rendered = self.renderer.render(submission, submission_id, self.subject)
        payload: Dict[str, Any] = {
            'from': self.from_email,
            'to': self.to_email,
            'subject': rendered.subject,
            'html': rendered.html,
            'text': rendered.text,
        }
        reply_to = self.reply_to_address(submission.get('email'))
        if reply_to:
            payload['reply_to'] = reply_to
        return payload

    @staticmethod
    def reply_to_address(value: Any) -> Optional[str]:
        """
        Normalized submitter address for the Reply-To header

        Returns None for addresses the provider cannot route (reserved or
        intranet domains such as @mail.local, malformed local parts).
        """
        if not isinstance(value, str) or not value:
            return None
        try:
            return validate_email(html.unescape(value), check_deliverability=False).normalized
        except EmailNotValidError:
            logger.info("Submitter address is not routable, sending without reply_to")
            return None

    def deliver(self, submission: Submission, submission_id: str) -> ServiceResult:
        """
        Send the notification email

        Returns:
            ServiceResult carrying the provider message id on success

        Raises:
            TransientIntegrationFailure: Network errors persisted through every attempt
        """
        payload = self.build_payload(submission, submission_id)
        headers = {
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json',
        }

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = with_retry(
                    lambda: client.post(f"{self.base_url}/emails", json=payload, headers=headers),
                    max_attempts=self.max_attempts,
                    base_delay=self.retry_base_delay,
                    sleep=self.sleep,
                    description=f"Resend notification for {submission_id}",
                )
            except httpx.TransportError as e:
                raise TransientIntegrationFailure(self.name, str(e)) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_success:
            message_id = data.get('id') if isinstance(data, dict) else None
            logger.info(f"Notification for {submission_id} sent as {message_id}")
            return ServiceResult(success=True, provider_id=message_id)

        detail = data.get('message') if isinstance(data, dict) else None
        error = f"Resend API error: {response.status_code} - {detail or 'Unknown error'}"
        logger.error(f"Notification for {submission_id} failed: {error}")
        return ServiceResult(success=False, error=error)
