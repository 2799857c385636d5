# core/security_events.py
"""
Security event logging for rejected requests
"""

import json
import logging
from typing import Any, Dict, Optional

from core.log_redaction import redact

logger = logging.getLogger('formgate.security')


def log_security_event(event_type: str, details: Optional[Dict[str, Any]] = None) -> None:
    """
    Log a security event for the audit trail

    Args:
        event_type: Short event name, e.g. "csrf_violation"
        details: Additional event details (sensitive keys are redacted)
    """
    safe_details = redact(details or {})
    logger.warning(f"Security event: {event_type} {json.dumps(safe_details, default=str, sort_keys=True)}")
