# core/log_redaction.py
"""
Sensitive value redaction for log output
"""

import logging
import re
from typing import Any

REDACTED = '[REDACTED]'

SENSITIVE_KEYWORDS = (
    'password', 'token', 'key', 'secret',
    'authorization', 'cookie', 'session',
)

_SENSITIVE_PAIR = re.compile(
    r'(?i)\b([\w-]*(?:' + '|'.join(SENSITIVE_KEYWORDS) + r')[\w-]*)(\s*[=:]\s*)("[^"]*"|\'[^\']*\'|[^\s,;}\]]+)'
)


def is_sensitive_key(name: Any) -> bool:
    lowered = str(name).lower()
    return any(keyword in lowered for keyword in SENSITIVE_KEYWORDS)


def redact(data: Any) -> Any:
    """
    Return a copy of data with sensitive values replaced

    Dict keys containing any sensitive keyword (case-insensitive) have their
    value replaced, at any nesting depth. Non-container values are returned
    unchanged.
    """
    if isinstance(data, dict):
        return {
            key: REDACTED if is_sensitive_key(key) else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact(item) for item in data)
    return data


def redact_text(message: str) -> str:
    """Mask name=value / name: value fragments whose name is sensitive"""
    return _SENSITIVE_PAIR.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", message)


class RedactingFilter(logging.Filter):
    """Scrubs sensitive values from every record before it is emitted"""

    _traceback_formatter = logging.Formatter()

    def filter(self, record: logging.LogRecord) -> bool:
        # Render tracebacks here so handlers only ever see the scrubbed text
        if record.exc_info:
            record.exc_text = self._traceback_formatter.formatException(record.exc_info)
            record.exc_info = None
        if record.exc_text:
            record.exc_text = redact_text(record.exc_text)
        if record.stack_info:
            record.stack_info = redact_text(record.stack_info)

        if isinstance(record.args, dict):
            record.args = redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(redact(arg) for arg in record.args)

        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True

        scrubbed = redact_text(message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None
        return True
