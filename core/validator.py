# core/validator.py
"""
Form field validation and sanitization

Validation runs on the raw client fields and reports every problem in a
stable order: the required-field pass first, then per-field rules in
submission order. Sanitization is a separate pass producing the copy
that is stored and emailed.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_STRING_LENGTH = 10000
NUMBER_LIMIT = 999999999

HTML_ENTITIES = {
    '&': '&amp;',
    '<': '&lt;',
    '>': '&gt;',
    '"': '&quot;',
    "'": '&#39;',
}

# "&" that does not already start a character reference
_BARE_AMPERSAND = re.compile(r'&(?!(?:[a-zA-Z][a-zA-Z0-9]*|#\d+|#[xX][0-9a-fA-F]+);)')
_MARKUP_CHARS = re.compile(r'[<>"\']')
# Null and control characters, keeping \t \n \r
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')
_WHITESPACE = re.compile(r'\s+')
# Character reference cut short by truncation
_PARTIAL_ENTITY = re.compile(r'&[#a-zA-Z0-9]*$')


@dataclass(frozen=True)
class LengthLimit:
    min: int
    max: int


@dataclass
class ValidationResult:
    """Result of validating one set of form fields"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'valid': self.is_valid, 'errors': list(self.errors)}


class FormValidator:
    """
    Validates and sanitizes untrusted form submissions
    """

    PATTERNS = {
        # local@domain.tld shape only; intranet and reserved domains are accepted
        'email': re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$'),
        'phone': re.compile(r'^\+?\d{1,16}$'),
        'url': re.compile(r'^https?://.+', re.IGNORECASE),
        'name': re.compile(r"^(?:[^\W\d_]|[\s'-])+$"),
        'alphanumeric': re.compile(r'^(?:[^\W_]|\s)+$'),
    }

    LIMITS = {
        'name': LengthLimit(1, 100),
        'email': LengthLimit(5, 254),
        'phone': LengthLimit(10, 20),
        'message': LengthLimit(1, 5000),
        'subject': LengthLimit(1, 200),
        'company': LengthLimit(1, 100),
        'website': LengthLimit(1, 200),
    }

    _PHONE_SEPARATORS = re.compile(r'[\s\-().]')

    def __init__(self, limits: Optional[Mapping[str, LengthLimit]] = None):
        self.limits = dict(self.LIMITS)
        if limits:
            self.limits.update(limits)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _as_text(value: Any) -> str:
        if value is None:
            return ''
        if isinstance(value, bool):
            return 'true' if value else 'false'
        return str(value).strip()

    def validate(self, fields: Mapping[str, Any], required_fields: Iterable[str] = ()) -> ValidationResult:
        """
        Validate form fields

        Args:
            fields: Raw field name -> value mapping
            required_fields: Names that must be present and non-blank

        Returns:
            ValidationResult with errors ordered required-pass first
        """
        errors: List[str] = []

        for name in required_fields:
            if name not in fields or not self._as_text(fields[name]):
                errors.append(f"{name} is required")

        for name, value in fields.items():
            errors.extend(self.validate_field(name, value))

        return ValidationResult(is_valid=not errors, errors=errors)

    def validate_field(self, name: str, value: Any) -> List[str]:
        """Apply length and format rules to a single field"""
        if isinstance(value, (dict, list, tuple, set)):
            return [f"{name} must be a string, number, or boolean"]

        text = self._as_text(value)
        if not text:
            # Blank values are the required pass's concern
            return []

        errors = []

        limit = self.limits.get(name)
        if limit:
            if len(text) < limit.min:
                errors.append(f"{name} must be at least {limit.min} characters long")
            if len(text) > limit.max:
                errors.append(f"{name} must be no more than {limit.max} characters long")

        if name == 'email':
            if not self.is_valid_email(text):
                errors.append('Invalid email format')
        elif name == 'phone':
            if not self.is_valid_phone(text):
                errors.append('Invalid phone number format')
        elif name == 'website':
            if not self.is_valid_url(text):
                errors.append('Invalid website URL format')
        elif name == 'name':
            if not self.PATTERNS['name'].match(text):
                errors.append('Name contains invalid characters')
        elif name == 'company':
            if not self.PATTERNS['alphanumeric'].match(text):
                errors.append('Company name contains invalid characters')

        return errors

    def is_valid_email(self, email: str) -> bool:
        return bool(self.PATTERNS['email'].match(email))

    def is_valid_phone(self, phone: str) -> bool:
        return bool(self.PATTERNS['phone'].match(self._PHONE_SEPARATORS.sub('', phone)))

    def is_valid_url(self, url: str) -> bool:
        return bool(self.PATTERNS['url'].match(url))

    # ------------------------------------------------------------------
    # Sanitization
    # ------------------------------------------------------------------

    @staticmethod
    def sanitize_string(value: str) -> str:
        """
        Produce a storage-safe copy of an untrusted string

        Control characters are removed, the five markup-significant
        characters are entity-encoded (existing character references are
        left intact so repeated sanitizing is stable), whitespace runs are
        collapsed and the result is capped at MAX_STRING_LENGTH.
        """
        if not isinstance(value, str):
            value = str(value)

        value = _CONTROL_CHARS.sub('', value)
        value = _BARE_AMPERSAND.sub('&amp;', value)
        value = _MARKUP_CHARS.sub(lambda m: HTML_ENTITIES[m.group(0)], value)
        value = _WHITESPACE.sub(' ', value).strip()

        if len(value) > MAX_STRING_LENGTH:
            value = _PARTIAL_ENTITY.sub('', value[:MAX_STRING_LENGTH]).rstrip()

        return value

    @staticmethod
    def sanitize_number(value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        if not math.isfinite(value):
            return 0
        return max(-NUMBER_LIMIT, min(NUMBER_LIMIT, value))

    def sanitize_value(self, value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return self.sanitize_number(value)
        if value is None:
            return ''
        return self.sanitize_string(value if isinstance(value, str) else str(value))

    def sanitize(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        """Sanitize every field value, preserving field order"""
        return {str(name): self.sanitize_value(value) for name, value in fields.items()}

    def get_field_rules(self, name: str) -> Dict[str, Any]:
        limit = self.limits.get(name)
        return {
            'limits': {'min': limit.min, 'max': limit.max} if limit else None,
            'format': name if name in ('email', 'phone', 'website', 'name', 'company') else None,
        }
