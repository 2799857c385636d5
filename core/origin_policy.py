# core/origin_policy.py
"""
Origin allow-list policy and CORS header generation
"""

from typing import Dict, Iterable, List, Optional, Union

ALLOWED_METHODS = 'GET, POST, OPTIONS'
ALLOWED_HEADERS = 'Content-Type, Authorization, X-Requested-With, X-CSRF-Token'
PREFLIGHT_MAX_AGE = '86400'


def parse_allow_list(allowed_origins: Union[str, Iterable[str], None]) -> List[str]:
    """Split a comma-separated allow-list into trimmed, non-empty entries"""
    if allowed_origins is None:
        return []
    if isinstance(allowed_origins, str):
        entries = allowed_origins.split(',')
    else:
        entries = list(allowed_origins)
    return [entry.strip() for entry in entries if entry and entry.strip()]


def _matches(origin: str, entry: str) -> bool:
    if entry == '*':
        return True
    if origin == entry:
        return True
    # ".example.com" admits any origin ending with that suffix
    return entry.startswith('.') and origin.endswith(entry)


def is_allowed(origin: Optional[str], allowed_origins: Union[str, Iterable[str], None]) -> bool:
    """
    Decide whether a declared origin is admitted by the allow-list

    Args:
        origin: Value of the Origin header (None when absent)
        allowed_origins: Comma-separated list or iterable of entries. Entries
            are "*", an exact origin, or a ".suffix" domain match.

    Returns:
        True if the origin is allowed. An absent origin is never allowed.
    """
    if not origin:
        return False
    return any(_matches(origin, entry) for entry in parse_allow_list(allowed_origins))


def cors_headers(origin: Optional[str], allowed_origins: Union[str, Iterable[str], None]) -> Dict[str, str]:
    """
    Build CORS response headers for a request

    An allowed origin is reflected back. When the allow-list contains "*"
    and the request carried no Origin, "*" is returned. Anything else
    degrades to "null". Access-Control-Allow-Credentials is sent only when
    the origin matched an exact or ".suffix" entry.
    """
    entries = parse_allow_list(allowed_origins)

    if is_allowed(origin, entries):
        allow_origin = origin
    elif not origin and '*' in entries:
        allow_origin = '*'
    else:
        allow_origin = 'null'

    headers = {
        'Access-Control-Allow-Origin': allow_origin,
        'Access-Control-Allow-Methods': ALLOWED_METHODS,
        'Access-Control-Allow-Headers': ALLOWED_HEADERS,
        'Access-Control-Max-Age': PREFLIGHT_MAX_AGE,
        'Vary': 'Origin',
    }
    # Credentials only for origins named explicitly, never through "*"
    if origin and any(entry != '*' and _matches(origin, entry) for entry in entries):
        headers['Access-Control-Allow-Credentials'] = 'true'
    return headers
