# middleware/security.py
"""
Response middleware: security and CORS headers
"""

import logging

from flask import current_app, request

from core.origin_policy import cors_headers

logger = logging.getLogger(__name__)


def security_headers(response):
    """Add security headers to all responses"""
    for name, value in current_app.config.get('SECURITY_HEADERS', {}).items():
        response.headers.setdefault(name, value)
    return response


def apply_cors_headers(response, allowed_origins):
    """Add CORS headers reflecting the request origin when it is allowed"""
    for name, value in cors_headers(request.headers.get('Origin'), allowed_origins).items():
        response.headers[name] = value
    return response


def rate_limit_headers(response, rate_limit):
    """Expose the caller's remaining budget"""
    if rate_limit is None or rate_limit.degraded:
        return response
    response.headers['X-RateLimit-Limit'] = str(rate_limit.limit)
    response.headers['X-RateLimit-Remaining'] = str(max(0, rate_limit.remaining))
    return response
