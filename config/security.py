# config/security.py
"""
Flask configuration classes
"""

import os


class SecurityConfig:
    """Base configuration shared by every environment"""

    TESTING = False
    DEBUG = False

    # Reject request bodies larger than 1MB
    MAX_CONTENT_LENGTH = 1024 * 1024

    # Requests slower than this are logged (milliseconds)
    SLOW_REQUEST_THRESHOLD = 1000

    # /health/detailed reuses the record store connectivity result this long (seconds)
    HEALTH_CHECK_CACHE_SECONDS = 60

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(name)s[%(process)d]: %(levelname)s %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE')

    VERSION = os.environ.get('APP_VERSION', '1.0.0')

    # Security headers added to every response
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'X-XSS-Protection': '1; mode=block',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()',
        'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
    }

    # Anti-forgery cookie lifetime; the token itself never expires server-side
    CSRF_COOKIE_MAX_AGE = 3600


class DevelopmentConfig(SecurityConfig):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class TestingConfig(SecurityConfig):
    TESTING = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(SecurityConfig):
    pass


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
