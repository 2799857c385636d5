# app.py
"""
Flask Application Factory for the Form Intake Service

This application factory wires together:
- Origin, API key and anti-forgery guards
- Redis-backed sliding-window rate limiting (fails open without Redis)
- Spam challenge verification
- Field validation and sanitization
- Best-effort fan-out to the record store and email notifier
- Structured error handling and log redaction
- Health endpoints for monitoring and load balancing
"""

import logging
import logging.handlers
import os
import sys
import time
from datetime import datetime, timezone
from typing import Optional

import httpx
import redis
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from api.forms import forms_bp
from config.security import CONFIGS, ProductionConfig
from config.settings import IntakeSettings
from core.csrf import CookieDirectives, CsrfGuard
from core.dispatcher import SubmissionDispatcher
from core.exceptions import IntakeError, RateLimited
from core.log_redaction import RedactingFilter
from core.pipeline import AdmissionPipeline
from core.rate_limiter import RateLimiter
from core.spam_verifier import SpamVerifier
from core.validator import FormValidator
from middleware.security import apply_cors_headers, security_headers
from services.factory import build_delivery_services

METHOD_NOT_ALLOWED_MESSAGE = 'Method not allowed. Use GET /csrf-token to get a token, or POST / to submit the form.'


def setup_logging(app: Flask, level_name: str) -> None:
    """
    Configure logging for the service

    Every handler carries a RedactingFilter so credentials, tokens and
    cookies never reach the log output.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, '_formgate_handler', False):
            root.removeHandler(handler)

    journal_formatter = logging.Formatter(
        fmt=app.config.get('LOG_FORMAT', '%(name)s[%(process)d]: %(levelname)s %(message)s'),
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, level_name.upper(), logging.INFO)
    redacting_filter = RedactingFilter()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(journal_formatter)
    stream_handler.setLevel(log_level)
    stream_handler.addFilter(redacting_filter)
    stream_handler._formgate_handler = True
    root.addHandler(stream_handler)

    # Optional rotating file handler for detailed debugging
    log_file = app.config.get('LOG_FILE')
    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(redacting_filter)
        file_handler._formgate_handler = True
        root.addHandler(file_handler)

    root.setLevel(log_level)
    app.logger.setLevel(log_level)

    # Suppress verbose third-party logs
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)


def create_redis_client(app: Flask, settings: IntakeSettings) -> Optional[redis.Redis]:
    """
    Create the Redis client used by the rate limiter

    Returns:
        Redis client, or None when REDIS_URL is not configured. Connectivity
        problems are logged but never prevent startup: the limiter fails open.
    """
    if not settings.redis_url:
        app.logger.warning("REDIS_URL not configured, rate limiting disabled (degraded mode)")
        return None

    client = redis.Redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=False,
        health_check_interval=30,
    )

    try:
        client.ping()
        app.logger.info("Redis rate limit client connected successfully")
    except redis.RedisError as e:
        app.logger.warning(f"Redis rate limit connection failed, continuing in degraded mode: {e}")

    return client


def configure_pipeline(app: Flask, settings: IntakeSettings,
                       redis_client: Optional[redis.Redis],
                       transport: Optional[httpx.BaseTransport] = None,
                       clock=None, sleep=None) -> None:
    """Build the admission pipeline and dispatcher and attach them to the app"""
    limiter_kwargs = {'clock': clock} if clock else {}
    rate_limiter = RateLimiter(redis_client, **limiter_kwargs)

    spam_verifier = SpamVerifier(
        secret=settings.turnstile_secret_key,
        verify_url=settings.turnstile_verify_url,
        timeout=settings.spam_timeout_seconds,
        transport=transport,
    )
    if not spam_verifier.enabled:
        app.logger.warning("TURNSTILE_SECRET_KEY not set, spam verification disabled")

    csrf_guard = CsrfGuard(CookieDirectives(max_age=app.config.get('CSRF_COOKIE_MAX_AGE')))
    if not settings.csrf_enabled:
        app.logger.warning("CSRF protection disabled by configuration")

    app.admission_pipeline = AdmissionPipeline(
        settings=settings,
        rate_limiter=rate_limiter,
        spam_verifier=spam_verifier,
        csrf_guard=csrf_guard,
        validator=FormValidator(),
    )

    service_kwargs = {'sleep': sleep} if sleep else {}
    services = build_delivery_services(settings, transport=transport, **service_kwargs)
    app.dispatcher = SubmissionDispatcher(services)

    app.logger.info(f"Admission pipeline configured; delivery services: {', '.join(services) or 'none'}")


def register_blueprints(app: Flask) -> None:
    """Register application blueprints"""
    app.register_blueprint(forms_bp)
    app.logger.info("Application blueprints registered")


def _error_response(payload, status_code):
    response = jsonify(payload)
    response.status_code = status_code
    return response


def configure_error_handlers(app: Flask) -> None:
    """
    Map every failure onto the JSON response envelope

    Internal details are logged, never returned to the client.
    """
    @app.errorhandler(IntakeError)
    def handle_intake_error(error):
        response = _error_response(error.to_dict(), error.status_code)
        if isinstance(error, RateLimited):
            response.headers['Retry-After'] = str(error.retry_after)
            response.headers['X-RateLimit-Limit'] = str(error.limit)
            response.headers['X-RateLimit-Remaining'] = str(error.remaining)
        return response

    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return _error_response({'success': False, 'error': 'Bad request'}, 400)

    @app.errorhandler(404)
    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error_response({'success': False, 'error': METHOD_NOT_ALLOWED_MESSAGE}, 405)

    @app.errorhandler(413)
    def payload_too_large(error):
        app.logger.warning(f"Oversized request body from {request.remote_addr}")
        return _error_response({'success': False, 'error': 'Request body too large'}, 413)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return _error_response({'success': False, 'error': 'Internal server error. Please try again later.'}, 500)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return e

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return _error_response({'success': False, 'error': 'Internal server error. Please try again later.'}, 500)


def configure_health_checks(app: Flask, redis_client: Optional[redis.Redis], clock=time.monotonic) -> None:
    """
    Configure health check endpoints for monitoring and load balancing

    The record store connectivity check is an outbound provider call, so its
    result is reused for HEALTH_CHECK_CACHE_SECONDS.
    """
    record_store_check = {'checked_at': None, 'result': None}

    def cached_record_store_check(record_store):
        now = clock()
        checked_at = record_store_check['checked_at']
        if checked_at is None or now - checked_at >= app.config.get('HEALTH_CHECK_CACHE_SECONDS', 60):
            record_store_check['result'] = record_store.check_connection()
            record_store_check['checked_at'] = now
        return record_store_check['result']

    @app.route('/health', methods=['GET'])
    def health_check():
        """Basic health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0')
        })

    @app.route('/health/detailed', methods=['GET'])
    def detailed_health_check():
        """Detailed health check with component status"""
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'components': {}
        }
        components = health_status['components']

        # Rate limit store; absence only degrades the service
        if redis_client is None:
            components['rate_limit_store'] = 'not configured'
            health_status['status'] = 'degraded'
        else:
            try:
                redis_client.ping()
                components['rate_limit_store'] = 'healthy'
            except redis.RedisError as e:
                components['rate_limit_store'] = f'unhealthy: {e}'
                health_status['status'] = 'degraded'

        services = app.dispatcher.services
        if not services:
            components['delivery'] = 'no services configured'
            health_status['status'] = 'unhealthy'

        record_store = services.get('recordStore')
        if record_store is not None:
            check = cached_record_store_check(record_store)
            components['record_store'] = 'healthy' if check.success else f'unhealthy: {check.error}'
            if not check.success:
                health_status['status'] = 'degraded'

        if 'notifier' in services:
            components['notifier'] = 'configured'

        status_code = 503 if health_status['status'] == 'unhealthy' else 200
        return jsonify(health_status), status_code


def configure_request_middleware(app: Flask, settings: IntakeSettings) -> None:
    """
    Configure request/response middleware for security and monitoring
    """
    @app.before_request
    def before_request():
        """Execute before each request"""
        g.start_time = datetime.now(timezone.utc)

        # CORS preflight for any path: headers only
        if request.method == 'OPTIONS':
            return app.response_class(status=200)

    @app.after_request
    def after_request(response):
        """Execute after each request"""
        response = security_headers(response)
        response = apply_cors_headers(response, settings.allowed_origins)

        if hasattr(g, 'start_time'):
            duration = (datetime.now(timezone.utc) - g.start_time).total_seconds() * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def create_app(config_name: str = None,
               settings: Optional[IntakeSettings] = None,
               redis_client: Optional[redis.Redis] = None,
               transport: Optional[httpx.BaseTransport] = None,
               clock=None,
               sleep=None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: Configuration environment ('development', 'testing', 'production')
        settings: Intake settings; resolved from the environment when omitted
        redis_client: Rate limit store; created from settings.redis_url when omitted
        transport: httpx transport for all outbound calls (tests inject a mock)
        clock: Time source for the rate limiter
        sleep: Delay function for delivery retries

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(CONFIGS.get(config_name, ProductionConfig))

    settings = settings or IntakeSettings.from_env()
    app.intake_settings = settings

    if config_name == 'production':
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app, settings.log_level or app.config.get('LOG_LEVEL', 'INFO'))
    app.logger.info(f"Starting form intake service in {config_name} mode")

    if redis_client is None:
        redis_client = create_redis_client(app, settings)
    app.redis_client = redis_client

    configure_pipeline(app, settings, redis_client, transport=transport, clock=clock, sleep=sleep)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app, redis_client, clock=clock or time.monotonic)
    configure_request_middleware(app, settings)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    # Development server
    app = create_app('development')
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 8787)), debug=True)
