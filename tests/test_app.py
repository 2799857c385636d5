"""End-to-end tests through the Flask application."""

import json
from dataclasses import replace

import httpx
import pytest

from config.settings import IntakeSettings

ORIGIN = 'https://site.example'
VALID_FORM = {'name': 'Jo', 'email': 'jo@x.com', 'message': 'hi'}


def post_form(client, fields=None, origin=ORIGIN, token='tok', cookie='tok', extra_headers=None):
    headers = {'Content-Type': 'application/json'}
    if origin:
        headers['Origin'] = origin
    if token:
        headers['X-CSRF-Token'] = token
    if cookie:
        headers['Cookie'] = f'__Host-csrf-token={cookie}'
    headers.update(extra_headers or {})
    return client.post('/', data=json.dumps(VALID_FORM if fields is None else fields), headers=headers)


class TestSubmit:
    def test_valid_submission_is_delivered(self, client, http) -> None:
        response = post_form(client)

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['submissionId'].startswith('sub_')
        assert body['recordStore'] == {'success': True, 'id': 'rec123'}
        assert body['notifier'] == {'success': True, 'id': 'email_456'}

        assert response.headers['Access-Control-Allow-Origin'] == ORIGIN
        assert response.headers['X-RateLimit-Limit'] == '3'
        assert response.headers['X-RateLimit-Remaining'] == '2'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'

        assert len(http.to('api.airtable.com')) == 1
        assert len(http.to('api.resend.com')) == 1

    def test_partial_failure_still_succeeds(self, client, http) -> None:
        http.route('api.resend.com', lambda r: httpx.Response(401, json={'message': 'bad key'}))
        response = post_form(client)
        assert response.status_code == 200
        body = response.get_json()
        assert body['notifier'] == {'success': False, 'error': 'Resend API error: 401 - bad key'}

    def test_total_failure_is_500(self, client, http) -> None:
        http.route('api.airtable.com', lambda r: httpx.Response(403, text='NOT_AUTHORIZED'))
        http.route('api.resend.com', lambda r: httpx.Response(403, json={'message': 'nope'}))
        response = post_form(client)
        assert response.status_code == 500
        assert response.get_json()['success'] is False

    def test_no_services_configured_is_500(self, make_app) -> None:
        client = make_app(IntakeSettings(allowed_origins=ORIGIN)).test_client(use_cookies=False)
        response = post_form(client)
        assert response.status_code == 500
        assert response.get_json()['error'] == 'No delivery services are configured.'


class TestRejections:
    def test_disallowed_origin(self, client, http) -> None:
        response = post_form(client, origin='https://evil.example')
        assert response.status_code == 403
        assert response.get_json() == {'success': False, 'error': 'Origin not allowed.'}
        assert response.headers['Access-Control-Allow-Origin'] == 'null'
        assert http.requests == []

    def test_suffix_origin_allowed(self, client) -> None:
        assert post_form(client, origin='https://app.trusted.example').status_code == 200

    def test_csrf_mismatch(self, client) -> None:
        response = post_form(client, cookie='different')
        assert response.status_code == 403
        assert response.get_json()['error'] == 'Invalid CSRF token. Please refresh and try again.'

    def test_csrf_missing(self, client) -> None:
        assert post_form(client, token=None, cookie=None).status_code == 403

    def test_rate_limit_exceeded(self, client, http) -> None:
        for _ in range(3):
            assert post_form(client).status_code == 200

        response = post_form(client)
        assert response.status_code == 429
        body = response.get_json()
        assert body['success'] is False
        assert body['retryAfter'] == 60
        assert response.headers['Retry-After'] == '60'
        assert response.headers['X-RateLimit-Remaining'] == '0'
        assert len(http.to('api.airtable.com')) == 3

    def test_redis_outage_fails_open(self, client, fake_redis) -> None:
        fake_redis.fail = True
        response = post_form(client)
        assert response.status_code == 200
        assert 'X-RateLimit-Limit' not in response.headers

    def test_validation_failure(self, client, http) -> None:
        response = post_form(client, fields={'name': 'Jo', 'email': 'not-an-email', 'message': 'hi'})
        assert response.status_code == 400
        assert response.get_json() == {
            'success': False, 'error': 'Validation failed', 'details': ['Invalid email format'],
        }
        assert http.requests == []

    def test_invalid_json(self, client) -> None:
        response = client.post('/', data='{nope', headers={
            'Origin': ORIGIN, 'X-CSRF-Token': 'tok', 'Cookie': '__Host-csrf-token=tok',
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid request body'

    def test_deeply_nested_json_is_a_client_error(self, client) -> None:
        response = client.post('/', data='[' * 100000, headers={
            'Origin': ORIGIN, 'X-CSRF-Token': 'tok', 'Cookie': '__Host-csrf-token=tok',
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid request body'

    def test_spam_token_required_when_secret_set(self, make_app, settings, http) -> None:
        http.route('challenges.cloudflare.com', lambda r: httpx.Response(200, json={'success': True}))
        app = make_app(replace(settings, turnstile_secret_key='shh'))
        client = app.test_client(use_cookies=False)

        assert post_form(client).status_code == 403
        fields = dict(VALID_FORM, **{'cf-turnstile-response': 'widget-token'})
        assert post_form(client, fields=fields).status_code == 200
        assert len(http.to('challenges.cloudflare.com')) == 1

    def test_api_key(self, make_app, settings) -> None:
        app = make_app(replace(settings, api_key='k-1'))
        client = app.test_client(use_cookies=False)
        assert post_form(client).status_code == 403
        assert post_form(client, extra_headers={'Authorization': 'Bearer k-1'}).status_code == 200

    def test_oversized_body(self, client) -> None:
        response = client.post('/', data=b'x' * (1024 * 1024 + 1), headers={
            'Origin': ORIGIN, 'X-CSRF-Token': 'tok', 'Cookie': '__Host-csrf-token=tok',
            'Content-Type': 'application/json',
        })
        assert response.status_code == 413


class TestCsrfToken:
    def test_issues_token_and_cookie(self, client) -> None:
        response = client.get('/csrf-token', headers={'Origin': ORIGIN})
        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        token = body['csrfToken']

        cookie = response.headers['Set-Cookie']
        assert cookie.startswith(f'__Host-csrf-token={token}')
        assert 'Secure' in cookie
        assert 'HttpOnly' in cookie
        assert 'SameSite=Strict' in cookie
        assert 'Path=/' in cookie
        assert response.headers['Cache-Control'] == 'no-store'

    def test_issued_token_is_accepted(self, client) -> None:
        token = client.get('/csrf-token').get_json()['csrfToken']
        assert post_form(client, token=token, cookie=token).status_code == 200


class TestMethods:
    @pytest.mark.parametrize('path', ['/', '/csrf-token', '/anything'])
    def test_options_preflight(self, client, path) -> None:
        response = client.options(path, headers={'Origin': ORIGIN})
        assert response.status_code == 200
        assert response.headers['Access-Control-Allow-Origin'] == ORIGIN
        assert response.headers['Access-Control-Allow-Methods'] == 'GET, POST, OPTIONS'

    @pytest.mark.parametrize('method,path', [
        ('get', '/'),
        ('put', '/'),
        ('delete', '/'),
        ('post', '/csrf-token'),
        ('get', '/unknown'),
    ])
    def test_everything_else_is_405(self, client, method, path) -> None:
        response = getattr(client, method)(path)
        assert response.status_code == 405
        assert response.get_json()['error'].startswith('Method not allowed.')


class TestHealth:
    def test_basic(self, client) -> None:
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'

    def test_detailed(self, client, http) -> None:
        response = client.get('/health/detailed')
        assert response.status_code == 200
        components = response.get_json()['components']
        assert components['rate_limit_store'] == 'healthy'
        assert components['record_store'] == 'healthy'
        assert components['notifier'] == 'configured'

    def test_record_store_check_is_cached(self, client, http, clock) -> None:
        client.get('/health/detailed')
        client.get('/health/detailed')
        assert len(http.to('api.airtable.com')) == 1

        clock.advance(60)
        client.get('/health/detailed')
        assert len(http.to('api.airtable.com')) == 2

    def test_detailed_without_services_is_unhealthy(self, make_app) -> None:
        client = make_app(IntakeSettings(), redis_client=None).test_client()
        response = client.get('/health/detailed')
        assert response.status_code == 503
        assert response.get_json()['components']['rate_limit_store'] == 'not configured'
