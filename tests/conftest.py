"""
Pytest configuration and shared fixtures for the form intake tests.

Outbound HTTP goes through httpx.MockTransport and the rate limit store is
an in-memory double, so no test touches the network or a real Redis.
"""

from typing import Callable, Dict, List, Optional

import httpx
import pytest
import redis

from app import create_app
from config.settings import IntakeSettings

ORIGIN = 'https://site.example'
NOW = 1_700_000_000.0


class FakeClock:
    """Manually advanced epoch-seconds clock"""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Minimal get/setex store; set fail=True to simulate an outage"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise redis.ConnectionError('connection refused')

    def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def ping(self) -> bool:
        self._check()
        return True


class HttpRecorder:
    """
    Routes outbound requests to per-host handlers and records every call

    Hosts without a handler answer 200 with an empty JSON object.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handlers: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def route(self, host: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handlers[host] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            return httpx.Response(200, json={})
        return handler(request)

    def to(self, host: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def http() -> HttpRecorder:
    recorder = HttpRecorder()
    recorder.route('api.airtable.com',
                   lambda request: httpx.Response(200, json={'records': [{'id': 'rec123'}]}))
    recorder.route('api.resend.com',
                   lambda request: httpx.Response(200, json={'id': 'email_456'}))
    return recorder


@pytest.fixture
def settings() -> IntakeSettings:
    return IntakeSettings(
        allowed_origins=f"{ORIGIN},.trusted.example",
        rate_limit_per_minute=3,
        rate_limit_window_seconds=60,
        airtable_api_key='pat-test',
        airtable_base_id='appBase',
        resend_api_key='re_test',
        resend_from_email='forms@site.example',
        resend_to_email='owner@site.example',
        retry_base_delay_seconds=0,
    )


@pytest.fixture
def make_app(fake_redis, http, clock):
    """Build an app for the given settings with all I/O faked"""
    def factory(settings: IntakeSettings, redis_client=fake_redis):
        app = create_app('testing', settings=settings, redis_client=redis_client,
                         transport=http.transport, clock=clock, sleep=lambda seconds: None)
        return app
    return factory


@pytest.fixture
def app(make_app, settings):
    return make_app(settings)


@pytest.fixture
def client(app):
    # Cookies are sent as raw headers; the cookie jar would drop them
    return app.test_client(use_cookies=False)
