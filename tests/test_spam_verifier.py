"""Tests for the spam challenge verifier."""

from urllib.parse import parse_qs

import httpx
import pytest

from core.spam_verifier import SpamVerifier

VERIFY_URL = 'https://challenges.example/siteverify'


def make_verifier(handler, secret='shh') -> SpamVerifier:
    return SpamVerifier(secret, VERIFY_URL, timeout=1.0, transport=httpx.MockTransport(handler))


class TestSpamVerifier:
    def test_disabled_without_secret(self) -> None:
        def handler(request):
            raise AssertionError('no outbound call expected')

        verifier = make_verifier(handler, secret=None)
        assert not verifier.enabled
        assert verifier.verify(None, '1.2.3.4')

    def test_missing_token_rejected_without_call(self) -> None:
        calls = []
        verifier = make_verifier(lambda request: calls.append(request) or httpx.Response(200, json={'success': True}))
        assert not verifier.verify(None, '1.2.3.4')
        assert not verifier.verify('', '1.2.3.4')
        assert calls == []

    def test_successful_verification_posts_form(self) -> None:
        seen = []

        def handler(request):
            seen.append(parse_qs(request.content.decode()))
            return httpx.Response(200, json={'success': True})

        assert make_verifier(handler).verify('tok', '1.2.3.4')
        assert seen == [{'secret': ['shh'], 'response': ['tok'], 'remoteip': ['1.2.3.4']}]

    @pytest.mark.parametrize('body', [
        {'success': False, 'error-codes': ['invalid-input-response']},
        {'success': 'true'},
        {},
        [],
    ])
    def test_negative_or_malformed_verdict(self, body) -> None:
        assert not make_verifier(lambda request: httpx.Response(200, json=body)).verify('tok', '1.2.3.4')

    def test_network_error_fails_closed(self) -> None:
        def handler(request):
            raise httpx.ConnectError('unreachable')

        assert not make_verifier(handler).verify('tok', '1.2.3.4')

    def test_non_json_response_fails_closed(self) -> None:
        assert not make_verifier(lambda request: httpx.Response(502, text='<html>')).verify('tok', '1.2.3.4')
