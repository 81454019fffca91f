"""Unit tests for auth/gate.py -- mandatory and optional authentication.

Covers:
- valid access token -> CallerIdentity from the claims
- no credential -> missing_credential
- refresh token presented as access -> wrong_token_type
- codec failure kinds pass through unchanged
- optional variant returns None for every failure instead of failing
- the request object is never written to
"""

from datetime import datetime, timedelta, timezone

import pytest
from starlette.requests import Request

from auth.errors import AuthenticationErrorKind
from auth.gate import AuthenticationGate
from auth.models import CallerIdentity, Role, TokenType
from auth.tokens import TokenCodec
from core.config import AuthConfig

IDENTITY = CallerIdentity(id=3, username="alice", email="alice@taskwarden.dev", role=Role.user)


def _request(token: str | None = None) -> Request:
    headers = []
    if token is not None:
        headers.append((b"authorization", f"Bearer {token}".encode("latin-1")))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "query_string": b""})


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(AuthConfig(secret_key="gate-test-key-" + "0" * 32))


@pytest.fixture
def gate(codec) -> AuthenticationGate:
    return AuthenticationGate(codec)


class TestAuthenticate:
    def test_valid_access_token(self, gate, codec):
        result = gate.authenticate(_request(codec.issue(IDENTITY)))
        assert result.ok
        assert result.value == IDENTITY

    def test_missing_credential(self, gate):
        result = gate.authenticate(_request())
        assert result.failure.kind == AuthenticationErrorKind.missing_credential

    def test_refresh_token_rejected(self, gate, codec):
        result = gate.authenticate(_request(codec.issue(IDENTITY, TokenType.refresh)))
        assert result.failure.kind == AuthenticationErrorKind.wrong_token_type
        assert result.failure.message == "Invalid token type."

    def test_expired_kind_passes_through(self, gate, codec):
        stale = TokenCodec(
            AuthConfig(secret_key="gate-test-key-" + "0" * 32),
            clock=lambda: datetime.now(timezone.utc) - timedelta(days=3),
        )
        result = gate.authenticate(_request(stale.issue(IDENTITY)))
        assert result.failure.kind == AuthenticationErrorKind.expired

    def test_malformed_kind_passes_through(self, gate):
        result = gate.authenticate(_request("garbage"))
        assert result.failure.kind == AuthenticationErrorKind.malformed

    def test_custom_extractor(self, codec):
        token = codec.issue(IDENTITY)
        gate = AuthenticationGate(codec, extractor=lambda request: token)
        assert gate.authenticate(_request()).value == IDENTITY

    def test_request_state_untouched(self, gate, codec):
        request = _request(codec.issue(IDENTITY))
        gate.authenticate(request)
        assert not hasattr(request.state, "user")
        assert "state" not in request.scope or not request.scope["state"]


class TestAuthenticateOptional:
    def test_identity_when_valid(self, gate, codec):
        assert gate.authenticate_optional(_request(codec.issue(IDENTITY))) == IDENTITY

    @pytest.mark.parametrize("token", [None, "garbage"])
    def test_none_on_failure(self, gate, token):
        assert gate.authenticate_optional(_request(token)) is None

    def test_none_for_refresh_token(self, gate, codec):
        assert gate.authenticate_optional(_request(codec.issue(IDENTITY, TokenType.refresh))) is None
