"""Unit tests for auth/tokens.py -- token issuance and verification.

Covers:
- issue()/verify() carries the identity snapshot, type, issuer and audience
- refresh tokens get the refresh lifetime
- expired token -> expired (not malformed)
- wrong key / issuer / audience, garbage input -> malformed
- claims outside the closed role set or missing sub -> malformed
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import AuthenticationErrorKind
from auth.models import CallerIdentity, Role, TokenType
from auth.tokens import TokenCodec
from core.config import AuthConfig

KEY = "unit-test-signing-key-0123456789abcdef"
IDENTITY = CallerIdentity(id=7, username="mona", email="mona@taskwarden.dev", role=Role.manager)


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(secret_key=KEY, access_ttl=timedelta(hours=1), refresh_ttl=timedelta(days=7))


@pytest.fixture
def codec(config) -> TokenCodec:
    return TokenCodec(config)


def _raw_payload(config: AuthConfig, **overrides) -> dict:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "7",
        "username": "mona",
        "email": "mona@taskwarden.dev",
        "role": "manager",
        "type": "access",
        "iat": int(now.timestamp()),
        "iss": config.issuer,
        "aud": config.audience,
        "exp": int((now + timedelta(minutes=5)).timestamp()),
    }
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not None}


class TestIssueVerify:
    def test_access_round_trip(self, codec, config):
        claims = codec.verify(codec.issue(IDENTITY)).unwrap()
        assert claims.subject_id == 7
        assert claims.username == "mona"
        assert claims.email == "mona@taskwarden.dev"
        assert claims.role is Role.manager
        assert claims.token_type is TokenType.access
        assert claims.issuer == config.issuer
        assert claims.audience == config.audience
        assert claims.identity() == IDENTITY

    def test_access_lifetime(self, codec):
        claims = codec.verify(codec.issue(IDENTITY)).unwrap()
        assert claims.expires_at - claims.issued_at == timedelta(hours=1)
        assert codec.expires_in(TokenType.access) == 3600

    def test_refresh_lifetime(self, codec):
        claims = codec.verify(codec.issue(IDENTITY, TokenType.refresh)).unwrap()
        assert claims.token_type is TokenType.refresh
        assert claims.expires_at - claims.issued_at == timedelta(days=7)

    def test_sub_travels_as_string(self, codec):
        payload = jwt.get_unverified_claims(codec.issue(IDENTITY))
        assert payload["sub"] == "7"


class TestVerifyFailures:
    def test_expired(self, config, codec):
        stale = TokenCodec(config, clock=lambda: datetime.now(timezone.utc) - timedelta(days=2))
        result = codec.verify(stale.issue(IDENTITY))
        assert result.failure.kind == AuthenticationErrorKind.expired

    def test_expiry_checked_against_wall_time_not_codec_clock(self, config):
        # The codec's own clock places "now" inside the token's lifetime, but
        # verification still rejects it because real time is past exp.
        stale = TokenCodec(config, clock=lambda: datetime.now(timezone.utc) - timedelta(days=2))
        result = stale.verify(stale.issue(IDENTITY))
        assert result.failure.kind == AuthenticationErrorKind.expired

    def test_wrong_key(self, config, codec):
        other = TokenCodec(AuthConfig(secret_key="x" * 40, issuer=config.issuer, audience=config.audience))
        result = codec.verify(other.issue(IDENTITY))
        assert result.failure.kind == AuthenticationErrorKind.malformed

    def test_wrong_issuer(self, codec):
        other = TokenCodec(AuthConfig(secret_key=KEY, issuer="someone-else"))
        assert codec.verify(other.issue(IDENTITY)).failure.kind == AuthenticationErrorKind.malformed

    def test_wrong_audience(self, codec):
        other = TokenCodec(AuthConfig(secret_key=KEY, audience="other-app"))
        assert codec.verify(other.issue(IDENTITY)).failure.kind == AuthenticationErrorKind.malformed

    @pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c", "Bearer xyz"])
    def test_garbage(self, codec, garbage):
        assert codec.verify(garbage).failure.kind == AuthenticationErrorKind.malformed

    def test_unknown_role(self, config, codec):
        token = jwt.encode(_raw_payload(config, role="superuser"), KEY, algorithm="HS256")
        assert codec.verify(token).failure.kind == AuthenticationErrorKind.malformed

    def test_unknown_token_type(self, config, codec):
        token = jwt.encode(_raw_payload(config, type="session"), KEY, algorithm="HS256")
        assert codec.verify(token).failure.kind == AuthenticationErrorKind.malformed

    def test_missing_subject(self, config, codec):
        token = jwt.encode(_raw_payload(config, sub=None), KEY, algorithm="HS256")
        assert codec.verify(token).failure.kind == AuthenticationErrorKind.malformed

    def test_failure_message_never_echoes_token(self, codec):
        token = codec.issue(IDENTITY) + "tampered"
        result = codec.verify(token)
        assert not result.ok
        assert token not in result.failure.message
