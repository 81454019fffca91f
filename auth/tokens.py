"""
auth/tokens.py -- Signed token issuance and verification.

Security design decisions:
  JWT via python-jose, HS256 by default. Tokens carry
  {sub, username, email, role, type, iat, iss, aud, exp}. sub travels as a
  string (RFC 7519 StringOrURI; python-jose rejects non-string subjects) and
  is parsed back to the integer user id.

  verify() checks signature, expiry, issuer and audience, then validates the
  payload against TokenClaims. A token signed with the right key but minted
  for another issuer or audience is rejected as malformed. Unknown roles or
  token types are rejected the same way, so downstream authorization only
  ever sees the closed Role set.

  Failures are returned, never raised:
    expired    -- ExpiredSignatureError
    malformed  -- any other JWTError (bad signature, bad encoding, claim
                  mismatch, missing required claim) or a payload that does not
                  fit TokenClaims
    other      -- remaining JOSE errors (e.g. an unusable key)

  The signing secret, issuer, audience and lifetimes come from the AuthConfig
  passed to the constructor. The injectable clock stamps iat and exp at
  issuance only; verify() checks expiry against wall time, because
  jwt.decode has no way to take a reference time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWTError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from auth.errors import AuthenticationErrorKind, AuthenticationFailure, Result
from auth.models import CallerIdentity, Role, TokenType
from core.config import AuthConfig

logger = logging.getLogger("taskwarden.auth")

_DECODE_OPTIONS = {
    "require_sub": True,
    "require_iat": True,
    "require_exp": True,
    "require_iss": True,
    "require_aud": True,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenClaims(BaseModel):
    """Verified claim set. Field aliases are the wire names."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject_id: int = Field(alias="sub")
    username: str
    email: str
    role: Role
    token_type: TokenType = Field(alias="type")
    issued_at: datetime = Field(alias="iat")
    issuer: str = Field(alias="iss")
    audience: str = Field(alias="aud")
    expires_at: datetime = Field(alias="exp")

    def identity(self) -> CallerIdentity:
        return CallerIdentity(id=self.subject_id, username=self.username, email=self.email, role=self.role)


class TokenCodec:
    def __init__(self, config: AuthConfig, clock: Callable[[], datetime] = _utcnow) -> None:
        self._config = config
        self._clock = clock

    def _ttl(self, token_type: TokenType) -> timedelta:
        if token_type == TokenType.refresh:
            return self._config.refresh_ttl
        return self._config.access_ttl

    def expires_in(self, token_type: TokenType) -> int:
        """Lifetime in seconds of a freshly issued token of this type."""
        return int(self._ttl(token_type).total_seconds())

    def issue(self, identity: CallerIdentity, token_type: TokenType = TokenType.access) -> str:
        """Encode and sign a token for the identity snapshot."""
        now = self._clock()
        payload = {
            "sub": str(identity.id),
            "username": identity.username,
            "email": identity.email,
            "role": Role(identity.role).value,
            "type": TokenType(token_type).value,
            "iat": int(now.timestamp()),
            "iss": self._config.issuer,
            "aud": self._config.audience,
            "exp": int((now + self._ttl(token_type)).timestamp()),
        }
        return jwt.encode(payload, self._config.secret_key, algorithm=self._config.algorithm)

    def verify(self, token: str) -> Result[TokenClaims]:
        """Decode and verify a token. Fails closed; see module docstring for kinds."""
        try:
            payload = jwt.decode(
                token,
                self._config.secret_key,
                algorithms=[self._config.algorithm],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options=_DECODE_OPTIONS,
            )
        except ExpiredSignatureError:
            return Result.fail(AuthenticationFailure(AuthenticationErrorKind.expired, "Token has expired."))
        except JWTError:
            return Result.fail(AuthenticationFailure(AuthenticationErrorKind.malformed, "Invalid token."))
        except JOSEError as exc:
            logger.warning("Token verification error (%s)", type(exc).__name__)
            return Result.fail(
                AuthenticationFailure(AuthenticationErrorKind.other, "Token verification failed.")
            )

        try:
            claims = TokenClaims.model_validate(payload)
        except ValidationError:
            return Result.fail(AuthenticationFailure(AuthenticationErrorKind.malformed, "Invalid token."))
        return Result.success(claims)
