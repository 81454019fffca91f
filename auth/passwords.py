"""
auth/passwords.py -- Password hashing, verification, and login checks.

Security design decisions:
  bcrypt is used directly (no passlib wrapper). Its cost factor makes
  brute-force of low-entropy secrets expensive; the work factor comes from
  AuthConfig.bcrypt_rounds (default 12).

  bcrypt only reads the first 72 bytes of its input, and bcrypt 4.1+ raises
  on longer input instead of truncating. Secrets are cut to 72 UTF-8 bytes
  here so hashing never fails on input shape -- only on primitive failure.

  hash() and verify() return Result values. A mismatch is Result(False), not
  an error; SecretFailure is reserved for the primitive itself failing (a
  corrupt stored hash, entropy exhaustion).

  authenticate_user() always runs one bcrypt check, against a dummy hash when
  the login is unknown, so response time does not reveal whether an account
  exists [C1].

Hashing is CPU-bound. Route handlers that call into this module are plain
`def` functions so FastAPI executes them in its threadpool.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import bcrypt

from auth.errors import Result, SecretErrorKind, SecretFailure

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import AuthConfig

logger = logging.getLogger("taskwarden.auth")

_BCRYPT_MAX_BYTES = 72


def _encode(secret: str) -> bytes:
    return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    @classmethod
    def from_config(cls, config: AuthConfig) -> "PasswordHasher":
        return cls(rounds=config.bcrypt_rounds)

    def hash(self, secret: str) -> Result[str]:
        """Return a salted bcrypt hash of the secret."""
        try:
            hashed = bcrypt.hashpw(_encode(secret), bcrypt.gensalt(rounds=self.rounds))
        except (ValueError, TypeError, OSError) as exc:
            logger.error("bcrypt hashing failed (%s)", type(exc).__name__)
            return Result.fail(SecretFailure(SecretErrorKind.hashing_failure, "Password hashing failed."))
        return Result.success(hashed.decode("utf-8"))

    def verify(self, secret: str, hashed: str) -> Result[bool]:
        """Return Result(True) on match, Result(False) on mismatch.

        bcrypt.checkpw compares in constant time.
        """
        try:
            matched = bcrypt.checkpw(_encode(secret), hashed.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            logger.error("bcrypt verification failed (%s)", type(exc).__name__)
            return Result.fail(
                SecretFailure(SecretErrorKind.verification_failure, "Password verification failed.")
            )
        return Result.success(matched)

    def dummy_verify(self, secret: str) -> None:
        """Spend one bcrypt check's worth of time without a real hash [C1]."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("taskwarden_timing_dummy").unwrap()
        self.verify(secret, self._dummy_hash)


def authenticate_user(store: UserStore, hasher: PasswordHasher, login: str, password: str) -> User | None:
    """Authenticate a username-or-email/password login with timing equalization.

    Returns the User on success, None on any failure (unknown login, wrong
    password, inactive account, or a stored hash bcrypt cannot read).
    """
    user = store.get_by_username_or_email(login)
    if user is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        hasher.dummy_verify(password)
        return None
    result = hasher.verify(password, user.hashed_password)
    if not result.ok or not result.value:
        return None
    if not user.is_active:
        return None
    return user
