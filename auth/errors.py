"""
auth/errors.py -- Failure taxonomy and result values for the auth core.

Every core operation returns a Result: either a value or exactly one typed
failure. Operational problems (no token, wrong password, not the owner) are
ordinary return values, not exceptions. The taxonomy is closed per component:

  AuthenticationFailure -- gate and token codec
  AuthorizationFailure  -- role and ownership decisions
  SecretFailure         -- password policy and hashing

Nothing here knows about HTTP. Status codes are assigned by api/errors.py at
the boundary. Result.unwrap() converts a failure into FailureError, which is
only raised where a FastAPI dependency or route must short-circuit.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class AuthenticationErrorKind(str, Enum):
    missing_credential = "missing_credential"
    expired = "token_expired"
    malformed = "token_malformed"
    wrong_token_type = "wrong_token_type"
    other = "token_invalid"


class AuthorizationErrorKind(str, Enum):
    unauthenticated = "unauthenticated"
    role_denied = "role_denied"
    ownership_denied = "ownership_denied"
    resource_not_found = "resource_not_found"


class SecretErrorKind(str, Enum):
    hashing_failure = "hashing_failure"
    verification_failure = "verification_failure"
    policy_violation = "policy_violation"


@dataclass(frozen=True)
class AuthenticationFailure:
    kind: AuthenticationErrorKind
    message: str


@dataclass(frozen=True)
class AuthorizationFailure:
    kind: AuthorizationErrorKind
    message: str


@dataclass(frozen=True)
class SecretFailure:
    """A password-related failure.

    violations is populated only for policy_violation and lists every broken
    rule, so a caller can fix all of them in one round trip.
    """

    kind: SecretErrorKind
    message: str
    violations: tuple[str, ...] = ()


Failure = Union[AuthenticationFailure, AuthorizationFailure, SecretFailure]


class FailureError(Exception):
    """Carries a Failure out of a dependency or route so the boundary can render it."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation: a value, or a single typed failure.

    Usage:
        result = codec.verify(token)
        if not result.ok:
            return result.failure
        claims = result.value
    """

    value: T | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: Failure) -> "Result[T]":
        return cls(failure=failure)

    def unwrap(self) -> T:
        """Return the value, or raise FailureError. Boundary code only."""
        if self.failure is not None:
            raise FailureError(self.failure)
        return self.value
