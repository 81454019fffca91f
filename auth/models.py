"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the auth
components do the work; these types only own the domain shape.

Layer rule: no imports from api/, core/, or tasks/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Authorization decisions only ever compare against these."""

    user = "user"
    manager = "manager"
    admin = "admin"


class TokenType(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass
class User:
    """A registered account.

    hashed_password is the bcrypt hash; it never leaves the store/auth layer
    and is never serialized into API responses.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    hashed_password: str
    role: str = Role.user.value  # "user" | "manager" | "admin"
    id: int | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class CallerIdentity:
    """Request-scoped projection of verified token claims.

    Built once per request by the authentication gate and read-only thereafter.
    """

    id: int
    username: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "CallerIdentity":
        return cls(id=user.id, username=user.username, email=user.email, role=Role(user.role))


@dataclass(frozen=True)
class RequestContext:
    """Per-request context threaded from the gate into handlers and authorization calls.

    identity is None when the optional gate let an unauthenticated request through.
    """

    identity: CallerIdentity | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None
