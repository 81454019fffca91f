"""
auth/authorization.py -- Role and ownership decisions.

Both checks require an identity and test for it first: an absent identity is
always `unauthenticated`, never silently allowed through. They must run after
the authentication gate.

authorize_owner() is additive to authorize(). A route that needs both a role
and ownership asks for both; ownership never stands in for a role check.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from auth.errors import AuthorizationErrorKind, AuthorizationFailure, Result
from auth.models import CallerIdentity, Role


class ResourceLookup(Protocol):
    async def find_by_id(self, model: str, resource_id: Any) -> Any | None: ...


def _unauthenticated() -> Result:
    return Result.fail(AuthorizationFailure(AuthorizationErrorKind.unauthenticated, "User not authenticated."))


def _owner_of(resource: Any, owner_field: str) -> Any:
    if isinstance(resource, Mapping):
        return resource.get(owner_field)
    return getattr(resource, owner_field, None)


def authorize(identity: CallerIdentity | None, allowed_roles: Iterable[Role]) -> Result[CallerIdentity]:
    """Succeed iff an identity is present and its role is in allowed_roles."""
    if identity is None:
        return _unauthenticated()
    allowed = {Role(role) for role in allowed_roles}
    if identity.role not in allowed:
        return Result.fail(
            AuthorizationFailure(AuthorizationErrorKind.role_denied, f"Role {identity.role.value} is not authorized.")
        )
    return Result.success(identity)


async def authorize_owner(
    identity: CallerIdentity | None,
    lookup: ResourceLookup,
    model: str,
    resource_id: Any,
    owner_field: str = "owner_id",
) -> Result[Any]:
    """Succeed with the resource if the caller owns it or is an admin.

    Order matters: identity, then existence, then the admin override, then
    the owner comparison. A missing resource is resource_not_found for every
    role, admins included.
    """
    if identity is None:
        return _unauthenticated()

    resource = await lookup.find_by_id(model, resource_id)
    if resource is None:
        return Result.fail(
            AuthorizationFailure(AuthorizationErrorKind.resource_not_found, f"{model.capitalize()} not found.")
        )

    if identity.role == Role.admin:
        return Result.success(resource)

    if _owner_of(resource, owner_field) != identity.id:
        return Result.fail(
            AuthorizationFailure(AuthorizationErrorKind.ownership_denied, "Access denied to this resource.")
        )
    return Result.success(resource)
