"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

This is where the core's Result values meet FastAPI. A failed check calls
Result.unwrap(), which raises FailureError; api/main.py renders that into
the JSON error envelope with the status code from api/errors.py. The
handler body never runs.

get_optional_context() is the soft variant (never fails on auth problems).
get_request_context() is the mandatory variant.
require_roles() / require_admin wrap the mandatory variant with a role check.
require_owner() wraps it with an ownership check against a path parameter.

Each dependency returns a RequestContext; handlers take it as a parameter
instead of reading identity off request.state:

    @router.get("/tasks/{task_id}")
    async def get_task(ctx: RequestContext = Depends(require_owner("task"))): ...

Layer rule: no imports from api/ or tasks/. The gate and the resource lookup
are read from app.state, where the API lifespan put them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from auth.authorization import authorize, authorize_owner
from auth.gate import AuthenticationGate
from auth.models import RequestContext, Role


def _gate(request: Request) -> AuthenticationGate:
    return request.app.state.gate


def get_optional_context(request: Request) -> RequestContext:
    """Attach identity when a valid access token is present; proceed anonymously otherwise."""
    return RequestContext(identity=_gate(request).authenticate_optional(request))


def get_request_context(request: Request) -> RequestContext:
    """Require authentication. Short-circuits with a 401-class failure otherwise."""
    identity = _gate(request).authenticate(request).unwrap()
    return RequestContext(identity=identity)


def require_roles(*roles: Role) -> Callable[..., RequestContext]:
    """Build a dependency that requires one of `roles`.

    Use as a FastAPI dependency:
        @router.post("/auth/users")
        def route(ctx: RequestContext = Depends(require_roles(Role.admin))): ...
    """
    allowed = frozenset(roles)

    def _dependency(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        authorize(ctx.identity, allowed).unwrap()
        return ctx

    return _dependency


require_admin = require_roles(Role.admin)


def require_owner(
    model: str,
    param: str | None = None,
    owner_field: str = "owner_id",
) -> Callable[..., Awaitable[RequestContext]]:
    """Build a dependency that requires the caller to own the resource named by a path parameter.

    param defaults to "<model>_id". Admins pass for any existing resource.
    """
    path_param = param or f"{model}_id"

    async def _dependency(
        request: Request,
        ctx: RequestContext = Depends(get_request_context),
    ) -> RequestContext:
        resource_id = request.path_params.get(path_param)
        lookup = request.app.state.resource_lookup
        result = await authorize_owner(ctx.identity, lookup, model, resource_id, owner_field=owner_field)
        result.unwrap()
        return ctx

    return _dependency
