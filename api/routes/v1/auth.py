"""
api/routes/v1/auth.py -- Registration, login, token refresh, and user management endpoints.

Routes:
  POST  /api/v1/auth/register          -- create account (role "user"), returns token pair
  POST  /api/v1/auth/login             -- username-or-email + password, returns token pair
  POST  /api/v1/auth/refresh           -- exchange a refresh token for a new pair
  GET   /api/v1/auth/me                -- current identity (requires auth)
  POST  /api/v1/auth/password          -- change own password (requires auth)
  POST  /api/v1/auth/users             -- create user with any role (admin only)
  GET   /api/v1/auth/users             -- list all users (admin only)
  PATCH /api/v1/auth/users/{user_id}   -- update role/is_active (admin only)

Security:
  [H2] register and login are rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] Logins go through authenticate_user(), which equalizes timing for
       unknown accounts. Never compare passwords inline in a handler.
  [M4] PATCH /auth/users/{id} refuses to deactivate the caller's own account
       and refuses to leave the system without an active admin.
  [M5] Cache-Control: no-store on every response that carries tokens.
  Registration never honours a caller-supplied role; only admins assign roles.

Handlers that hash or verify passwords are plain `def`, so FastAPI runs them
in its threadpool and bcrypt's CPU cost does not block the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.errors import api_error, error_response
from api.limiter import limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    PasswordChangeRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserCreate,
    UserPatch,
    UserResponse,
)
from auth.dependencies import get_request_context, require_admin
from auth.errors import AuthenticationErrorKind, AuthenticationFailure, FailureError
from auth.models import CallerIdentity, RequestContext, Role, TokenType, User
from auth.passwords import authenticate_user
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import get_settings

logger = logging.getLogger("taskwarden.api.auth")

_NO_STORE = {"Cache-Control": "no-store"}  # [M5]

# Access rules:
#   register, login, refresh     public (register/login rate-limited)
#   me, password                 get_request_context
#   users (create, list, patch)  require_admin
router = APIRouter()


def _auth_rate_limit() -> str:
    return get_settings().login_rate_limit


def _issue_pair(codec: TokenCodec, user: User, message: str, status_code: int = 200) -> JSONResponse:
    """Issue an access + refresh pair for the user and wrap it in the standard body."""
    identity = CallerIdentity.from_user(user)
    body = AuthResponse(
        message=message,
        user=UserResponse.from_user(user),
        tokens=TokenPair(
            access=codec.issue(identity, TokenType.access),
            refresh=codec.issue(identity, TokenType.refresh),
            expires_in=codec.expires_in(TokenType.access),
        ),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=_NO_STORE)


def _insert_user(request: Request, username: str, email: str, password: str, role: Role) -> User:
    """Shared by self-registration and admin creation: policy, hash, insert, reload.

    Raises FailureError (policy_violation / hashing_failure) or a 409.
    """
    state = request.app.state
    secret = state.policy.enforce(password).unwrap()
    hashed = state.hasher.hash(secret).unwrap()

    user_store: UserStore = state.user_store
    try:
        user_id = user_store.create_user(
            User(username=username, email=email, hashed_password=hashed, role=role.value)
        )
    except IntegrityError as exc:
        raise api_error(409, "conflict", "A user with that username or email already exists.") from exc

    user = user_store.get_by_id(user_id)
    if user is None:
        raise api_error(500, "internal_error", "User not found after write.")
    return user


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(_auth_rate_limit)  # [H2]
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a `user` account and log it in.

    The strength policy runs before any hash is computed; a weak password is
    rejected with every broken rule listed.
    """
    user = _insert_user(request, body.username, str(body.email), body.password, Role.user)
    logger.info("Registered user id=%s", user.id)
    return _issue_pair(request.app.state.codec, user, "User created successfully", status_code=201)


@limiter.limit(_auth_rate_limit)  # [H2]
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username or email and password.

    Unknown login, wrong password and inactive account all produce the same
    bad_credentials body so the response does not reveal which accounts exist.
    """
    state = request.app.state
    user = authenticate_user(state.user_store, state.hasher, body.login, body.password)
    if user is None:
        logger.info("Failed login attempt")
        return error_response(401, "bad_credentials", "Invalid credentials.", headers=_NO_STORE)

    state.user_store.update_last_login(user.id)
    return _issue_pair(state.codec, user, "Login successful")


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a valid refresh token for a new token pair.

    The account is reloaded so that role changes and deactivation take effect
    at refresh time rather than only when the refresh token expires.
    """
    state = request.app.state
    claims = state.codec.verify(body.refresh_token).unwrap()
    if claims.token_type != TokenType.refresh:
        raise FailureError(AuthenticationFailure(AuthenticationErrorKind.wrong_token_type, "Invalid token type."))

    user = state.user_store.get_by_id(claims.subject_id)
    if user is None or not user.is_active:
        raise FailureError(AuthenticationFailure(AuthenticationErrorKind.other, "Account is no longer active."))
    return _issue_pair(state.codec, user, "Token refreshed")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(ctx: RequestContext = Depends(get_request_context)) -> MeResponse:
    """Identity of the caller, straight from the verified token."""
    return MeResponse.from_identity(ctx.identity)


@router.post("/auth/password")
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    ctx: RequestContext = Depends(get_request_context),
) -> dict:
    """Replace the caller's password after re-checking the current one.

    Tokens already issued stay valid until they expire; there is no
    server-side revocation.
    """
    state = request.app.state
    user_store: UserStore = state.user_store
    user = user_store.get_by_id(ctx.identity.id)
    if user is None:
        raise api_error(404, "not_found", "User not found.")

    if not state.hasher.verify(body.current_password, user.hashed_password).unwrap():
        raise api_error(400, "bad_credentials", "Current password is incorrect.")

    secret = state.policy.enforce(body.new_password).unwrap()
    user_store.update_password(user.id, state.hasher.hash(secret).unwrap())
    logger.info("Password changed for user id=%s", user.id)
    return {"message": "Password updated."}


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.post("/auth/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    ctx: RequestContext = Depends(require_admin),
) -> UserResponse:
    """Create an account with any role. The same strength policy applies."""
    user = _insert_user(request, body.username, str(body.email), body.password, body.role)
    logger.info("Admin id=%s created user id=%s role=%s", ctx.identity.id, user.id, user.role)
    return UserResponse.from_user(user)


@router.get("/auth/users", response_model=list[UserResponse])
async def list_users(
    request: Request,
    ctx: RequestContext = Depends(require_admin),
) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in request.app.state.user_store.list_users()]


@router.patch("/auth/users/{user_id}", response_model=UserResponse)
async def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    ctx: RequestContext = Depends(require_admin),
) -> UserResponse:
    """Change a user's role and/or active flag [M4]."""
    user_store: UserStore = request.app.state.user_store
    target = user_store.get_by_id(user_id)
    if target is None:
        raise api_error(404, "not_found", "User not found.")

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise api_error(400, "no_changes", "No fields to update.")
    if "role" in updates:
        updates["role"] = updates["role"].value

    if updates.get("is_active") is False and target.id == ctx.identity.id:
        raise api_error(400, "self_deactivation", "You cannot deactivate your own account.")

    stops_being_admin = updates.get("is_active") is False or updates.get("role", Role.admin.value) != Role.admin.value
    if target.role == Role.admin.value and target.is_active and stops_being_admin:
        if user_store.count_active_admins() <= 1:
            raise api_error(400, "last_admin", "Cannot remove the last active admin account.")

    user_store.update_user(user_id, **updates)
    logger.info("Admin id=%s updated user id=%s: %s", ctx.identity.id, user_id, sorted(updates))
    return UserResponse.from_user(user_store.get_by_id(user_id))
