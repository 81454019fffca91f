"""
api/main.py -- FastAPI application entry point for taskwarden.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost; Starlette wraps the last one
registered around the rest):
  1. log_requests      -- one access-log line per request
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware    -- adds CORS headers for allowed browser origins

Lifespan builds the immutable AuthConfig once from Settings, constructs the
auth components around it, and hangs them on app.state together with the
stores. Nothing reconfigures them afterwards.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.errors import error_response, failure_response
from api.limiter import limiter
from api.models import HealthResponse, WelcomeResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.tasks import router as tasks_router
from auth.dependencies import get_optional_context
from auth.errors import FailureError
from auth.gate import AuthenticationGate
from auth.models import RequestContext
from auth.passwords import PasswordHasher
from auth.policy import SecretPolicy
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import AuthConfig, get_settings
from core.lookup import StoreResourceLookup
from tasks.store import TaskStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("taskwarden.api")


# ---------------------------------------------------------------------------
# Application state
# ---------------------------------------------------------------------------


def init_app_state(app: FastAPI, config: AuthConfig, user_store: UserStore, task_store: TaskStore) -> None:
    """Wire the auth components and stores onto app.state.

    Shared by the real lifespan and the test lifespan so both assemble the
    same graph. Everything placed here is read-only for the process lifetime.
    """
    codec = TokenCodec(config)
    app.state.auth_config = config
    app.state.codec = codec
    app.state.hasher = PasswordHasher.from_config(config)
    app.state.policy = SecretPolicy(config.password_rules)
    app.state.gate = AuthenticationGate(codec)
    app.state.user_store = user_store
    app.state.task_store = task_store
    app.state.resource_lookup = StoreResourceLookup(task=task_store.get_task)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Settings validation happens here, so a missing SECRET_KEY in
    production stops the server before it accepts a request.
    """
    logger.info("taskwarden API starting up")
    config = AuthConfig.from_settings(get_settings())
    init_app_state(app, config, UserStore(), TaskStore())
    logger.info(
        "Auth initialized (issuer=%s, access_ttl=%s, refresh_ttl=%s, bcrypt_rounds=%d)",
        config.issuer,
        config.access_ttl,
        config.refresh_ttl,
        config.bcrypt_rounds,
    )

    yield

    app.state.user_store.close()
    app.state.task_store.close()
    logger.info("taskwarden API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="taskwarden API",
    description="Multi-user task API with bearer-token authentication and role/ownership authorization.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Each add_middleware() call wraps everything registered before it.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001", "http://localhost:8080"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Access-Token", "X-Requested-With", "Accept", "Origin"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# One access-log line per request: method, path, status, latency, client.
# Headers are never logged, so bearer tokens cannot leak into the log.
# 5xx responses are logged at WARNING so they stand out.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(tasks_router, prefix="/api/v1", tags=["Tasks"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler answers through api.errors.error_response, so clients parse
# one envelope whatever went wrong.
# ---------------------------------------------------------------------------


@app.exception_handler(FailureError)
async def failure_handler(request: Request, exc: FailureError) -> JSONResponse:
    """Render an auth-core failure (authentication, authorization, or secret)."""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.failure.kind.value)
    return failure_response(exc.failure)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After when a per-route limit (login, register) trips."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    return error_response(
        429,
        "rate_limited",
        "Too many requests, please try again later.",
        detail=str(exc.detail),
        headers={"Retry-After": str(int(getattr(exc, "retry_after", 60)))},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Passwords arrive in request bodies; echo only locations and messages, not inputs.
    problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return error_response(422, "validation_error", "Request validation failed.", detail=problems)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Route handlers raise HTTPException with a {"code", "message"} dict as detail.

    Registered on Starlette's base class so router-level 404 and 405 responses
    use the same envelope.
    """
    if isinstance(exc.detail, dict):
        return error_response(
            exc.status_code, exc.detail.get("code", "error"), exc.detail.get("message", ""), headers=exc.headers
        )
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Public endpoints
#
# Defined directly in main.py so they are always reachable regardless of
# router registration state. No rate limit on health -- load balancers and
# monitors must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/", tags=["Meta"])
async def welcome(ctx: RequestContext = Depends(get_optional_context)) -> WelcomeResponse:
    """Service banner. Personalized when the caller sends a valid access token; never requires one."""
    if ctx.identity is not None:
        message = f"Welcome back, {ctx.identity.username}."
    else:
        message = "Task Manager API. Log in to manage your tasks."
    return WelcomeResponse(
        message=message,
        version=__version__,
        authenticated_as=ctx.identity.username if ctx.identity is not None else None,
    )


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database reachability check."""
    try:
        request.app.state.user_store.has_users()
        database = "ok"
    except Exception:
        logger.exception("Health check database query failed")
        database = "error"
    return HealthResponse(version=__version__, components={"app": "ok", "database": database})
