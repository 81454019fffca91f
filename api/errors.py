"""
api/errors.py -- Error envelope and boundary renderer for auth-core failures.

The auth core classifies failures (auth/errors.py) but knows nothing about
HTTP. This module is the single place where a failure kind becomes a status
code, and error_response() is the single builder of the JSON envelope that
every exception handler in api/main.py returns:

    {"error": {"code": ..., "message": ..., "detail"?: ..., "violations"?: [...]}}

Rendered bodies contain the failure's kind and message only -- never stack
traces, token contents or claims. Policy violations carry the full list of
broken rules.
"""

from __future__ import annotations

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.errors import (
    AuthenticationErrorKind,
    AuthenticationFailure,
    AuthorizationErrorKind,
    Failure,
    SecretErrorKind,
    SecretFailure,
)

STATUS_BY_KIND: dict = {
    AuthenticationErrorKind.missing_credential: 401,
    AuthenticationErrorKind.expired: 401,
    AuthenticationErrorKind.malformed: 401,
    AuthenticationErrorKind.wrong_token_type: 401,
    AuthenticationErrorKind.other: 401,
    AuthorizationErrorKind.unauthenticated: 401,
    AuthorizationErrorKind.role_denied: 403,
    AuthorizationErrorKind.ownership_denied: 403,
    AuthorizationErrorKind.resource_not_found: 404,
    SecretErrorKind.policy_violation: 400,
    SecretErrorKind.hashing_failure: 500,
    SecretErrorKind.verification_failure: 500,
}


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    detail: str | None = None,
    violations: list[str] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail, violations=violations))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True), headers=headers)


def failure_status(failure: Failure) -> int:
    return STATUS_BY_KIND.get(failure.kind, 500)


def failure_response(failure: Failure) -> JSONResponse:
    """Render a core failure as a JSON error response."""
    status = failure_status(failure)
    violations = None
    if isinstance(failure, SecretFailure) and failure.violations:
        violations = list(failure.violations)

    headers = None
    if status == 401:
        # RFC 6750 challenge. The error code is only set for token problems,
        # not for a request that simply sent no credential.
        challenge = "Bearer"
        if isinstance(failure, AuthenticationFailure) and failure.kind != AuthenticationErrorKind.missing_credential:
            challenge = 'Bearer error="invalid_token"'
        headers = {"WWW-Authenticate": challenge}

    return error_response(status, failure.kind.value, failure.message, violations=violations, headers=headers)


def api_error(status_code: int, code: str, message: str) -> HTTPException:
    """HTTPException whose detail http_exception_handler renders as the error envelope."""
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})
