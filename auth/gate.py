"""
auth/gate.py -- Establish caller identity for a request.

Pipeline: extract credential -> verify with the TokenCodec -> require an
access token -> CallerIdentity.

authenticate() is the mandatory variant: every problem comes back as an
AuthenticationFailure and the caller must stop the request.
authenticate_optional() runs the same pipeline but turns every failure into
"no identity", for routes that personalize output when logged in.

Neither variant touches the request object; the identity is returned to the
caller, which wraps it in a RequestContext (see auth/dependencies.py).
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from starlette.requests import Request

from auth.errors import AuthenticationErrorKind, AuthenticationFailure, Result
from auth.extract import extract_token
from auth.models import CallerIdentity, TokenType
from auth.tokens import TokenCodec

logger = logging.getLogger("taskwarden.auth")


class AuthenticationGate:
    def __init__(
        self,
        codec: TokenCodec,
        extractor: Callable[[Request], str | None] = extract_token,
    ) -> None:
        self._codec = codec
        self._extract = extractor

    def authenticate(self, request: Request) -> Result[CallerIdentity]:
        token = self._extract(request)
        if token is None:
            return Result.fail(
                AuthenticationFailure(AuthenticationErrorKind.missing_credential, "Access token is required.")
            )

        verified = self._codec.verify(token)
        if not verified.ok:
            return Result.fail(verified.failure)

        claims = verified.value
        if claims.token_type != TokenType.access:
            return Result.fail(
                AuthenticationFailure(AuthenticationErrorKind.wrong_token_type, "Invalid token type.")
            )
        return Result.success(claims.identity())

    def authenticate_optional(self, request: Request) -> CallerIdentity | None:
        result = self.authenticate(request)
        if not result.ok:
            # Kind only -- never the token or its claims.
            logger.debug("Optional auth continuing anonymously (%s)", result.failure.kind.value)
            return None
        return result.value
