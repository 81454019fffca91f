"""
auth/extract.py -- Pull a bearer credential out of an inbound request.

Sources, in priority order (first match wins):
  1. Authorization: Bearer <token>  -- standard API clients.
  2. X-Access-Token: <token>        -- clients that cannot set Authorization.
  3. ?token=<token>                 -- GET/HEAD only (links, downloads).

An Authorization header without the "Bearer " prefix (e.g. Basic auth) is
treated as absent and the next source is tried. Query-string tokens are
ignored on state-changing methods: URLs end up in logs and browser history,
and a token there should never authorize a write.
"""

from __future__ import annotations

from starlette.requests import Request

BEARER_PREFIX = "Bearer "
ACCESS_TOKEN_HEADER = "X-Access-Token"
TOKEN_QUERY_PARAM = "token"

_QUERY_TOKEN_METHODS = frozenset({"GET", "HEAD"})


def extract_token(request: Request) -> str | None:
    """Return the raw token string, or None when no source carries one."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX) :].strip()
        if token:
            return token

    token = request.headers.get(ACCESS_TOKEN_HEADER, "").strip()
    if token:
        return token

    if request.method in _QUERY_TOKEN_METHODS:
        token = request.query_params.get(TOKEN_QUERY_PARAM, "").strip()
        if token:
            return token

    return None
