"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the Authorization: Bearer <token> header, checked by the
TokenAuthenticator wired onto app.state in the API lifespan.

get_current_user() turns every AuthenticationError into HTTP 401 whose
error code is the exact failure kind (no_auth_header, malformed_header,
invalid_length, no_matching_token, token_expired, no_matching_user), so
clients can tell "log in again" apart from "fix your header".

Layer rule: auth/dependencies.py may import from fastapi (for
HTTPException/Request) because this module is part of the FastAPI dependency
injection system. No imports from api/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.authenticator import TokenAuthenticator
from auth.errors import AuthenticationError
from auth.models import User

logger = logging.getLogger("tokengate.auth")

_MESSAGES: dict[str, str] = {
    "no_auth_header": "Authentication required.",
    "malformed_header": "Authorization header must be 'Bearer <token>'.",
    "invalid_length": "Invalid token.",
    "no_matching_token": "Invalid token.",
    "token_expired": "Token has expired.",
    "no_matching_user": "Invalid token.",
}


def get_current_user(request: Request) -> User:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    authenticator: TokenAuthenticator = request.app.state.authenticator
    try:
        return authenticator.authenticate(request)
    except AuthenticationError as exc:
        logger.info("Authentication failed on %s: %s", request.url.path, exc.code)
        raise HTTPException(
            status_code=401,
            detail={"code": exc.code, "message": _MESSAGES.get(exc.code, "Authentication failed.")},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def get_bearer_token(request: Request) -> str:
    """Return the raw token from an already-authenticated request's header.

    Only call after get_current_user() has accepted the header, so the
    "Bearer <token>" shape is guaranteed.
    """
    return request.headers["Authorization"].split(" ")[1]
