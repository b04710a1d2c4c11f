"""
auth/authenticator.py -- Resolve an inbound Authorization header to a User.

One pass over the header decides the outcome, in this order:

  1. header missing or empty                 -> NoAuthHeaderError
  2. not exactly "Bearer <value>"            -> MalformedHeaderError
  3. len(value) != token length              -> InvalidLengthError
  4. no stored token with SHA-256(value)     -> NoMatchingTokenError
  5. token expiry reached                    -> TokenExpiredError
  6. owning user gone                        -> NoMatchingUserError
  7. return the user

Steps 1-3 never touch the database. Length is checked before existence so a
truncated or padded token gets its own answer instead of "not found".

The request object only needs `request.headers.get(name)`, which both
Starlette's Request and a plain dict-backed stub provide.

Layer rule: imports core/ for settings only. No imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from auth.errors import (
    InvalidLengthError,
    MalformedHeaderError,
    NoAuthHeaderError,
    NoMatchingTokenError,
    NoMatchingUserError,
    NotFoundError,
    TokenExpiredError,
)
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Token, User
    from auth.store import AuthStore

logger = logging.getLogger("tokengate.auth")

AUTH_HEADER = "Authorization"
SCHEME = "Bearer"


class TokenAuthenticator:
    """Authenticate requests carrying `Authorization: Bearer <token>`.

    The store is injected; the authenticator holds no other state.
    """

    def __init__(self, store: AuthStore, token_length: int | None = None) -> None:
        self.store = store
        self.token_length = token_length if token_length is not None else get_settings().token_length

    def authenticate(self, request: Any) -> User:
        """Authenticate a request object by its Authorization header."""
        return self.authenticate_header(request.headers.get(AUTH_HEADER))

    def authenticate_header(self, header: str | None) -> User:
        """Authenticate a raw Authorization header value. See module docstring for the order."""
        if not header:
            raise NoAuthHeaderError("no authorization header received")

        parts = header.split(" ")
        if len(parts) != 2 or parts[0] != SCHEME:
            raise MalformedHeaderError("invalid authorization header format")

        plaintext = parts[1]
        if len(plaintext) != self.token_length:
            raise InvalidLengthError("invalid token length")

        token = self._lookup(plaintext)

        if _is_expired(token):
            raise TokenExpiredError("token has expired")

        user = self.store.get_user(token.user_id)
        if user is None:
            raise NoMatchingUserError("no matching user found for token")
        logger.debug("Authenticated user_id=%s with token id=%s", user.id, token.id)
        return user

    def valid_token(self, plaintext: str) -> bool:
        """Return True if `plaintext` is a stored, unexpired token with a live owner.

        Unknown or expired tokens give False. Database failures still raise
        PersistenceError -- an outage is not the same answer as "invalid".
        """
        try:
            token = self._lookup(plaintext)
        except NoMatchingTokenError:
            return False
        if _is_expired(token):
            return False
        return self.store.get_user(token.user_id) is not None

    def _lookup(self, plaintext: str) -> Token:
        try:
            return self.store.get_token_by_hash(plaintext)
        except NotFoundError as exc:
            raise NoMatchingTokenError("no matching token found") from exc


def _is_expired(token: Token) -> bool:
    return token.expiry <= datetime.now(timezone.utc)
