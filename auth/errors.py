"""
auth/errors.py -- Exception hierarchy for TokenGate.

Every exception carries a stable machine-readable `code`. Callers branch on
the exception class; the API layer copies `code` into the error envelope so
HTTP clients can branch on the same classification.

Nothing in this package is retried. Each error ends the current call.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every error raised by the auth package."""

    code = "auth_error"


class HashingError(AuthError):
    """bcrypt failed to hash, or the stored hash is malformed.

    A wrong password is NOT a HashingError -- verify_password() returns False.
    """

    code = "hashing_error"


class RandomSourceError(AuthError):
    """The OS entropy source could not supply bytes for a new token."""

    code = "random_source_error"


class PersistenceError(AuthError):
    """Opaque wrapper around a database failure. The cause is chained."""

    code = "persistence_error"


class DuplicateEmailError(AuthError):
    """A user with the same email already exists."""

    code = "duplicate_email"


class NotFoundError(AuthError):
    """The requested user or token does not exist."""

    code = "not_found"


# ---------------------------------------------------------------------------
# Request authentication failures
#
# Raised by TokenAuthenticator in this order: header shape, length, token
# lookup, expiry, owner lookup. Each one is terminal for the request.
# ---------------------------------------------------------------------------


class AuthenticationError(AuthError):
    """Base class for bearer-token authentication failures (HTTP 401)."""

    code = "authentication_failed"


class NoAuthHeaderError(AuthenticationError):
    code = "no_auth_header"


class MalformedHeaderError(AuthenticationError):
    code = "malformed_header"


class InvalidLengthError(AuthenticationError):
    code = "invalid_length"


class NoMatchingTokenError(AuthenticationError, NotFoundError):
    code = "no_matching_token"


class TokenExpiredError(AuthenticationError):
    code = "token_expired"


class NoMatchingUserError(AuthenticationError, NotFoundError):
    code = "no_matching_user"
