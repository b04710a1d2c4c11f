"""
auth/tokens.py -- Bearer token generation, hashing and issuance.

Security design decisions:
  Entropy: secrets.token_bytes(16) gives 128 bits from the OS CSPRNG. The
       bytes are rendered with unpadded RFC 4648 base-32 (26 characters for
       16 bytes), then right-padded with "A" or truncated so every plaintext
       is exactly TOKEN_LENGTH characters. The authenticator's length check
       is then a plain equality test.

  Storage: only SHA-256(plaintext) is stored. A fast unsalted digest is fine
       here because the input is a 128-bit random value, not a password --
       bcrypt's slowness buys nothing. The digest is a fixed 32-byte key, so
       lookup is one indexed equality match.

  The plaintext is returned ONCE from generate_token()/issue_token() and is
       never logged or persisted.

Layer rule: imports core/ for settings only. No imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Union

from auth.errors import RandomSourceError
from auth.models import Token
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import AuthStore

logger = logging.getLogger("tokengate.auth")

_RANDOM_BYTES = 16
_FILLER = "A"

TTL = Union[timedelta, int, float]


def _as_timedelta(ttl: TTL) -> timedelta:
    if isinstance(ttl, timedelta):
        return ttl
    return timedelta(seconds=ttl)


def hash_token(plaintext: str) -> bytes:
    """Return the 32-byte SHA-256 digest stored for (and looked up by) a token."""
    return hashlib.sha256(plaintext.encode("utf-8")).digest()


def generate_token(user_id: int, ttl: TTL, length: int | None = None) -> tuple[Token, str]:
    """Create a new token record and its plaintext.

    Args:
        user_id: Owner of the token.
        ttl:     Lifetime as a timedelta or seconds. May be negative, which
                 yields a token that is already expired (useful in tests).
        length:  Plaintext length. None uses Settings.token_length.

    Returns:
        (token, plaintext). The token is not yet persisted and carries only
        user_id, token_hash and expiry.

    Raises:
        RandomSourceError: the OS entropy source failed.
    """
    size = length if length is not None else get_settings().token_length
    try:
        random_bytes = secrets.token_bytes(_RANDOM_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise RandomSourceError("could not read from the system random source") from exc

    plaintext = base64.b32encode(random_bytes).decode("ascii").rstrip("=")
    if len(plaintext) < size:
        plaintext = plaintext + _FILLER * (size - len(plaintext))
    else:
        plaintext = plaintext[:size]

    token = Token(
        user_id=user_id,
        token_hash=hash_token(plaintext),
        expiry=datetime.now(timezone.utc) + _as_timedelta(ttl),
    )
    return token, plaintext


def issue_token(store: AuthStore, user: User, ttl: TTL | None = None) -> tuple[Token, str]:
    """Generate a token for `user` and persist it, replacing any earlier token.

    This is what login and the CLI call. The store performs delete-then-insert
    in one transaction, so after this returns the user has exactly one token.
    """
    lifetime = ttl if ttl is not None else get_settings().token_ttl_seconds
    token, plaintext = generate_token(user.id, lifetime)
    store.insert_token(token, user)
    logger.info("Issued token id=%s for user_id=%s (expires %s)", token.id, user.id, token.expiry.isoformat())
    return token, plaintext
