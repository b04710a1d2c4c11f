"""
auth/passwords.py -- bcrypt password hashing and verification.

Security design decisions:
  bcrypt is the right choice for low-entropy secrets (passwords) because its
  cost factor makes brute-force expensive. The cost comes from BCRYPT_COST
  (core.config) unless the caller passes one explicitly.

  bcrypt only reads the first 72 bytes of its input, and bcrypt 5.x raises on
  anything longer. Both hash_password() and verify_password() cut the encoded
  password to 72 bytes first, so long input is never an error and both sides
  see the same bytes.

  verify_password() separates "wrong password" (returns False) from "stored
  hash is corrupt" (raises HashingError). Login code must never treat a
  mismatch as an exception path.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection creates a password longer than 72 bytes, which bcrypt 4.x rejects.

Layer rule: imports core/ for settings only. No imports from api/.
"""

from __future__ import annotations

import logging
from functools import lru_cache

import bcrypt

from auth.errors import HashingError
from core.config import get_settings

logger = logging.getLogger("tokengate.auth")

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str, cost: int | None = None) -> str:
    """Return a salted bcrypt hash of the plaintext password.

    Args:
        plain: Plaintext password. Weak or empty input is hashed, not rejected.
        cost:  log2 work factor. None uses Settings.bcrypt_cost.

    Raises:
        HashingError: salt generation or hashing failed (bad cost, RNG failure).
    """
    rounds = cost if cost is not None else get_settings().bcrypt_cost
    try:
        salt = bcrypt.gensalt(rounds=rounds)
        hashed = bcrypt.hashpw(_encode(plain), salt)
    except (ValueError, OSError) as exc:
        raise HashingError(f"bcrypt hashing failed: {exc}") from exc
    return hashed.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Returns False on a clean mismatch. Raises HashingError when `hashed` is
    not a usable bcrypt hash (empty, truncated, wrong prefix).
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError as exc:
        raise HashingError("stored password hash is malformed") from exc


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Computed on first use, not at import, so BCRYPT_COST overrides apply.
    return hash_password("tokengate_timing_dummy")


def dummy_verify(plain: str) -> None:
    """Run one bcrypt verification whose result is discarded.

    Call this when a login names an unknown email: the response then takes as
    long as a real wrong-password check, so timing does not reveal which
    emails have accounts.
    """
    verify_password(plain, _dummy_hash())
