"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the services do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass
class Token:
    """A bearer credential bound to one user.

    Security design:
    - token_hash is SHA-256(plaintext), always 32 bytes. The plaintext is
      returned ONCE by the token factory and never persisted, so a database
      dump does not yield usable credentials.
    - first_name / email are copied from the owner at insert time so audit
      reads do not need a join. They are not kept in sync afterwards.

    id is None before the record is written to the database.
    """

    user_id: int
    token_hash: bytes
    expiry: datetime
    id: int | None = None
    first_name: str = ""
    email: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class User:
    """A user account.

    password_hash only ever holds a bcrypt hash. Plaintext passwords are passed
    to AccountManager as separate arguments and never assigned here.

    token is not persisted on the users table. fetch() and fetch_by_email()
    fill it with the most recent unexpired token, or leave it None.
    """

    first_name: str
    last_name: str
    email: str
    id: int | None = None
    active: bool = True
    password_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    token: Token | None = None


# ---------------------------------------------------------------------------
# Record identifiers
#
# The persistence adapter reports new primary keys as one of these two
# variants. auth/store.py is the only producer; see record_id() / as_int().
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IntID:
    value: int


@dataclass(frozen=True)
class StringID:
    value: str  # e.g. a UUID from a backend that does not use integer keys


RecordID = Union[IntID, StringID]
