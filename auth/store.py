"""
auth/store.py -- SQLAlchemy Core persistence layer for users and tokens.

Pattern: Repository + Data Mapper. AuthStore is the repository;
_row_to_user / _row_to_token are the mappers. Services and route code never
touch SQL directly. Swapping SQLite for PostgreSQL is a connection string
change, not a rewrite.

Contracts the services rely on:
  insert_token() is replace-not-append. The delete of the user's old tokens
  and the insert of the new one run in ONE transaction (engine.begin()), and
  UNIQUE(user_id) on the tokens table makes a concurrent second issuance fail
  instead of leaving two tokens behind.

  delete_token() / delete_token_by_hash() are idempotent. Zero rows affected
  is success.

  Deleting a user cascades to their tokens via the foreign key. SQLite only
  enforces foreign keys when PRAGMA foreign_keys=ON is set on the connection,
  so the connect hook below sets it for every pooled connection.

Errors:
  Unique violation on users.email -> DuplicateEmailError.
  Token missing on get_token_by_hash() -> NotFoundError.
  Any other SQLAlchemyError -> PersistenceError (cause chained, never swallowed).

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import Pool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateEmailError, NotFoundError, PersistenceError
from auth.models import IntID, RecordID, StringID, Token, User
from auth.tokens import hash_token

logger = logging.getLogger("tokengate.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_EMAIL_CONSTRAINT = "uq_users_email"

_users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("user_active", Boolean, nullable=False, server_default="1"),
    Column("password", String(60), nullable=False),  # bcrypt hash, never plaintext
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("email", name=_EMAIL_CONSTRAINT),
)

_tokens = Table(
    "tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("first_name", String(255), nullable=False),
    Column("email", String(255), nullable=False),
    Column("token_hash", LargeBinary(32), nullable=False, unique=True),  # SHA-256 digest
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("expiry", DateTime(timezone=True), nullable=False, index=True),
    UniqueConstraint("user_id", name="uq_tokens_user"),  # one token per user
)


# ---------------------------------------------------------------------------
# SQLite connection pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys and WAL journal mode on each new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON is what makes
    ON DELETE CASCADE remove a deleted user's tokens.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite.

    SQLite has no timezone-aware column type, so values come back naive.
    Everything this store writes is UTC, so the wall clock is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_utc(value: datetime) -> datetime:
    """Convert an aware datetime to UTC before it is bound.

    SQLite's DateTime drops tzinfo on write, so a non-UTC wall clock would
    be stored (and compared) as if it were UTC. Naive values are taken as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_email_conflict(exc: IntegrityError) -> bool:
    """True if the violation is the unique email constraint.

    SQLite names the column ("users.email"); PostgreSQL names the constraint.
    """
    message = str(exc.orig)
    return _EMAIL_CONSTRAINT in message or "users.email" in message


def record_id(raw: object) -> RecordID:
    """Classify a backend-assigned primary key.

    bool is rejected even though it subclasses int: a True/False primary key
    always means a driver bug, not id 1/0.
    """
    if isinstance(raw, int) and not isinstance(raw, bool):
        return IntID(raw)
    if isinstance(raw, str):
        return StringID(raw)
    raise PersistenceError(f"unsupported primary key type: {type(raw).__name__}")


def as_int(rid: RecordID) -> int:
    """Return the integer value of a record id, or raise PersistenceError."""
    if isinstance(rid, IntID):
        return rid.value
    if isinstance(rid, StringID):
        # isdecimal, not isdigit: "²" is a digit that int() rejects
        if rid.value.isdecimal():
            return int(rid.value)
        raise PersistenceError(f"non-numeric record id {rid.value!r} cannot be used as an integer key")
    raise PersistenceError(f"unknown record id variant: {type(rid).__name__}")


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Wrap SQLAlchemy failures in PersistenceError with the cause chained."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Database error during %s: %s", action, exc.__class__.__name__)
        raise PersistenceError(f"database error during {action}") from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for User and Token entities.

    Usage:
        store = AuthStore("sqlite:///:memory:")
        uid = store.create_user(User(first_name="Ada", last_name="Lovelace",
                                     email="ada@example.com", password_hash=hash_password("secret")))
        token, plaintext = generate_token(uid, timedelta(hours=1))
        store.insert_token(token, store.get_user(uid))
        store.close()

    The constructor is the single fallible entry point: a bad URL or an
    unreachable database raises PersistenceError here. `poolclass` overrides
    SQLAlchemy's pool choice, e.g. SingletonThreadPool for a shared-memory
    SQLite URI.
    """

    def __init__(self, db_url: str, poolclass: type[Pool] | None = None) -> None:
        connect_args: dict = {}
        engine_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        if poolclass is not None:
            engine_args["poolclass"] = poolclass
        with _translate_errors("startup"):
            self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_args)
            if db_url.startswith("sqlite"):
                event.listen(self.engine, "connect", _set_sqlite_pragmas)
            metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with _translate_errors("has_users"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Stamps created_at/updated_at on both the row and the passed dataclass.
        Raises DuplicateEmailError if the email is already taken.
        """
        now = _now()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        first_name=user.first_name,
                        last_name=user.last_name,
                        email=user.email,
                        user_active=user.active,
                        password=user.password_hash,
                        created_at=now,
                        updated_at=now,
                    )
                )
                new_id = as_int(record_id(result.inserted_primary_key[0]))
        except IntegrityError as exc:
            if _is_email_conflict(exc):
                raise DuplicateEmailError(f"a user with email {user.email!r} already exists") from exc
            raise PersistenceError("integrity error during create_user") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("database error during create_user") from exc
        user.id = new_id
        user.created_at = now
        user.updated_at = now
        return new_id

    def get_user(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with _translate_errors("get_user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with _translate_errors("get_user_by_email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by last name."""
        with _translate_errors("list_users"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.last_name, _users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user: User) -> bool:
        """Write every mutable field of `user` back to its row.

        Refreshes updated_at. Returns True if a row was updated, False if
        user.id was not found. Raises DuplicateEmailError when the new email
        belongs to someone else.
        """
        now = _now()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user.id)
                    .values(
                        first_name=user.first_name,
                        last_name=user.last_name,
                        email=user.email,
                        user_active=user.active,
                        password=user.password_hash,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            if _is_email_conflict(exc):
                raise DuplicateEmailError(f"a user with email {user.email!r} already exists") from exc
            raise PersistenceError("integrity error during update_user") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("database error during update_user") from exc
        if result.rowcount > 0:
            user.updated_at = now
            return True
        return False

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user. Returns True if deleted, False if not found.

        The user's tokens go with it through ON DELETE CASCADE.
        """
        with _translate_errors("delete_user"), self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Token queries
    # ------------------------------------------------------------------

    def insert_token(self, token: Token, user: User) -> int:
        """Persist `token` for `user`, replacing every earlier token of theirs.

        Delete and insert share one transaction: if the insert fails, the old
        tokens are still there. Denormalises the owner's first name and email
        onto the row and stamps timestamps. Sets token.id and returns it.
        """
        now = _now()
        with _translate_errors("insert_token"), self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.user_id == user.id))
            result = conn.execute(
                _tokens.insert().values(
                    user_id=user.id,
                    first_name=user.first_name,
                    email=user.email,
                    token_hash=token.token_hash,
                    created_at=now,
                    updated_at=now,
                    expiry=_to_utc(token.expiry),
                )
            )
            new_id = as_int(record_id(result.inserted_primary_key[0]))
        token.id = new_id
        token.user_id = user.id
        token.first_name = user.first_name
        token.email = user.email
        token.created_at = now
        token.updated_at = now
        return new_id

    def get_token(self, token_id: int) -> Token | None:
        """Look up a token by primary key. Returns None if not found."""
        with _translate_errors("get_token"), self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.id == token_id)).fetchone()
        return _row_to_token(row) if row is not None else None

    def get_token_by_hash(self, plaintext: str) -> Token:
        """Hash `plaintext` and look the token up by digest.

        Raises NotFoundError if no row matches. Expiry is not checked here.
        """
        digest = hash_token(plaintext)
        with _translate_errors("get_token_by_hash"), self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.token_hash == digest).limit(1)).fetchone()
        if row is None:
            raise NotFoundError("no matching token found")
        return _row_to_token(row)

    def get_tokens_for_user(self, user_id: int) -> list[Token]:
        """Return every token owned by user_id (newest first). Empty list if none."""
        with _translate_errors("get_tokens_for_user"), self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select().where(_tokens.c.user_id == user_id).order_by(_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def get_active_token_for_user(self, user_id: int, now: datetime | None = None) -> Token | None:
        """Return the newest unexpired token for user_id, or None."""
        cutoff = _to_utc(now or _now())
        with _translate_errors("get_active_token_for_user"), self.engine.connect() as conn:
            row = conn.execute(
                _tokens.select()
                .where((_tokens.c.user_id == user_id) & (_tokens.c.expiry > cutoff))
                .order_by(_tokens.c.created_at.desc())
                .limit(1)
            ).fetchone()
        return _row_to_token(row) if row is not None else None

    def delete_token(self, token_id: int) -> None:
        """Delete a token by id. Deleting an id that does not exist is not an error."""
        with _translate_errors("delete_token"), self.engine.begin() as conn:
            result = conn.execute(_tokens.delete().where(_tokens.c.id == token_id))
        if result.rowcount == 0:
            logger.debug("delete_token: no token with id=%s", token_id)

    def delete_token_by_hash(self, plaintext: str) -> None:
        """Delete the token whose digest matches `plaintext`. Idempotent."""
        digest = hash_token(plaintext)
        with _translate_errors("delete_token_by_hash"), self.engine.begin() as conn:
            conn.execute(_tokens.delete().where(_tokens.c.token_hash == digest))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        active=bool(row.user_active),
        password_hash=row.password,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _row_to_token(row) -> Token:
    return Token(
        id=row.id,
        user_id=row.user_id,
        first_name=row.first_name,
        email=row.email,
        token_hash=bytes(row.token_hash),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        expiry=_as_utc(row.expiry),
    )
