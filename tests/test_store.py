"""Unit tests for auth/store.py -- AuthStore persistence contracts.

Covers:
- generate + insert + lookup by plaintext returns the owner's token
- tampering any single character makes lookup raise NotFoundError
- insert replaces every earlier token of the same user, atomically
- get_tokens_for_user returns [] for a user without tokens
- idempotent delete by id and by plaintext
- deleting a user cascades to their tokens
- duplicate email raises DuplicateEmailError
- get_active_token_for_user skips expired tokens
- record_id / as_int reject unsupported id shapes
- non-UTC datetimes are stored and compared as the same instant
- UNIQUE(user_id) holds even when issuance races across threads
- IntegrityErrors other than the email constraint are PersistenceError
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateEmailError, NotFoundError, PersistenceError
from auth.models import IntID, StringID, User
from auth.passwords import hash_password
from auth.store import AuthStore, _tokens, as_int, record_id
from auth.tokens import generate_token, issue_token

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_user(store: AuthStore, email: str = "owner@test.com") -> User:
    u = User(first_name="Token", last_name="Owner", email=email, password_hash=hash_password("pw", cost=4))
    store.create_user(u)
    return u


def _tamper(plaintext: str, index: int) -> str:
    replacement = "B" if plaintext[index] != "B" else "C"
    return plaintext[:index] + replacement + plaintext[index + 1 :]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_create_assigns_id_and_timestamps(self, store: AuthStore) -> None:
        u = _make_user(store)
        assert isinstance(u.id, int)
        assert u.created_at is not None
        fetched = store.get_user(u.id)
        assert fetched is not None
        assert fetched.email == "owner@test.com"
        assert fetched.active is True
        assert fetched.created_at.tzinfo is not None

    def test_duplicate_email_raises(self, store: AuthStore) -> None:
        _make_user(store, "dup@test.com")
        with pytest.raises(DuplicateEmailError):
            _make_user(store, "dup@test.com")

    def test_missing_user_is_none(self, store: AuthStore) -> None:
        assert store.get_user(999) is None
        assert store.get_user_by_email("nobody@test.com") is None

    def test_list_users_ordered_by_last_name(self, store: AuthStore) -> None:
        for last in ("Zed", "Adams", "Moss"):
            store.create_user(User(first_name="X", last_name=last, email=f"{last}@test.com", password_hash="h"))
        assert [u.last_name for u in store.list_users()] == ["Adams", "Moss", "Zed"]

    def test_update_user(self, store: AuthStore) -> None:
        u = _make_user(store)
        u.last_name = "Renamed"
        u.active = False
        assert store.update_user(u) is True
        fetched = store.get_user(u.id)
        assert fetched.last_name == "Renamed"
        assert fetched.active is False

    def test_update_missing_user_returns_false(self, store: AuthStore) -> None:
        ghost = User(first_name="G", last_name="Host", email="ghost@test.com", id=404, password_hash="h")
        assert store.update_user(ghost) is False

    def test_update_to_taken_email_raises(self, store: AuthStore) -> None:
        _make_user(store, "a@test.com")
        b = _make_user(store, "b@test.com")
        b.email = "a@test.com"
        with pytest.raises(DuplicateEmailError):
            store.update_user(b)

    def test_has_users(self, store: AuthStore) -> None:
        assert store.has_users() is False
        _make_user(store)
        assert store.has_users() is True

    def test_not_null_violation_is_not_duplicate_email(self, store: AuthStore) -> None:
        broken = User(first_name=None, last_name="Owner", email="nn@test.com", password_hash="h")
        with pytest.raises(PersistenceError) as excinfo:
            store.create_user(broken)
        assert not isinstance(excinfo.value, DuplicateEmailError)

    def test_update_not_null_violation_is_not_duplicate_email(self, store: AuthStore) -> None:
        u = _make_user(store)
        u.last_name = None
        with pytest.raises(PersistenceError) as excinfo:
            store.update_user(u)
        assert not isinstance(excinfo.value, DuplicateEmailError)

    def test_explicit_pool_class(self) -> None:
        s = AuthStore("sqlite:///:memory:", poolclass=StaticPool)
        try:
            assert isinstance(s.engine.pool, StaticPool)
            assert s.has_users() is False
        finally:
            s.close()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_lookup_by_plaintext_returns_owned_token(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(hours=1))
        token_id = store.insert_token(token, u)
        found = store.get_token_by_hash(plaintext)
        assert found.id == token_id
        assert found.user_id == u.id
        assert found.first_name == "Token"
        assert found.email == "owner@test.com"
        assert len(found.token_hash) == 32
        assert found.expiry.tzinfo is not None
        assert abs(found.expiry - token.expiry) < timedelta(seconds=1)

    def test_tampered_plaintext_is_not_found(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token, u)
        for i in range(len(plaintext)):
            with pytest.raises(NotFoundError):
                store.get_token_by_hash(_tamper(plaintext, i))

    def test_second_insert_invalidates_first(self, store: AuthStore) -> None:
        u = _make_user(store)
        token_a, plain_a = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token_a, u)
        token_b, plain_b = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token_b, u)

        with pytest.raises(NotFoundError):
            store.get_token_by_hash(plain_a)
        assert store.get_token_by_hash(plain_b).id == token_b.id
        assert [t.id for t in store.get_tokens_for_user(u.id)] == [token_b.id]

    def test_insert_only_replaces_same_user(self, store: AuthStore) -> None:
        a = _make_user(store, "a@test.com")
        b = _make_user(store, "b@test.com")
        token_a, plain_a = generate_token(a.id, timedelta(hours=1))
        store.insert_token(token_a, a)
        token_b, _ = generate_token(b.id, timedelta(hours=1))
        store.insert_token(token_b, b)
        assert store.get_token_by_hash(plain_a).user_id == a.id

    def test_failed_insert_keeps_previous_token(self, store: AuthStore) -> None:
        """A failing insert rolls back the delete in the same transaction."""
        u = _make_user(store)
        token_a, plain_a = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token_a, u)

        # Reuse another user's digest: UNIQUE(token_hash) makes the insert fail
        # after the delete of u's rows has already run.
        other = _make_user(store, "other@test.com")
        token_o, plain_o = generate_token(other.id, timedelta(hours=1))
        store.insert_token(token_o, other)
        clash, _ = generate_token(u.id, timedelta(hours=1))
        clash.token_hash = token_o.token_hash
        with pytest.raises(PersistenceError):
            store.insert_token(clash, u)

        assert store.get_token_by_hash(plain_a).id == token_a.id
        assert store.get_token_by_hash(plain_o).user_id == other.id

    def test_insert_for_unknown_user_fails(self, store: AuthStore) -> None:
        ghost = User(first_name="G", last_name="Host", email="ghost@test.com", id=12345)
        token, _ = generate_token(ghost.id, timedelta(hours=1))
        with pytest.raises(PersistenceError):
            store.insert_token(token, ghost)

    def test_tokens_for_user_without_tokens_is_empty(self, store: AuthStore) -> None:
        u = _make_user(store)
        assert store.get_tokens_for_user(u.id) == []
        assert store.get_tokens_for_user(999) == []

    def test_get_token_by_id(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, _ = generate_token(u.id, timedelta(hours=1))
        token_id = store.insert_token(token, u)
        assert store.get_token(token_id).user_id == u.id
        assert store.get_token(token_id + 1000) is None

    def test_delete_by_id(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(hours=1))
        token_id = store.insert_token(token, u)
        store.delete_token(token_id)
        with pytest.raises(NotFoundError):
            store.get_token_by_hash(plaintext)

    def test_delete_missing_id_is_not_an_error(self, store: AuthStore) -> None:
        assert store.delete_token(424242) is None

    def test_delete_by_plaintext_is_idempotent(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token, u)
        store.delete_token_by_hash(plaintext)
        store.delete_token_by_hash(plaintext)
        store.delete_token_by_hash("NEVERISSUEDNEVERISSUEDABCD")
        assert store.get_tokens_for_user(u.id) == []

    def test_deleting_user_cascades_to_tokens(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token, u)
        assert store.delete_user(u.id) is True
        assert store.get_tokens_for_user(u.id) == []
        with pytest.raises(NotFoundError):
            store.get_token_by_hash(plaintext)

    def test_delete_missing_user_returns_false(self, store: AuthStore) -> None:
        assert store.delete_user(999) is False

    def test_active_token_skips_expired(self, store: AuthStore) -> None:
        u = _make_user(store)
        expired, _ = generate_token(u.id, timedelta(seconds=-60))
        store.insert_token(expired, u)
        assert store.get_active_token_for_user(u.id) is None

        live, _ = generate_token(u.id, timedelta(hours=1))
        store.insert_token(live, u)
        assert store.get_active_token_for_user(u.id).id == live.id

    def test_active_token_with_non_utc_now(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, _ = generate_token(u.id, timedelta(minutes=30))
        store.insert_token(token, u)
        plus_five = datetime.now(timezone(timedelta(hours=5)))
        active = store.get_active_token_for_user(u.id, now=plus_five)
        assert active is not None
        assert active.id == token.id

    def test_non_utc_expiry_is_stored_as_same_instant(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, plaintext = generate_token(u.id, timedelta(minutes=30))
        token.expiry = token.expiry.astimezone(timezone(timedelta(hours=-5)))
        store.insert_token(token, u)
        found = store.get_token_by_hash(plaintext)
        assert abs(found.expiry - token.expiry) < timedelta(seconds=1)
        assert store.get_active_token_for_user(u.id) is not None

    def test_one_token_row_per_user_is_enforced(self, store: AuthStore) -> None:
        """A second row for the same user_id, written without the delete, violates UNIQUE(user_id)."""
        u = _make_user(store)
        token, _ = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token, u)

        second, _ = generate_token(u.id, timedelta(hours=1))
        now = datetime.now(timezone.utc)
        with pytest.raises(IntegrityError), store.engine.begin() as conn:
            conn.execute(
                _tokens.insert().values(
                    user_id=u.id,
                    first_name=u.first_name,
                    email=u.email,
                    token_hash=second.token_hash,
                    created_at=now,
                    updated_at=now,
                    expiry=second.expiry,
                )
            )
        assert [t.id for t in store.get_tokens_for_user(u.id)] == [token.id]

    def test_concurrent_issuance_leaves_one_token(self, tmp_path) -> None:
        file_store = AuthStore(f"sqlite:///{tmp_path / 'race.db'}")
        try:
            u = _make_user(file_store)

            def issue_many(_: int) -> None:
                for _ in range(20):
                    issue_token(file_store, u, ttl=3600)

            with ThreadPoolExecutor(max_workers=4) as pool:
                # list() re-raises any error from a worker
                list(pool.map(issue_many, range(4)))

            assert len(file_store.get_tokens_for_user(u.id)) == 1
        finally:
            file_store.close()

    def test_active_token_respects_explicit_now(self, store: AuthStore) -> None:
        u = _make_user(store)
        token, _ = generate_token(u.id, timedelta(hours=1))
        store.insert_token(token, u)
        later = datetime.now(timezone.utc) + timedelta(hours=2)
        assert store.get_active_token_for_user(u.id, now=later) is None


# ---------------------------------------------------------------------------
# Record ids
# ---------------------------------------------------------------------------


class TestRecordId:
    def test_int_becomes_int_id(self) -> None:
        assert record_id(5) == IntID(5)
        assert as_int(IntID(5)) == 5

    def test_str_becomes_string_id(self) -> None:
        assert record_id("a1b2") == StringID("a1b2")

    def test_numeric_string_id_converts(self) -> None:
        assert as_int(StringID("12")) == 12

    def test_non_numeric_string_id_is_rejected(self) -> None:
        with pytest.raises(PersistenceError):
            as_int(StringID("7f9c1e1a-uuid"))

    @pytest.mark.parametrize("value", ["²", "", "-3", "1.5"])
    def test_non_decimal_string_id_is_rejected(self, value: str) -> None:
        with pytest.raises(PersistenceError):
            as_int(StringID(value))

    @pytest.mark.parametrize("raw", [True, 3.5, None, b"1"])
    def test_unsupported_types_are_rejected(self, raw: object) -> None:
        with pytest.raises(PersistenceError):
            record_id(raw)
