"""
auth/accounts.py -- User account lifecycle.

AccountManager owns create / fetch / update / reset-password / delete for
users and is the only place plaintext passwords are turned into hashes.
Passwords always arrive as separate arguments; User.password_hash only ever
holds bcrypt output.

fetch() and fetch_by_email() also attach the user's newest unexpired token
(or None). A user without a token is not an error.

authenticate() keeps login timing flat [C1]: an unknown email still runs one
bcrypt verification against a dummy hash, so response time does not reveal
which emails have accounts.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.errors import NotFoundError
from auth.passwords import dummy_verify, hash_password, verify_password

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import AuthStore

logger = logging.getLogger("tokengate.accounts")


class AccountManager:
    """Service for user accounts.

    Usage:
        accounts = AccountManager(store)
        uid = accounts.create(User(first_name="Ada", last_name="Lovelace", email="ada@example.com"), "s3cret")
        user = accounts.fetch(uid)
    """

    def __init__(self, store: AuthStore, cost: int | None = None) -> None:
        self.store = store
        self.cost = cost

    def create(self, user: User, password: str) -> int:
        """Hash `password`, persist `user`, and return the new id.

        Raises:
            HashingError:        bcrypt failed.
            DuplicateEmailError: the email is already registered.
        """
        user.password_hash = hash_password(password, self.cost)
        user_id = self.store.create_user(user)
        logger.info("Created user id=%s", user_id)
        return user_id

    def fetch(self, user_id: int) -> User:
        """Return the user with their active token attached. Raises NotFoundError."""
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"no user with id {user_id}")
        user.token = self.store.get_active_token_for_user(user.id)
        return user

    def fetch_by_email(self, email: str) -> User:
        """Return the user with their active token attached. Raises NotFoundError."""
        user = self.store.get_user_by_email(email)
        if user is None:
            raise NotFoundError("no user with that email")
        user.token = self.store.get_active_token_for_user(user.id)
        return user

    def list_all(self) -> list[User]:
        """Return every user ordered by last name. Tokens are not attached."""
        return self.store.list_users()

    def update(self, user: User) -> None:
        """Persist changes to an existing user. Raises NotFoundError if it is gone."""
        if not self.store.update_user(user):
            raise NotFoundError(f"no user with id {user.id}")

    def reset_password(self, user_id: int, new_password: str) -> None:
        """Replace a user's password hash. Raises NotFoundError for an unknown id."""
        user = self.fetch(user_id)
        user.password_hash = hash_password(new_password, self.cost)
        self.update(user)
        logger.info("Password reset for user id=%s", user_id)

    def delete(self, user_id: int) -> bool:
        """Delete a user. Their tokens are removed by the FK cascade.

        Returns False (not an error) when the id does not exist.
        """
        deleted = self.store.delete_user(user_id)
        if deleted:
            logger.info("Deleted user id=%s", user_id)
        return deleted

    def password_matches(self, user: User, plain: str) -> bool:
        """True if `plain` matches the user's stored hash. HashingError if the hash is corrupt."""
        return verify_password(plain, user.password_hash)

    def authenticate(self, email: str, password: str) -> User | None:
        """Check an email/password login with timing equalization [C1].

        Returns the User on success, None on unknown email, wrong password,
        or inactive account.
        """
        user = self.store.get_user_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            dummy_verify(password)
            return None
        if not verify_password(password, user.password_hash):
            return None
        if not user.active:
            return None
        return user
