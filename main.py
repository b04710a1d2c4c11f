#!/usr/bin/env python3
"""
TokenGate -- administrative command line.

Usage:
  python main.py create-user --first-name Ada --last-name Lovelace --email ada@example.com
  python main.py list-users
  python main.py issue-token ada@example.com --ttl 3600
  python main.py revoke-token <token>
  python main.py reset-password ada@example.com
  python main.py delete-user 3

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the account database (default: SQLite file in auth/).
  TOKEN_LENGTH   Length of issued tokens (default 26).
  BCRYPT_COST    bcrypt work factor for new password hashes (default 12).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.accounts import AccountManager
from auth.errors import AuthError
from auth.models import User
from auth.store import AuthStore
from auth.tokens import issue_token
from core.config import get_settings


def _read_password(given: Optional[str]) -> str:
    """Return the --password value, or prompt twice without echo."""
    if given:
        return given
    first = getpass.getpass("  Password: ")
    second = getpass.getpass("  Repeat password: ")
    if first != second:
        raise SystemExit("  [!] Passwords do not match.")
    return first


def _cmd_create_user(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    user = User(first_name=args.first_name, last_name=args.last_name, email=args.email, active=not args.inactive)
    user_id = accounts.create(user, _read_password(args.password))
    print(f"  {user_id}: {user.first_name} {user.last_name} <{user.email}>")


def _cmd_list_users(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    users = accounts.list_all()
    if not users:
        print("  No users.")
        return
    for u in users:
        status = "active" if u.active else "inactive"
        print(f"  {u.id:>5}  {u.last_name}, {u.first_name}  <{u.email}>  {status}")


def _cmd_issue_token(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    user = accounts.fetch_by_email(args.email)
    token, plaintext = issue_token(store, user, ttl=args.ttl)
    # The plaintext is shown once and cannot be recovered later.
    print(plaintext)
    print(f"  expires {token.expiry.isoformat()}", file=sys.stderr)


def _cmd_revoke_token(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    store.delete_token_by_hash(args.token)
    print("  Token revoked (if it existed).")


def _cmd_reset_password(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    user = accounts.fetch_by_email(args.email)
    accounts.reset_password(user.id, _read_password(args.password))
    print(f"  Password updated for {user.email}.")


def _cmd_delete_user(accounts: AccountManager, store: AuthStore, args: argparse.Namespace) -> None:
    if accounts.delete(args.user_id):
        print(f"  Deleted user {args.user_id}.")
    else:
        print(f"  No user with id {args.user_id}.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="Manage TokenGate user accounts and bearer tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --first-name Ada --last-name Lovelace --email ada@example.com
  python main.py issue-token ada@example.com --ttl 3600
  DATABASE_URL=postgresql://user:pw@host/db python main.py list-users
        """,
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-user", help="Create a user account")
    p.add_argument("--first-name", required=True)
    p.add_argument("--last-name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password", help="Password (prompted if omitted)")
    p.add_argument("--inactive", action="store_true", help="Create the account disabled")
    p.set_defaults(func=_cmd_create_user)

    p = sub.add_parser("list-users", help="List user accounts by last name")
    p.set_defaults(func=_cmd_list_users)

    p = sub.add_parser("issue-token", help="Issue a token for a user, replacing any existing one")
    p.add_argument("email")
    p.add_argument("--ttl", type=int, default=None, metavar="SECONDS", help="Lifetime (default TOKEN_TTL_SECONDS)")
    p.set_defaults(func=_cmd_issue_token)

    p = sub.add_parser("revoke-token", help="Delete a token by its plaintext value")
    p.add_argument("token")
    p.set_defaults(func=_cmd_revoke_token)

    p = sub.add_parser("reset-password", help="Set a new password for a user")
    p.add_argument("email")
    p.add_argument("--password", help="New password (prompted if omitted)")
    p.set_defaults(func=_cmd_reset_password)

    p = sub.add_parser("delete-user", help="Delete a user and their token")
    p.add_argument("user_id", type=int)
    p.set_defaults(func=_cmd_delete_user)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level="DEBUG" if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        store = AuthStore(settings.database_url)
    except AuthError as e:
        print(f"  [!] Could not open the account database: {e}", file=sys.stderr)
        return 1

    accounts = AccountManager(store, cost=settings.bcrypt_cost)
    try:
        args.func(accounts, store, args)
    except AuthError as e:
        print(f"  [!] {e} ({e.code})", file=sys.stderr)
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
