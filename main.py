#!/usr/bin/env python3
"""
AuthGate admin CLI -- seed users and roles, and maintain remember-me tokens.

Usage:
  python main.py create-role admin --description "Administrative user"
  python main.py create-user alice --password s3cret --email alice@example.com --role login --role admin
  python main.py grant alice editor
  python main.py revoke alice editor
  python main.py logout-all alice
  python main.py purge-tokens

Every subcommand accepts --db URL; the default comes from DATABASE_URL.
A user needs the "login" role before any password login succeeds.
"""

import argparse
import sys
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings


def _cmd_create_role(store: UserStore, args: argparse.Namespace) -> int:
    try:
        role_id = store.create_role(Role(name=args.name, description=args.description))
    except IntegrityError:
        print(f"  [!] Role '{args.name}' already exists.")
        return 1
    print(f"  Created role '{args.name}' (id={role_id})")
    return 0


def _cmd_create_user(store: UserStore, args: argparse.Namespace) -> int:
    # Resolve roles first so a typo does not leave a half-provisioned user behind.
    roles = []
    for name in args.role or []:
        role = store.get_role_by_name(name)
        if role is None:
            print(f"  [!] Unknown role '{name}'. Create it with: create-role {name}")
            return 1
        roles.append(role)

    user = User(username=args.username, email=args.email, hashed_password=hash_password(args.password))
    try:
        user_id = store.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with username '{args.username}' or that email already exists.")
        return 1

    for role in roles:
        store.add_role(user_id, role.id)
    granted = ", ".join(r.name for r in roles) or "none"
    print(f"  Created user '{args.username}' (id={user_id}, roles: {granted})")
    return 0


def _load_user_and_role(store: UserStore, username: str, role_name: str) -> tuple[Optional[User], Optional[Role]]:
    user = store.get_by_unique_key(username)
    if user is None:
        print(f"  [!] Unknown user '{username}'.")
        return None, None
    role = store.get_role_by_name(role_name)
    if role is None:
        print(f"  [!] Unknown role '{role_name}'.")
        return user, None
    return user, role


def _cmd_grant(store: UserStore, args: argparse.Namespace) -> int:
    user, role = _load_user_and_role(store, args.username, args.role)
    if user is None or role is None:
        return 1
    if store.add_role(user.id, role.id):
        print(f"  Granted '{role.name}' to '{user.username}'")
    else:
        print(f"  '{user.username}' already has '{role.name}'")
    return 0


def _cmd_revoke(store: UserStore, args: argparse.Namespace) -> int:
    user, role = _load_user_and_role(store, args.username, args.role)
    if user is None or role is None:
        return 1
    if store.remove_role(user.id, role.id):
        print(f"  Revoked '{role.name}' from '{user.username}'")
    else:
        print(f"  '{user.username}' did not have '{role.name}'")
    return 0


def _cmd_logout_all(store: UserStore, args: argparse.Namespace) -> int:
    user = store.get_by_unique_key(args.username)
    if user is None:
        print(f"  [!] Unknown user '{args.username}'.")
        return 1
    removed = store.delete_user_tokens(user.id)
    print(f"  Removed {removed} remember-me token(s) for '{user.username}'")
    return 0


def _cmd_purge_tokens(store: UserStore, args: argparse.Namespace) -> int:
    removed = store.purge_expired_tokens()
    print(f"  Purged {removed} expired token(s)")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="AuthGate -- user, role and remember-me token administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    db_help = "SQLAlchemy database URL (default: DATABASE_URL)"
    parser.add_argument("--db", metavar="URL", help=db_help)
    # Also accepted after the subcommand name. SUPPRESS keeps an unset
    # subcommand --db from overwriting the top-level value.
    db = argparse.ArgumentParser(add_help=False)
    db.add_argument("--db", metavar="URL", default=argparse.SUPPRESS, help=db_help)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-role", parents=[db], help="Create a role")
    p.add_argument("name")
    p.add_argument("--description", default=None)
    p.set_defaults(func=_cmd_create_role)

    p = sub.add_parser("create-user", parents=[db], help="Create a user with a password and optional roles")
    p.add_argument("username")
    p.add_argument("--password", required=True)
    p.add_argument("--email", default=None)
    p.add_argument("--role", action="append", metavar="ROLE", help="Role to grant (repeatable)")
    p.set_defaults(func=_cmd_create_user)

    p = sub.add_parser("grant", parents=[db], help="Grant a role to a user")
    p.add_argument("username")
    p.add_argument("role")
    p.set_defaults(func=_cmd_grant)

    p = sub.add_parser("revoke", parents=[db], help="Revoke a role from a user")
    p.add_argument("username")
    p.add_argument("role")
    p.set_defaults(func=_cmd_revoke)

    p = sub.add_parser("logout-all", parents=[db], help="Delete every remember-me token for a user")
    p.add_argument("username")
    p.set_defaults(func=_cmd_logout_all)

    p = sub.add_parser("purge-tokens", parents=[db], help="Delete expired remember-me tokens")
    p.set_defaults(func=_cmd_purge_tokens)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    db_url = args.db
    if not db_url:
        try:
            db_url = get_settings().database_url
        except ValidationError as exc:
            print(f"  [!] Invalid configuration: {exc.errors()[0]['msg']}")
            print("      Fix the environment or pass --db URL.")
            return 1
    store = UserStore(db_url=db_url)
    try:
        return args.func(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
