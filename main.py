#!/usr/bin/env python3
"""
Notice board -- operator commands for running outside the web UI.

Usage:
  python main.py create-user alice --role teacher --full-name "Alice Smith"
  python main.py create-user root --role admin
  python main.py list-users
  python main.py purge-sessions

Passwords are read with getpass and never accepted on the command line.
Configuration (DATABASE_URL, SESSION_DB_URL, SECRET_KEY, ...) comes from the
environment or .env, exactly as for the web app.
"""

import argparse
import getpass
import sys

from auth.models import Role
from auth.sessions import SessionStore
from auth.store import DuplicateUsername, InvalidUser, UserStore


def _create_user(args: argparse.Namespace) -> int:
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        return 1
    store = UserStore()
    try:
        user = store.create(args.username, password, Role(args.role), args.full_name)
    except DuplicateUsername:
        print(f"  [!] Username '{args.username}' already exists.")
        return 1
    except InvalidUser as e:
        print(f"  [!] {e}")
        return 1
    finally:
        store.close()
    print(f"  Created {user.role.value} '{user.username}' (id {user.id}).")
    return 0


def _list_users(args: argparse.Namespace) -> int:
    store = UserStore()
    try:
        users = store.list_all()
    finally:
        store.close()
    if not users:
        print("  No users.")
        return 0
    for user in users:
        print(f"  {user.id:>5}  {user.role.value:<8}  {user.username:<24}  {user.full_name}")
    return 0


def _purge_sessions(args: argparse.Namespace) -> int:
    store = SessionStore()
    try:
        removed = store.purge_expired()
    finally:
        store.close()
    print(f"  Removed {removed} expired session(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="noticeboard",
        description="Notice board administration commands.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account (prompts for the password)")
    create.add_argument("username")
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.student.value)
    create.add_argument("--full-name", default="")
    create.set_defaults(func=_create_user)

    list_cmd = sub.add_parser("list-users", help="List all accounts")
    list_cmd.set_defaults(func=_list_users)

    purge = sub.add_parser("purge-sessions", help="Delete expired sessions")
    purge.set_defaults(func=_purge_sessions)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
