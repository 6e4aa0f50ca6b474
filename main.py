#!/usr/bin/env python3
"""
ItemVault -- role-gated item records behind token authentication.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000
  python main.py create-user alice --role Admin
  python main.py create-user bob                  # role defaults to User

Environment variables (see core/config.py for the full list):
  SECRET_KEY    Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL  SQLAlchemy URL for users (and items, unless ITEMS_FILE is set).
  ITEMS_FILE    Optional JSON file for the item collection.
"""

import argparse
import getpass
import sys

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import check_password, hash_password
from core.config import get_settings
from core.errors import ItemVaultError


def create_user(username: str, role: Role, password: str) -> int:
    """Provision a login. Users are never created or changed through the HTTP API."""
    store = UserStore(get_settings().database_url)
    try:
        return store.create_user(User(username=username, password_hash=hash_password(password), role=role))
    finally:
        store.close()


def _prompt_password() -> str:
    password = getpass.getpass("Password: ")
    check_password(password)
    if password != getpass.getpass("Repeat password: "):
        raise SystemExit("  [!] Passwords do not match.")
    return password


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="ItemVault -- role-gated item records behind token authentication.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    create = sub.add_parser("create-user", help="Provision a login")
    create.add_argument("username")
    create.add_argument("--role", choices=[r.value for r in Role], default=Role.user.value)

    args = parser.parse_args(argv)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
        return 0

    try:
        user_id = create_user(args.username, Role(args.role), _prompt_password())
    except ItemVaultError as exc:
        print(f"  [!] {exc}")
        return 1
    print(f"  Created {args.role} user {args.username!r} (id {user_id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
