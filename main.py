#!/usr/bin/env python3
"""
TaskTrack -- identity, sessions and numbering core for a multi-tenant task tracker.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py serve --reload
  python main.py create-admin --email admin@example.com --password 's3cret!'
  python main.py create-admin --email admin@example.com --password 's3cret!' --name "Ops"

Environment variables (see core/config.py):
  JWT_ACCESS_SECRET, JWT_REFRESH_SECRET   Required unless DEBUG=true. Must differ.
  DATABASE_URL                            SQLAlchemy URL (default: ./tasktrack.db)
"""

import argparse
import sys
from typing import Optional

from auth.models import Role
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES, CredentialIssuer, password_too_long
from core.config import get_settings
from core.errors import EmailTaken


def create_admin(email: str, password: str, name: Optional[str] = None) -> int:
    """Create an ADMIN identity. Returns a process exit code."""
    settings = get_settings()
    users = UserStore(settings.database_url)
    sessions = SessionStore(settings.database_url)
    service = AuthService(CredentialIssuer.from_settings(settings), users, sessions)
    try:
        user = service.create_identity(email, password, name, role=Role.ADMIN)
    except EmailTaken:
        print(f"  [!] '{email}' is already registered.")
        return 1
    finally:
        sessions.close()
        users.close()
    print(f"  Admin created: {user.email} (id={user.id})")
    return 0


def serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=host, port=port, reload=reload)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="tasktrack",
        description="TaskTrack -- identity, sessions and numbering core",
    )
    sub = parser.add_subparsers(dest="command")

    p_serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")

    p_admin = sub.add_parser("create-admin", help="Create an ADMIN identity")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--password", required=True)
    p_admin.add_argument("--name", default=None)

    args = parser.parse_args()

    if args.command == "serve":
        return serve(args.host, args.port, args.reload)
    if args.command == "create-admin":
        if len(args.password) < 6:
            print("  [!] Password must be at least 6 characters.")
            return 1
        if password_too_long(args.password):
            print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
            return 1
        return create_admin(args.email, args.password, args.name)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
