#!/usr/bin/env python3
"""
SmartFeedback -- feedback collection and moderation service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000 --reload
  python main.py create-admin --email admin@example.com --name "Site Admin"
  python main.py create-admin --email admin@example.com --name "Site Admin" --password "S3cret!pw"
  python main.py promote --email someone@example.com
  python main.py demote --email someone@example.com

Environment variables (see core/config.py):
  SECRET_KEY     Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the database (default: sqlite file next to this script).
  DEBUG          true to auto-generate SECRET_KEY for local development.

Self-service registration only ever creates ordinary users. The first admin
is created here; after that, admins can promote others through the API.
"""

import argparse
import getpass
import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from auth.models import EMAIL_PATTERN, User
from auth.passwords import check_password_policy, hash_password
from auth.store import UserStore
from core.config import get_settings
from core.database import create_db_engine
from core.errors import FeedbackAppError, InvalidArgument

logger = logging.getLogger("smartfeedback.cli")


@contextmanager
def _open_user_store() -> Iterator[UserStore]:
    engine = create_db_engine(get_settings().database_url)
    try:
        yield UserStore(engine)
    finally:
        engine.dispose()


def _prompt_password() -> str:
    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def create_admin(email: str, name: str, password: Optional[str] = None) -> int:
    """Create an admin account and return its id.

    Raises InvalidArgument, WeakCredential or DuplicateIdentity like the register endpoint does.
    """
    email = email.strip()
    if not re.match(EMAIL_PATTERN, email):
        raise InvalidArgument("Invalid email address.")
    if len(name.strip()) < 3:
        raise InvalidArgument("Full name must be at least 3 characters.")
    if password is None:
        password = _prompt_password()
    check_password_policy(password)
    with _open_user_store() as store:
        user_id = store.create_user(
            User(full_name=name.strip(), email=email, hashed_password=hash_password(password), is_admin=True)
        )
    logger.info("Created admin user_id=%s via CLI", user_id)
    return user_id


def set_role(email: str, is_admin: bool) -> bool:
    """Promote or demote by email. Returns False when no such user exists.

    CLI role changes are not audited: there is no acting user to record.
    """
    with _open_user_store() as store:
        user = store.get_by_email(email)
        if user is None:
            return False
        store.set_admin(user.id, is_admin)
    logger.info("CLI set is_admin=%s for user_id=%s", is_admin, user.id)
    return True


def serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, reload=reload)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="smartfeedback",
        description="Run the SmartFeedback API or manage admin accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the API server with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    p_admin = sub.add_parser("create-admin", help="Create an admin account")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--name", required=True, help="Full name shown in the admin dashboard")
    p_admin.add_argument("--password", help="Admin password (prompted for when omitted; avoid in shell history)")

    for name, help_text in (("promote", "Grant admin rights"), ("demote", "Revoke admin rights")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--email", required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=get_settings().log_level.upper(), format="%(levelname)-5s %(name)s %(message)s")

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
        return 0

    try:
        if args.command == "create-admin":
            user_id = create_admin(args.email, args.name, args.password)
            print(f"  Admin created (id={user_id}).")
            return 0
        if not set_role(args.email, args.command == "promote"):
            print(f"  [!] No user with email '{args.email}'.")
            return 1
    except FeedbackAppError as exc:
        print(f"  [!] {exc.message}")
        if exc.detail:
            print(f"      {exc.detail}")
        return 1

    print(f"  {args.email} {'promoted to admin' if args.command == 'promote' else 'demoted to user'}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
