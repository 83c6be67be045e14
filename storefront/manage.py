"""
Management commands
- create-admin: create an admin account (initial setup)
- send-test-email: check the SMTP/Gmail configuration

Usage:
  python -m storefront.manage create-admin --email admin@example.com --password 'AdminPass123!'
  python -m storefront.manage send-test-email --to you@example.com
"""
import argparse
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from . import models, schemas
from .auth import register_user
from .config import settings
from .db import Base, SessionLocal, engine
from .errors import ConflictError
from .notifications import EmailNotifier


def create_admin(email: str, password: str, first_name: str = "Admin", last_name: str = "User") -> models.User:
    payload = schemas.RegisterRequest(email=email, password=password, first_name=first_name, last_name=last_name)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        user, _ = register_user(db, payload, settings, role=models.UserRole.ADMIN)
        return user
    finally:
        db.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="storefront.manage")
    sub = parser.add_subparsers(dest="command", required=True)

    admin = sub.add_parser("create-admin", help="Create an admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--password", required=True)
    admin.add_argument("--first-name", default="Admin")
    admin.add_argument("--last-name", default="User")

    mail = sub.add_parser("send-test-email", help="Send a test email with the configured transport")
    mail.add_argument("--to", required=True)

    args = parser.parse_args(argv)

    if args.command == "create-admin":
        try:
            user = create_admin(args.email, args.password, args.first_name, args.last_name)
        except ValidationError as e:
            print(f"invalid admin details: {e}", file=sys.stderr)
            return 2
        except ConflictError as e:
            print(e.message, file=sys.stderr)
            return 1
        print(f"admin {user.email} created (id {user.id})")
        return 0

    ok = EmailNotifier(settings).send_test_email(args.to)
    print("test email sent" if ok else "test email failed", file=sys.stdout if ok else sys.stderr)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
