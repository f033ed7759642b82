#!/usr/bin/env python3
"""
Credgate -- credential issuance and access control service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8000
  python main.py serve --reload
  python main.py create-user --name "Ada" --email ada@example.com --role admin

create-user is how the first admin account is made: /api/v1/users requires
an admin. Note that /api/v1/auth/register accepts a role field; filter it at
the proxy if public clients must not be able to pick "admin".

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL. Defaults to a SQLite file next to the code.
  SMTP_HOST      Outbound relay for password reset mail.
  See core/config.py for the full list.
"""

import argparse
import sys
from getpass import getpass

from auth.errors import AuthError, ValidationError
from auth.mailer import build_mailer
from auth.reset import ResetTokenGenerator
from auth.service import CredentialService
from auth.store import UserStore
from auth.tokens import TokenSigner
from core.config import get_settings


def _create_user(args: argparse.Namespace) -> int:
    password = getpass("Password: ")
    repeated = getpass("Repeat password: ")
    if password != repeated:
        print("  [!] Passwords do not match.")
        return 1

    settings = get_settings()
    store = UserStore(db_url=settings.database_url)
    try:
        service = CredentialService(
            settings,
            store,
            TokenSigner(settings),
            ResetTokenGenerator(settings),
            build_mailer(settings),
        )
        user = service.create_user(args.name, args.email, password, args.role)
    except ValidationError as exc:
        for field in exc.fields:
            print(f"  [!] {field['field']}: {field['message']}")
        return 1
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()

    print(f"  Created {user.role.value} {user.email} (id={user.id})")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Credgate -- credential issuance and access control service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a user account (prompts for the password)")
    create.add_argument("--name", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--role", choices=["user", "admin"], default="user")
    create.set_defaults(func=_create_user)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
