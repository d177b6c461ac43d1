#!/usr/bin/env python3
"""
Generate the values authgate reads from .env, or change a stored password.

    python scripts/setup_credentials.py hash-password
    python scripts/setup_credentials.py generate-totp-secret --username admin
    python scripts/setup_credentials.py generate-jwt-secret
    python scripts/setup_credentials.py change-password --db data/authgate.db
"""

import argparse
import asyncio
import getpass
import os
import secrets
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from authgate.config import DATA_DIR  # noqa: E402
from authgate.db import UserStore  # noqa: E402
from authgate.errors import AuthError  # noqa: E402
from authgate.security.passwords import hash_password  # noqa: E402
from authgate.security.tokens import TokenIssuer  # noqa: E402
from authgate.security.totp import TotpVerifier, generate_totp_secret, provisioning_uri  # noqa: E402
from authgate.services.auth import AuthService  # noqa: E402


def cmd_hash_password(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if not args.password and password != getpass.getpass("Repeat password: "):
        print("Error: passwords do not match", file=sys.stderr)
        return 1
    try:
        hashed = hash_password(password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print("Add this line to your .env file:")
    print(f"AUTH_PASSWORD_HASH='{hashed}'")
    return 0


def cmd_generate_totp_secret(args: argparse.Namespace) -> int:
    secret = generate_totp_secret()
    print("Add this line to your .env file:")
    print(f"AUTH_2FA_SECRET={secret}")
    print("\nEnroll it in your authenticator app with this URI (or enter the key manually):")
    print(provisioning_uri(secret, args.username, args.issuer))
    return 0


def cmd_generate_jwt_secret(args: argparse.Namespace) -> int:
    print("Add this line to your .env file:")
    print(f"JWT_SECRET={secrets.token_urlsafe(args.bytes)}")
    return 0


async def _change_password(db_path: str, username: str, current: str, new: str, code: str) -> None:
    store = UserStore(db_path)
    await store.open()
    try:
        # No tokens are issued on this path, so the signing key is throwaway.
        service = AuthService(
            store,
            TokenIssuer(secrets.token_urlsafe(32)),
            TotpVerifier(valid_window=int(os.getenv("TOTP_VALID_WINDOW", "1"))),
        )
        await service.change_password(username, current, new, code)
    finally:
        await store.close()


def cmd_change_password(args: argparse.Namespace) -> int:
    if not Path(args.db).exists():
        print(f"Error: database not found at {args.db}", file=sys.stderr)
        return 1

    username = args.username or input("Username: ").strip()
    current = getpass.getpass("Current password: ")
    code = input("2FA code (6 digits): ").strip()
    new = getpass.getpass("New password: ")
    if new != getpass.getpass("Repeat new password: "):
        print("Error: passwords do not match", file=sys.stderr)
        return 1

    try:
        asyncio.run(_change_password(args.db, username, current, new, code))
    except AuthError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print("Password updated. Tokens issued before the change stay valid until they expire.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="authgate credential helpers")
    sub = parser.add_subparsers(dest="command", required=True)

    p_hash = sub.add_parser("hash-password", help="bcrypt-hash a password for AUTH_PASSWORD_HASH")
    p_hash.add_argument("--password", help="password to hash (prompted when omitted)")
    p_hash.set_defaults(func=cmd_hash_password)

    p_totp = sub.add_parser("generate-totp-secret", help="create a base32 secret for AUTH_2FA_SECRET")
    p_totp.add_argument("--username", default="admin")
    p_totp.add_argument("--issuer", default="authgate")
    p_totp.set_defaults(func=cmd_generate_totp_secret)

    p_jwt = sub.add_parser("generate-jwt-secret", help="create a random JWT_SECRET")
    p_jwt.add_argument("--bytes", type=int, default=48)
    p_jwt.set_defaults(func=cmd_generate_jwt_secret)

    p_change = sub.add_parser(
        "change-password", help="change a stored password (asks for the current one and a 2FA code)"
    )
    p_change.add_argument(
        "--db",
        default=os.getenv("DB_PATH", str(DATA_DIR / "authgate.db")),
        help="path to the SQLite user store",
    )
    p_change.add_argument("--username", help="account to update (prompted when omitted)")
    p_change.set_defaults(func=cmd_change_password)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
