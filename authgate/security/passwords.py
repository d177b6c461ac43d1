"""
Password hashing and verification (bcrypt).

Hashes are self-salted ``$2b$12$...`` strings.  Verification never
raises: a malformed hash, an empty password, or an empty hash all
report a plain mismatch.
"""

from __future__ import annotations

import asyncio
import logging
import re

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72

_BCRYPT_HASH_RE = re.compile(r"^\$2[aby]\$\d{2}\$[./A-Za-z0-9]{53}$")


def is_password_hash(value: str) -> bool:
    """True if *value* has the shape of a bcrypt hash."""
    return bool(value) and _BCRYPT_HASH_RE.match(value) is not None


def hash_password(password: str) -> str:
    """Hash *password* with a fresh salt.

    Raises:
        ValueError: if the password is empty or longer than 72 bytes.
    """
    if not password:
        raise ValueError("Password cannot be empty")
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """Check *password* against *password_hash* in constant time."""
    if not password or not password_hash:
        return False
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        logger.debug("Rejected malformed password hash")
        return False


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)
