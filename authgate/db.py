"""
SQLite user store using aiosqlite.

Stores the identities that can log in.  The table is created
automatically on first connect.  The store is opened by the application
lifespan and handed to the services that need it; nothing reaches it
through module globals.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiosqlite

from authgate.models import UserRecord

logger = logging.getLogger(__name__)


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id              TEXT PRIMARY KEY,
    username        TEXT NOT NULL UNIQUE,
    password_hash   TEXT NOT NULL,
    totp_secret     TEXT NOT NULL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    last_login      TEXT,
    metadata        TEXT,           -- JSON object
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_active ON users(is_active);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_username(username: str) -> str:
    return username.strip().lower()


def _row_to_user(row: aiosqlite.Row) -> UserRecord:
    """Convert a database row to a UserRecord model."""
    return UserRecord(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        totp_secret=row["totp_secret"],
        is_active=bool(row["is_active"]),
        last_login=row["last_login"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
    )


class UserNotFound(LookupError):
    pass


class UserStore:
    """Repository for the users table."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def open(self) -> None:
        """Open the database and create tables if they don't exist."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.info("User store initialized at %s", self.db_path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("User store connection closed")

    def _conn(self) -> aiosqlite.Connection:
        assert self._db is not None, "User store not opened, call open() first"
        return self._db

    # ── Queries ────────────────────────────────────────────────────────

    async def count_users(self) -> int:
        async with self._conn().execute("SELECT COUNT(*) FROM users") as cur:
            row = await cur.fetchone()
        return int(row[0]) if row else 0

    async def get_by_username(self, username: str) -> UserRecord | None:
        async with self._conn().execute(
            "SELECT * FROM users WHERE username = ?", (normalize_username(username),)
        ) as cur:
            row = await cur.fetchone()
        return _row_to_user(row) if row else None

    async def get_by_id(self, user_id: str) -> UserRecord | None:
        async with self._conn().execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cur:
            row = await cur.fetchone()
        return _row_to_user(row) if row else None

    # ── Mutations ──────────────────────────────────────────────────────

    async def create_user(
        self,
        username: str,
        password_hash: str,
        totp_secret: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> UserRecord:
        """Insert a new user and return it.

        Raises:
            aiosqlite.IntegrityError: if the username is taken.
        """
        db = self._conn()
        user_id = str(uuid4())
        now = _now_iso()
        await db.execute(
            """
            INSERT INTO users (
                id, username, password_hash, totp_secret,
                is_active, last_login, metadata, created_at, updated_at
            ) VALUES (?, ?, ?, ?, 1, NULL, ?, ?, ?)
            """,
            (
                user_id,
                normalize_username(username),
                password_hash,
                totp_secret,
                json.dumps(metadata or {}),
                now,
                now,
            ),
        )
        await db.commit()
        return await self.get_by_id(user_id)  # type: ignore[return-value]

    async def update_password(self, user_id: str, password_hash: str) -> None:
        db = self._conn()
        cur = await db.execute(
            "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
            (password_hash, _now_iso(), user_id),
        )
        await db.commit()
        if cur.rowcount == 0:
            raise UserNotFound(user_id)

    async def update_last_login(self, user_id: str) -> None:
        db = self._conn()
        cur = await db.execute(
            "UPDATE users SET last_login = ? WHERE id = ?",
            (_now_iso(), user_id),
        )
        await db.commit()
        if cur.rowcount == 0:
            raise UserNotFound(user_id)

    async def set_active(self, user_id: str, is_active: bool) -> None:
        db = self._conn()
        await db.execute(
            "UPDATE users SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(is_active), _now_iso(), user_id),
        )
        await db.commit()
