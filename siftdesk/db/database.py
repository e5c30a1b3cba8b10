"""SQLite key-value storage via aiosqlite: report cache and saved session."""

from __future__ import annotations

import json
import logging
import time

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS report_cache (
    key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    cached_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

CURRENT_SESSION_ID = "current"


class Database:
    """Async SQLite database holding JSON payloads by key."""

    def __init__(self, path: str = "siftdesk.db") -> None:
        self.path = path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        self._db = await aiosqlite.connect(self.path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Database not connected — call connect() first")
        return self._db

    # -- Report cache --

    async def get_cache_payload(self, key: str) -> str | None:
        cursor = await self.db.execute("SELECT payload FROM report_cache WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row["payload"] if row else None

    async def put_cache_payload(self, key: str, payload: str) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO report_cache (key, payload, cached_at) VALUES (?, ?, ?)",
            (key, payload, time.time()),
        )
        await self.db.commit()

    async def delete_cache_entry(self, key: str) -> None:
        await self.db.execute("DELETE FROM report_cache WHERE key = ?", (key,))
        await self.db.commit()

    # -- Session --

    async def save_session(self, state: dict, session_id: str = CURRENT_SESSION_ID) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO sessions (id, payload, updated_at) VALUES (?, ?, ?)",
            (session_id, json.dumps(state), time.time()),
        )
        await self.db.commit()

    async def load_session(self, session_id: str = CURRENT_SESSION_ID) -> dict | None:
        """Saved session state, or None. A corrupt row is deleted."""
        cursor = await self.db.execute("SELECT payload FROM sessions WHERE id = ?", (session_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        try:
            state = json.loads(row["payload"])
            if not isinstance(state, dict):
                raise ValueError("session payload is not an object")
            return state
        except (json.JSONDecodeError, ValueError) as exc:
            logger.error("Discarding corrupt saved session: %s", exc)
            await self.clear_session(session_id)
            return None

    async def has_session(self, session_id: str = CURRENT_SESSION_ID) -> bool:
        cursor = await self.db.execute("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
        return await cursor.fetchone() is not None

    async def clear_session(self, session_id: str = CURRENT_SESSION_ID) -> None:
        await self.db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await self.db.commit()
