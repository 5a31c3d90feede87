"""Session blob storage, in memory or in SQLite."""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Protocol, runtime_checkable

import aiosqlite

from passlink.config import ConfigurationError, settings
from passlink.db.database import get_db


@runtime_checkable
class SessionStore(Protocol):
    """Interface for session persistence, keyed by session ID."""

    async def load(self, session_id: str) -> dict | None: ...

    async def save(self, session_id: str, data: dict, ttl_seconds: int) -> None: ...

    async def destroy(self, session_id: str) -> None: ...

    async def cleanup(self) -> int: ...


class MemorySessionStore:
    """Single-process dict of session_id -> (expires_at, data)."""

    def __init__(self) -> None:
        self._sessions: dict[str, tuple[float, dict]] = {}

    async def load(self, session_id: str) -> dict | None:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires_at, data = entry
        if time.time() >= expires_at:
            self._sessions.pop(session_id, None)
            return None
        return dict(data)

    async def save(self, session_id: str, data: dict, ttl_seconds: int) -> None:
        self._sessions[session_id] = (time.time() + ttl_seconds, dict(data))

    async def destroy(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def cleanup(self) -> int:
        now = time.time()
        expired = [sid for sid, (expires_at, _) in self._sessions.items() if expires_at <= now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)


def _expiry(ttl_seconds: int) -> str:
    # Same format as SQLite's datetime('now') so the two compare as strings
    expires = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
    return expires.strftime("%Y-%m-%d %H:%M:%S")


class SQLiteSessionStore:
    """Sessions table holding a JSON blob per session."""

    def __init__(self, connect: Callable[[], Awaitable[aiosqlite.Connection]] = get_db) -> None:
        self._connect = connect

    async def load(self, session_id: str) -> dict | None:
        db = await self._connect()
        async with db.execute(
            "SELECT data FROM sessions WHERE id = ? AND expires_at > datetime('now')",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None
        return json.loads(row[0])

    async def save(self, session_id: str, data: dict, ttl_seconds: int) -> None:
        db = await self._connect()
        await db.execute(
            """INSERT INTO sessions (id, data, expires_at) VALUES (?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET data=excluded.data, expires_at=excluded.expires_at""",
            (session_id, json.dumps(data), _expiry(ttl_seconds)),
        )
        await db.commit()

    async def destroy(self, session_id: str) -> None:
        db = await self._connect()
        await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        await db.commit()

    async def cleanup(self) -> int:
        """Delete expired sessions. Returns count deleted."""
        db = await self._connect()
        result = await db.execute("DELETE FROM sessions WHERE expires_at <= datetime('now')")
        await db.commit()
        return result.rowcount


def get_session_store() -> SessionStore:
    """Factory: returns the SessionStore named by settings.session_store."""
    if settings.session_store == "memory":
        return MemorySessionStore()
    if settings.session_store == "sqlite":
        return SQLiteSessionStore()
    raise ConfigurationError(f"Unknown session store: {settings.session_store!r}")
