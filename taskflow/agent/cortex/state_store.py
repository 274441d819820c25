from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

from taskflow.agent.cognition.conversation_state import ConversationState
from taskflow.config import settings

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def load(self, caller_id: str) -> ConversationState | None: ...

    def save(self, caller_id: str, state: ConversationState) -> None: ...

    def delete(self, caller_id: str) -> bool: ...

    def lock_for(self, caller_id: str) -> asyncio.Lock: ...

    def active_count(self) -> int: ...


class _CallerLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, caller_id: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(caller_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[caller_id] = lock
            return lock

    def discard(self, caller_id: str) -> None:
        with self._guard:
            lock = self._locks.get(caller_id)
            if lock is not None and not lock.locked():
                self._locks.pop(caller_id, None)


class InMemorySessionStore:
    """Snapshot store: callers get a fresh object and must ``save`` it back."""

    def __init__(self, ttl_seconds: int | None = None) -> None:
        self._ttl_seconds = settings.get_session_ttl_seconds() if ttl_seconds is None else ttl_seconds
        self._entries: dict[str, tuple[datetime, dict[str, Any]]] = {}
        self._locks = _CallerLocks()

    def load(self, caller_id: str) -> ConversationState | None:
        entry = self._entries.get(caller_id)
        if entry is None:
            return None
        updated_at, payload = entry
        if _expired(updated_at, self._ttl_seconds):
            logger.info("session expired caller=%s updated_at=%s", caller_id, updated_at.isoformat())
            self._entries.pop(caller_id, None)
            return None
        return ConversationState.from_dict(json.loads(json.dumps(payload)))

    def save(self, caller_id: str, state: ConversationState) -> None:
        self._entries[caller_id] = (_now(), state.to_dict())

    def delete(self, caller_id: str) -> bool:
        removed = self._entries.pop(caller_id, None) is not None
        self._locks.discard(caller_id)
        return removed

    def lock_for(self, caller_id: str) -> asyncio.Lock:
        return self._locks.lock_for(caller_id)

    def active_count(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def purge_expired(self) -> int:
        expired = [
            caller_id
            for caller_id, (updated_at, _) in self._entries.items()
            if _expired(updated_at, self._ttl_seconds)
        ]
        for caller_id in expired:
            self._entries.pop(caller_id, None)
            self._locks.discard(caller_id)
        return len(expired)


class SqliteSessionStore:
    def __init__(self, db_path: Path | str | None = None, ttl_seconds: int | None = None) -> None:
        self._db_path = Path(db_path) if db_path is not None else settings.get_session_db_path()
        self._ttl_seconds = settings.get_session_ttl_seconds() if ttl_seconds is None else ttl_seconds
        self._locks = _CallerLocks()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS conversation_sessions (
                  caller_id TEXT PRIMARY KEY,
                  state_json TEXT NOT NULL,
                  updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()

    def load(self, caller_id: str) -> ConversationState | None:
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute(
                "SELECT state_json, updated_at FROM conversation_sessions WHERE caller_id = ?",
                (caller_id,),
            ).fetchone()
        if not row:
            return None
        try:
            updated_at = datetime.fromisoformat(row[1])
        except ValueError:
            updated_at = datetime.fromtimestamp(0, tz=timezone.utc)
        if _expired(updated_at, self._ttl_seconds):
            logger.info("session expired caller=%s updated_at=%s", caller_id, row[1])
            self.delete(caller_id)
            return None
        try:
            parsed = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("session payload unreadable caller=%s", caller_id)
            return None
        if not isinstance(parsed, dict):
            return None
        return ConversationState.from_dict(parsed)

    def save(self, caller_id: str, state: ConversationState) -> None:
        payload = json.dumps(state.to_dict())
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                INSERT INTO conversation_sessions (caller_id, state_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(caller_id) DO UPDATE
                SET state_json = excluded.state_json,
                    updated_at = excluded.updated_at
                """,
                (caller_id, payload, _now().isoformat()),
            )
            conn.commit()

    def delete(self, caller_id: str) -> bool:
        with sqlite3.connect(self._db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM conversation_sessions WHERE caller_id = ?",
                (caller_id,),
            )
            conn.commit()
        self._locks.discard(caller_id)
        return cursor.rowcount > 0

    def lock_for(self, caller_id: str) -> asyncio.Lock:
        return self._locks.lock_for(caller_id)

    def active_count(self) -> int:
        self.purge_expired()
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute("SELECT COUNT(*) FROM conversation_sessions").fetchone()
        return int(row[0]) if row else 0

    def purge_expired(self) -> int:
        if self._ttl_seconds <= 0:
            return 0
        cutoff = (_now() - timedelta(seconds=self._ttl_seconds)).isoformat()
        with sqlite3.connect(self._db_path) as conn:
            cursor = conn.execute(
                "DELETE FROM conversation_sessions WHERE updated_at < ?",
                (cutoff,),
            )
            conn.commit()
        return cursor.rowcount


def build_session_store() -> SessionStore:
    if settings.get_session_backend() == "sqlite":
        return SqliteSessionStore()
    return InMemorySessionStore()


def _expired(updated_at: datetime, ttl_seconds: int) -> bool:
    if ttl_seconds <= 0:
        return False
    return _now() - updated_at >= timedelta(seconds=ttl_seconds)


def _now() -> datetime:
    return datetime.now(timezone.utc)
