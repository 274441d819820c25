from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from taskflow.agent.cognition.conversation_state import ActiveIntent, ConversationState, PendingTask
from taskflow.agent.cortex import state_store
from taskflow.agent.cortex.state_store import (
    InMemorySessionStore,
    SqliteSessionStore,
    build_session_store,
)
from taskflow.agent.cortex.transitions import apply_transition, begin_task


def _task_state(caller_id: str) -> ConversationState:
    state = ConversationState(caller_id=caller_id)
    apply_transition(state, begin_task(PendingTask(title="Ship", missing_fields=["project"])))
    return state


def _freeze(monkeypatch: pytest.MonkeyPatch, moment: datetime) -> None:
    monkeypatch.setattr(state_store, "_now", lambda: moment)


def test_memory_store_returns_snapshots() -> None:
    store = InMemorySessionStore(ttl_seconds=60)
    store.save("caller-1", _task_state("caller-1"))

    loaded = store.load("caller-1")
    assert loaded is not None
    loaded.pending_task.title = "Changed without saving"

    again = store.load("caller-1")
    assert again is not None
    assert again.pending_task.title == "Ship"
    assert again.active_intent == ActiveIntent.TASK_CREATION


def test_memory_store_expires_idle_sessions(monkeypatch: pytest.MonkeyPatch) -> None:
    start = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)
    _freeze(monkeypatch, start)
    store = InMemorySessionStore(ttl_seconds=1800)
    store.save("caller-1", _task_state("caller-1"))
    store.save("caller-2", ConversationState(caller_id="caller-2"))

    _freeze(monkeypatch, start + timedelta(seconds=1799))
    assert store.load("caller-1") is not None

    _freeze(monkeypatch, start + timedelta(seconds=1800))
    assert store.load("caller-1") is None
    assert store.active_count() == 0


def test_memory_store_delete_and_count() -> None:
    store = InMemorySessionStore(ttl_seconds=0)
    store.save("caller-1", ConversationState(caller_id="caller-1"))
    store.save("caller-2", ConversationState(caller_id="caller-2"))

    assert store.active_count() == 2
    assert store.delete("caller-1") is True
    assert store.delete("caller-1") is False
    assert store.load("caller-1") is None
    assert store.active_count() == 1


def test_sqlite_store_persists_across_instances(tmp_path) -> None:
    db_path = tmp_path / "sessions.db"
    SqliteSessionStore(db_path, ttl_seconds=60).save("caller-1", _task_state("caller-1"))

    loaded = SqliteSessionStore(db_path, ttl_seconds=60).load("caller-1")

    assert loaded is not None
    assert loaded.active_intent == ActiveIntent.TASK_CREATION
    assert loaded.pending_task is not None
    assert loaded.pending_task.missing_fields == ["project"]


def test_sqlite_store_expiry_and_delete(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    start = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)
    _freeze(monkeypatch, start)
    store = SqliteSessionStore(tmp_path / "sessions.db", ttl_seconds=600)
    store.save("caller-1", ConversationState(caller_id="caller-1"))
    store.save("caller-2", ConversationState(caller_id="caller-2"))
    assert store.active_count() == 2

    assert store.delete("caller-2") is True
    assert store.delete("caller-2") is False

    _freeze(monkeypatch, start + timedelta(seconds=601))
    assert store.load("caller-1") is None
    assert store.active_count() == 0


def test_caller_locks_serialize_turns_per_caller() -> None:
    store = InMemorySessionStore(ttl_seconds=60)
    order: list[str] = []

    async def _turn(caller_id: str, label: str, delay: float) -> None:
        async with store.lock_for(caller_id):
            order.append(f"{label}:start")
            await asyncio.sleep(delay)
            order.append(f"{label}:end")

    async def _run() -> None:
        await asyncio.gather(
            _turn("caller-1", "a", 0.02),
            _turn("caller-1", "b", 0.0),
        )

    asyncio.run(_run())

    assert order == ["a:start", "a:end", "b:start", "b:end"]
    assert store.lock_for("caller-1") is store.lock_for("caller-1")
    assert store.lock_for("caller-1") is not store.lock_for("caller-2")


def test_build_session_store_honours_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TASKFLOW_SESSION_BACKEND", "sqlite")
    assert isinstance(build_session_store(), SqliteSessionStore)

    monkeypatch.setenv("TASKFLOW_SESSION_BACKEND", "memory")
    assert isinstance(build_session_store(), InMemorySessionStore)
