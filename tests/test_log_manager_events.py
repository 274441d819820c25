from __future__ import annotations

import json
import logging

import pytest

from taskflow.agent.observability.log_manager import LogManager


def _events(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(record.getMessage().split("event ", 1)[1]) for record in caplog.records]


def test_emit_writes_one_json_line(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="taskflow.test.events")
    manager = LogManager("taskflow.test.events")

    manager.emit(
        event="turn.completed",
        component="interpreter",
        caller_id="ext-john",
        turn=3,
        status="ok",
        latency_ms=12,
        payload={"tools_used": ["listTasks"]},
    )

    (event,) = _events(caplog)
    assert event["event"] == "turn.completed"
    assert event["caller_id"] == "ext-john"
    assert event["turn"] == 3
    assert event["tools_used"] == ["listTasks"]


def test_emit_exception_logs_error_with_type(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="taskflow.test.events")
    manager = LogManager("taskflow.test.events")

    try:
        raise RuntimeError("tool exploded")
    except RuntimeError as exc:
        manager.emit_exception(event="dispatch.action_failed", exc=exc, tool="listBugs")

    assert caplog.records[0].levelno == logging.ERROR
    (event,) = _events(caplog)
    assert event["error_code"] == "RuntimeError"
    assert event["exception_message"] == "tool exploded"
    assert event["tool"] == "listBugs"
