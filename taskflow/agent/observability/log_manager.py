from __future__ import annotations

import json
import logging
import traceback
from typing import Any

_DEFAULT_LOGGER_NAME = "taskflow.agent.observability"


class LogManager:
    """Structured event lines for turn lifecycle, dispatch outcomes and failures."""

    def __init__(self, logger_name: str = _DEFAULT_LOGGER_NAME) -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(
        self,
        *,
        level: str = "info",
        event: str,
        message: str | None = None,
        component: str | None = None,
        caller_id: str | None = None,
        node: str | None = None,
        turn: int | None = None,
        status: str | None = None,
        tool: str | None = None,
        error_code: str | None = None,
        latency_ms: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        normalized_level = str(level or "info").lower()
        event_payload: dict[str, Any] = {
            "level": normalized_level,
            "event": str(event or "unknown_event"),
            "component": component,
            "caller_id": caller_id,
            "node": node,
            "turn": turn,
            "status": status,
            "tool": tool,
            "error_code": error_code,
            "latency_ms": latency_ms,
            "message": message,
        }
        if isinstance(payload, dict) and payload:
            event_payload.update(payload)
        self._log_text_line(level=normalized_level, payload=event_payload)

    def emit_exception(
        self,
        *,
        event: str,
        exc: BaseException,
        message: str | None = None,
        component: str | None = None,
        caller_id: str | None = None,
        node: str | None = None,
        status: str | None = None,
        tool: str | None = None,
        error_code: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        merged_payload = dict(payload or {})
        merged_payload.update(
            {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "stack_excerpt": "".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__, limit=10)
                ),
            }
        )
        self.emit(
            level="error",
            event=event,
            message=message or str(exc),
            component=component,
            caller_id=caller_id,
            node=node,
            status=status,
            tool=tool,
            error_code=error_code or type(exc).__name__,
            payload=merged_payload,
        )

    def _log_text_line(self, *, level: str, payload: dict[str, Any]) -> None:
        line = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
        if level == "debug":
            self._logger.debug("event %s", line)
        elif level in {"warning", "warn"}:
            self._logger.warning("event %s", line)
        elif level == "error":
            self._logger.error("event %s", line)
        else:
            self._logger.info("event %s", line)


_DEFAULT_MANAGER: LogManager | None = None


def get_log_manager() -> LogManager:
    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None:
        _DEFAULT_MANAGER = LogManager()
    return _DEFAULT_MANAGER
