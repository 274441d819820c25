from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

REQUIRED_TASK_FIELDS = ("title", "project")


class ActiveIntent(str, Enum):
    NONE = "none"
    TASK_CREATION = "task_creation"
    ENTITY_CLARIFICATION = "entity_clarification"


class TaskPhase(str, Enum):
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ClarificationKind(str, Enum):
    USER_SEARCH = "user_search"
    TASK_SEARCH = "task_search"
    PROJECT_SEARCH = "project_search"


@dataclass(frozen=True)
class Candidate:
    id: str
    display_name: str
    description: str | None = None

    def render(self) -> str:
        if self.description:
            return f"{self.display_name} - {self.description}"
        return self.display_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Candidate:
        return cls(
            id=str(raw.get("id") or ""),
            display_name=str(raw.get("display_name") or ""),
            description=raw.get("description"),
        )


@dataclass
class PendingTask:
    title: str | None = None
    description: str | None = None
    project_id: str | None = None
    project_name: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    priority: str | None = None
    due_date: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    project_options: list[Candidate] = field(default_factory=list)
    phase: TaskPhase = TaskPhase.COLLECTING

    def fill(self, name: str, **values: Any) -> None:
        """Set the attributes for one logical field and mark it as provided."""
        for key, value in values.items():
            setattr(self, key, value)
        if name in self.missing_fields:
            self.missing_fields.remove(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee_name,
            "priority": self.priority,
            "due_date": self.due_date,
            "missing_fields": list(self.missing_fields),
            "project_options": [item.to_dict() for item in self.project_options],
            "phase": self.phase.value,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PendingTask:
        options = raw.get("project_options") or []
        return cls(
            title=raw.get("title"),
            description=raw.get("description"),
            project_id=raw.get("project_id"),
            project_name=raw.get("project_name"),
            assignee_id=raw.get("assignee_id"),
            assignee_name=raw.get("assignee_name"),
            priority=raw.get("priority"),
            due_date=raw.get("due_date"),
            missing_fields=[str(item) for item in raw.get("missing_fields") or []],
            project_options=[Candidate.from_dict(item) for item in options if isinstance(item, dict)],
            phase=TaskPhase(raw.get("phase") or TaskPhase.COLLECTING.value),
        )


@dataclass
class PendingClarification:
    kind: ClarificationKind
    original_message: str
    target_action: str
    candidates: list[Candidate]
    extracted_params: dict[str, Any] = field(default_factory=dict)

    @property
    def candidate_lines(self) -> list[str]:
        return [f"{index}. {item.render()}" for index, item in enumerate(self.candidates, start=1)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "original_message": self.original_message,
            "target_action": self.target_action,
            "candidates": [item.to_dict() for item in self.candidates],
            "extracted_params": dict(self.extracted_params),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PendingClarification:
        return cls(
            kind=ClarificationKind(raw.get("kind")),
            original_message=str(raw.get("original_message") or ""),
            target_action=str(raw.get("target_action") or ""),
            candidates=[
                Candidate.from_dict(item) for item in raw.get("candidates") or [] if isinstance(item, dict)
            ],
            extracted_params=dict(raw.get("extracted_params") or {}),
        )


@dataclass
class ConversationState:
    caller_id: str
    active_intent: ActiveIntent = ActiveIntent.NONE
    pending_task: PendingTask | None = None
    pending_clarification: PendingClarification | None = None
    turn_count: int = 0
    created_at: str = field(default_factory=lambda: _now_iso())
    updated_at: str = field(default_factory=lambda: _now_iso())

    @property
    def is_idle(self) -> bool:
        return self.active_intent == ActiveIntent.NONE

    def is_consistent(self) -> bool:
        if self.active_intent == ActiveIntent.NONE:
            return self.pending_task is None and self.pending_clarification is None
        if self.active_intent == ActiveIntent.TASK_CREATION:
            return self.pending_task is not None and self.pending_clarification is None
        return self.pending_clarification is not None and self.pending_task is None

    def touch(self) -> None:
        self.turn_count += 1
        self.updated_at = _now_iso()

    def to_dict(self) -> dict[str, Any]:
        return {
            "caller_id": self.caller_id,
            "active_intent": self.active_intent.value,
            "pending_task": self.pending_task.to_dict() if self.pending_task else None,
            "pending_clarification": (
                self.pending_clarification.to_dict() if self.pending_clarification else None
            ),
            "turn_count": self.turn_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ConversationState:
        caller_id = str(raw.get("caller_id") or "")
        try:
            state = cls(
                caller_id=caller_id,
                active_intent=ActiveIntent(raw.get("active_intent") or ActiveIntent.NONE.value),
                pending_task=(
                    PendingTask.from_dict(raw["pending_task"])
                    if isinstance(raw.get("pending_task"), dict)
                    else None
                ),
                pending_clarification=(
                    PendingClarification.from_dict(raw["pending_clarification"])
                    if isinstance(raw.get("pending_clarification"), dict)
                    else None
                ),
                turn_count=int(raw.get("turn_count") or 0),
                created_at=str(raw.get("created_at") or _now_iso()),
                updated_at=str(raw.get("updated_at") or _now_iso()),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("conversation state unreadable caller=%s error=%s", caller_id, exc)
            return cls(caller_id=caller_id)
        if not state.is_consistent():
            logger.warning(
                "conversation state inconsistent caller=%s active_intent=%s; resetting",
                caller_id,
                state.active_intent.value,
            )
            return cls(
                caller_id=caller_id,
                turn_count=state.turn_count,
                created_at=state.created_at,
            )
        return state


def summarize_state(state: ConversationState | None) -> dict[str, Any] | None:
    if state is None:
        return None
    summary: dict[str, Any] = {
        "active_intent": state.active_intent.value,
        "message_count": state.turn_count,
        "last_interaction": state.updated_at,
    }
    if state.pending_task is not None:
        summary["task_phase"] = state.pending_task.phase.value
        summary["missing_fields"] = list(state.pending_task.missing_fields)
    if state.pending_clarification is not None:
        summary["clarification_kind"] = state.pending_clarification.kind.value
        summary["candidate_count"] = len(state.pending_clarification.candidates)
    return summary


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
