from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from taskflow.agent.cognition.conversation_state import (
    ActiveIntent,
    ConversationState,
    PendingClarification,
    PendingTask,
    TaskPhase,
)

logger = logging.getLogger(__name__)


class TransitionKind(str, Enum):
    BEGIN_TASK = "begin_task"
    UPDATE_TASK = "update_task"
    COMPLETE_TASK = "complete_task"
    CANCEL_TASK = "cancel_task"
    BEGIN_CLARIFICATION = "begin_clarification"
    RESOLVE_CLARIFICATION = "resolve_clarification"
    CANCEL_CLARIFICATION = "cancel_clarification"
    RESET = "reset"


@dataclass(frozen=True)
class Transition:
    kind: TransitionKind
    task: PendingTask | None = None
    clarification: PendingClarification | None = None


class IllegalTransition(Exception):
    def __init__(self, kind: TransitionKind, active_intent: ActiveIntent, reason: str) -> None:
        super().__init__(f"{kind.value} not allowed from {active_intent.value}: {reason}")
        self.kind = kind
        self.active_intent = active_intent
        self.reason = reason


def begin_task(task: PendingTask) -> Transition:
    return Transition(TransitionKind.BEGIN_TASK, task=task)


def update_task(task: PendingTask) -> Transition:
    return Transition(TransitionKind.UPDATE_TASK, task=task)


def begin_clarification(clarification: PendingClarification) -> Transition:
    return Transition(TransitionKind.BEGIN_CLARIFICATION, clarification=clarification)


COMPLETE_TASK = Transition(TransitionKind.COMPLETE_TASK)
CANCEL_TASK = Transition(TransitionKind.CANCEL_TASK)
RESOLVE_CLARIFICATION = Transition(TransitionKind.RESOLVE_CLARIFICATION)
CANCEL_CLARIFICATION = Transition(TransitionKind.CANCEL_CLARIFICATION)
RESET = Transition(TransitionKind.RESET)


def apply_transition(state: ConversationState, transition: Transition) -> ConversationState:
    """Move ``state`` to its next dialogue state in place.

    This is the only place that assigns ``active_intent``,
    ``pending_task`` and ``pending_clarification``. Task phase is derived
    here: a pending task is ``confirming`` exactly when it has no
    missing fields. Terminal phases are stamped on the task object being
    released so callers holding a reference can tell how it ended.
    """
    before = state.active_intent
    kind = transition.kind

    if kind in (TransitionKind.BEGIN_TASK, TransitionKind.UPDATE_TASK):
        task = transition.task
        if task is None:
            raise IllegalTransition(kind, before, "missing task")
        if kind == TransitionKind.BEGIN_TASK and before == ActiveIntent.ENTITY_CLARIFICATION:
            raise IllegalTransition(kind, before, "clarification pending")
        if kind == TransitionKind.UPDATE_TASK and before != ActiveIntent.TASK_CREATION:
            raise IllegalTransition(kind, before, "no task in progress")
        task.phase = TaskPhase.CONFIRMING if not task.missing_fields else TaskPhase.COLLECTING
        state.active_intent = ActiveIntent.TASK_CREATION
        state.pending_task = task
        state.pending_clarification = None
    elif kind in (TransitionKind.COMPLETE_TASK, TransitionKind.CANCEL_TASK):
        task = state.pending_task
        if before != ActiveIntent.TASK_CREATION or task is None:
            raise IllegalTransition(kind, before, "no task in progress")
        if kind == TransitionKind.COMPLETE_TASK:
            if task.missing_fields:
                raise IllegalTransition(kind, before, "task still collecting")
            task.phase = TaskPhase.COMPLETED
        else:
            task.phase = TaskPhase.CANCELLED
        _clear(state)
    elif kind == TransitionKind.BEGIN_CLARIFICATION:
        clarification = transition.clarification
        if clarification is None:
            raise IllegalTransition(kind, before, "missing clarification")
        if before == ActiveIntent.TASK_CREATION:
            raise IllegalTransition(kind, before, "task in progress")
        if not clarification.candidates:
            raise IllegalTransition(kind, before, "no candidates")
        state.active_intent = ActiveIntent.ENTITY_CLARIFICATION
        state.pending_clarification = clarification
        state.pending_task = None
    elif kind in (TransitionKind.RESOLVE_CLARIFICATION, TransitionKind.CANCEL_CLARIFICATION):
        if before != ActiveIntent.ENTITY_CLARIFICATION:
            raise IllegalTransition(kind, before, "no clarification pending")
        _clear(state)
    else:
        _clear(state)

    logger.info(
        "conversation transition caller=%s kind=%s from=%s to=%s",
        state.caller_id,
        kind.value,
        before.value,
        state.active_intent.value,
    )
    return state


def _clear(state: ConversationState) -> None:
    state.active_intent = ActiveIntent.NONE
    state.pending_task = None
    state.pending_clarification = None
