from __future__ import annotations

import asyncio
from datetime import date

import pytest

from taskflow.agent.cognition import dates, handlers
from taskflow.agent.cognition.conversation_state import (
    ActiveIntent,
    ClarificationKind,
    ConversationState,
)


def _run(handler, ctx):
    return asyncio.run(handler(ctx))


@pytest.fixture
def state() -> ConversationState:
    return ConversationState(caller_id="ext-john")


def test_ambiguous_assignee_then_numeric_choice_reassigns(make_ctx, state, fake_tools) -> None:
    outcome = _run(handlers.reassign_task, make_ctx("assign the login task to Sarah", state))

    pending = state.pending_clarification
    assert state.active_intent == ActiveIntent.ENTITY_CLARIFICATION
    assert pending.kind == ClarificationKind.USER_SEARCH
    assert pending.target_action == "reassignTask"
    assert outcome.tool_name == "findUser"
    assert "1. Sarah Connor - sarah.connor@example.com" in outcome.result_text
    assert "2. Sarah Lee - sarah.lee@example.com" in outcome.result_text
    assert fake_tools.calls == []

    outcome = _run(handlers.handle_clarification, make_ctx("1", state))

    assert fake_tools.called("updateTask")[0].arguments == {"taskId": "t-1", "assigneeId": "u-1"}
    assert outcome.tool_name == "updateTask"
    assert outcome.result_text.startswith('Reassigned "Fix login bug" to Sarah Connor.')
    assert state.is_idle


def test_user_choice_can_open_a_task_choice(make_ctx, state, fake_tools) -> None:
    _run(handlers.reassign_task, make_ctx("assign the landing page task to Sarah", state))

    outcome = _run(handlers.handle_clarification, make_ctx("2", state))

    pending = state.pending_clarification
    assert pending.kind == ClarificationKind.TASK_SEARCH
    assert pending.extracted_params["user_id"] == "u-2"
    assert [item.id for item in pending.candidates] == ["t-3", "t-4"]
    assert outcome.tool_name == "listTasks"

    _run(handlers.handle_clarification, make_ctx("Update landing page", state))

    assert fake_tools.called("updateTask")[0].arguments == {"taskId": "t-3", "assigneeId": "u-2"}
    assert state.is_idle


def test_invalid_choice_reprompts_and_keeps_state(make_ctx, state, fake_tools) -> None:
    _run(handlers.reassign_task, make_ctx("assign the login task to Sarah", state))

    outcome = _run(handlers.handle_clarification, make_ctx("5", state))

    assert state.active_intent == ActiveIntent.ENTITY_CLARIFICATION
    assert "Reply with a number from 1 to 2" in outcome.result_text
    assert fake_tools.calls == []


def test_cancel_clears_clarification(make_ctx, state) -> None:
    _run(handlers.reassign_task, make_ctx("assign the login task to Sarah", state))

    outcome = _run(handlers.cancel_clarification, make_ctx("cancel", state))

    assert state.is_idle
    assert outcome.result_text.startswith("Okay, cancelled.")


def test_unknown_user_halts_without_state(make_ctx, state, fake_tools) -> None:
    outcome = _run(handlers.reassign_task, make_ctx("assign the login task to Zed", state))

    assert outcome.tool_name == "findUser"
    assert 'could not find a user named "Zed"' in outcome.result_text
    assert state.is_idle
    assert fake_tools.calls == []


def test_unparseable_reassignment_asks_for_details(make_ctx, state) -> None:
    outcome = _run(handlers.reassign_task, make_ctx("reassign please", state))
    assert "which task" in outcome.result_text
    assert state.is_idle


def test_user_tasks_after_choice(make_ctx, state, fake_tools) -> None:
    _run(handlers.list_user_tasks, make_ctx("what is Sarah working on?", state))
    assert state.pending_clarification.target_action == "listUserTasks"

    outcome = _run(handlers.handle_clarification, make_ctx("Sarah Lee", state))

    assert fake_tools.called("listTasks")[0].arguments == {"assigneeId": "u-2"}
    assert outcome.result_text.startswith("Tasks for Sarah Lee:")
    assert state.is_idle


def test_sprint_in_named_project(monkeypatch: pytest.MonkeyPatch, make_ctx, state, fake_tools) -> None:
    monkeypatch.setattr(dates, "today_in", lambda tz_name=None: date(2026, 3, 4))

    outcome = _run(handlers.create_sprint, make_ctx("create a 2-week sprint for the Mobile App project", state))

    assert fake_tools.called("createSprint")[0].arguments == {
        "name": "Mobile App Sprint 2026-03-04",
        "projectId": "p-2",
        "startDate": "2026-03-04",
        "endDate": "2026-03-18",
    }
    assert outcome.result_text.startswith('Created sprint "Mobile App Sprint 2026-03-04" in Mobile App')


def test_sprint_without_project_asks_which_one(monkeypatch: pytest.MonkeyPatch, make_ctx, state, fake_tools) -> None:
    monkeypatch.setattr(dates, "today_in", lambda tz_name=None: date(2026, 3, 4))

    outcome = _run(handlers.create_sprint, make_ctx("start a new sprint", state))

    assert state.pending_clarification.kind == ClarificationKind.PROJECT_SEARCH
    assert len(state.pending_clarification.candidates) == 5
    assert outcome.tool_name == "listProjects"

    _run(handlers.handle_clarification, make_ctx("3", state))

    call = fake_tools.called("createSprint")[0]
    assert call.arguments["projectId"] == "p-3"
    assert call.arguments["endDate"] == "2026-03-18"
    assert state.is_idle


def test_bug_report_uses_uppercase_severity(make_ctx, state, fake_tools) -> None:
    _run(
        handlers.create_bug,
        make_ctx('report a bug "Checkout button broken" in the Website Redesign project', state),
    )

    assert fake_tools.called("createBug")[0].arguments == {
        "title": "Checkout button broken",
        "projectId": "p-1",
        "severity": "MEDIUM",
        "priority": "MEDIUM",
    }


def test_project_tasks_with_ambiguous_project(make_ctx, state, fake_tools) -> None:
    _run(handlers.list_project_tasks, make_ctx("list tasks in Website", state))
    assert [item.id for item in state.pending_clarification.candidates] == ["p-1", "p-6"]

    outcome = _run(handlers.handle_clarification, make_ctx("1", state))

    assert fake_tools.called("listTasks")[0].arguments == {"projectId": "p-1"}
    assert outcome.result_text.startswith("Tasks in Website Redesign:")
