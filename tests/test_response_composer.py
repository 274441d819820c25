from __future__ import annotations

import asyncio

from taskflow.agent.cognition.conversation_state import ConversationState, PendingTask
from taskflow.agent.cognition.dispatch_context import ToolOutcome
from taskflow.agent.cognition.response_composer import (
    COMPOSE_MAX_TOKENS,
    COMPOSE_TEMPERATURE,
    ComposedReply,
    EMPTY_REPLY,
    FALLBACK_REPLY,
    ResponseComposer,
    build_system_prompt,
)
from taskflow.agent.cortex.transitions import apply_transition, begin_task
from taskflow.agent.identity import CallerProfile

PROFILE = CallerProfile(caller_id="ext-john", internal_id="u-3", display_name="John Smith", email="john@example.com")


class _SlowCompletion:
    async def complete(self, messages, *, temperature, max_tokens) -> str:
        await asyncio.sleep(1)
        return "too late"


def test_prompt_lists_each_action_result() -> None:
    prompt = build_system_prompt(
        PROFILE,
        [ToolOutcome("getOverdueTasks", "2 overdue"), ToolOutcome("getTeamWorkload", "Sarah: 5 tasks")],
        ConversationState(caller_id="ext-john"),
    )

    assert "Current user: John Smith (john@example.com)" in prompt
    assert "User ID: u-3" in prompt
    assert "Actions Performed:\n\ngetOverdueTasks:\n2 overdue\n" in prompt
    assert "getTeamWorkload:\nSarah: 5 tasks" in prompt


def test_prompt_adds_task_flow_guidance() -> None:
    state = ConversationState(caller_id="ext-john")
    apply_transition(state, begin_task(PendingTask(missing_fields=["title", "project"])))

    prompt = build_system_prompt(CallerProfile(caller_id="ext-x"), [], state)

    assert 'reply "create" to confirm' in prompt
    assert "Actions Performed" not in prompt
    assert "Current user: Unknown user" in prompt


def test_compose_sends_history_and_message(fake_completion) -> None:
    fake_completion.reply = "You have 2 overdue tasks."
    composer = ResponseComposer(fake_completion)

    reply = asyncio.run(
        composer.compose(
            PROFILE,
            [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}],
            "anything overdue?",
            [ToolOutcome("getOverdueTasks", "2 overdue")],
            ConversationState(caller_id="ext-john"),
        )
    )

    assert reply.text == "You have 2 overdue tasks."
    assert reply.fallback is False
    call = fake_completion.calls[0]
    assert [item["role"] for item in call["messages"]] == ["system", "user", "assistant", "user"]
    assert call["messages"][-1]["content"] == "anything overdue?"
    assert call["temperature"] == COMPOSE_TEMPERATURE
    assert call["max_tokens"] == COMPOSE_MAX_TOKENS


def test_completion_failure_returns_fixed_fallback(fake_completion) -> None:
    fake_completion.reply = RuntimeError("upstream 500: secret stack trace")

    reply = asyncio.run(
        ResponseComposer(fake_completion).compose(PROFILE, [], "hi", [], ConversationState(caller_id="ext-john"))
    )

    assert reply.text == FALLBACK_REPLY
    assert reply.fallback is True


def test_slow_completion_hits_compose_deadline() -> None:
    composer = ResponseComposer(_SlowCompletion(), timeout_seconds=0.01)

    reply = asyncio.run(composer.compose(PROFILE, [], "hi", [], ConversationState(caller_id="ext-john")))

    assert reply == ComposedReply(FALLBACK_REPLY, fallback=True)


def test_blank_completion_gets_placeholder(fake_completion) -> None:
    fake_completion.reply = "   "

    reply = asyncio.run(
        ResponseComposer(fake_completion).compose(PROFILE, [], "hi", [], ConversationState(caller_id="ext-john"))
    )

    assert reply.text == EMPTY_REPLY
    assert reply.fallback is False
