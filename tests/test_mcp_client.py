from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import anyio
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, ErrorData, TextContent

from taskflow.agent.cognition.action_dispatcher import ActionDispatcher
from taskflow.agent.cognition.actions import ActionType, high, low
from taskflow.agent.cognition.dispatch_context import ToolOutcome
from taskflow.agent.tools.base import ToolCallError, ToolInvocation, ToolTransportError
from taskflow.agent.tools.mcp_client import McpToolClient, McpToolSession

SERVER_SCRIPT = Path(__file__).with_name("stdio_task_server.py")


class _FakeSession:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def call_tool(self, name: str, arguments: dict):
        self.calls.append((name, arguments))
        if self.error is not None:
            raise self.error
        return self.result


def _session_with(session: _FakeSession) -> McpToolSession:
    tools = McpToolClient(command="unused", args=[]).new_session()
    tools._session = session
    return tools


def _stdio_client(projects_delay: float = 0.0) -> McpToolClient:
    return McpToolClient(
        command=sys.executable,
        args=[str(SERVER_SCRIPT), str(projects_delay)],
        cwd=str(SERVER_SCRIPT.parent),
        connect_timeout_seconds=30,
    )


def test_missing_server_binary_is_a_transport_error() -> None:
    client = McpToolClient(command="taskflow-no-such-binary", args=[], connect_timeout_seconds=5)

    async def _call() -> None:
        async with client.session() as tools:
            await tools.call_tool(ToolInvocation("listProjects"))

    with pytest.raises(ToolTransportError):
        asyncio.run(_call())


def test_text_content_is_returned() -> None:
    session = _FakeSession(
        CallToolResult(content=[TextContent(type="text", text="1. Mobile App"), TextContent(type="text", text="2. API")])
    )
    tools = _session_with(session)

    result = asyncio.run(tools.call_tool(ToolInvocation("listProjects", {"limit": 5})))

    assert result.content_text == "1. Mobile App\n2. API"
    assert session.calls == [("listProjects", {"limit": 5})]


def test_tool_error_result_raises_call_error() -> None:
    session = _FakeSession(CallToolResult(content=[TextContent(type="text", text="User not found")], isError=True))

    with pytest.raises(ToolCallError) as caught:
        asyncio.run(_session_with(session).call_tool(ToolInvocation("listTasks")))
    assert caught.value.tool_name == "listTasks"
    assert caught.value.message == "User not found"


def test_protocol_error_raises_call_error() -> None:
    session = _FakeSession(error=McpError(ErrorData(code=-32602, message="Unknown tool: nope")))

    with pytest.raises(ToolCallError):
        asyncio.run(_session_with(session).call_tool(ToolInvocation("nope")))


def test_broken_stream_marks_session_unusable() -> None:
    tools = _session_with(_FakeSession(error=anyio.ClosedResourceError()))

    async def _calls() -> None:
        with pytest.raises(ToolTransportError):
            await tools.call_tool(ToolInvocation("listTasks"))
        assert tools.connected is False
        with pytest.raises(ToolTransportError):
            await tools.call_tool(ToolInvocation("listTasks"))

    asyncio.run(_calls())


def test_stdio_session_round_trip_and_teardown(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="taskflow.agent.tools.mcp_client")
    client = _stdio_client()

    async def _scenario() -> tuple[str, bool]:
        async with client.session() as tools:
            result = await tools.call_tool(ToolInvocation("listTasks", {"assigneeId": "u-3"}))
        return result.content_text, tools.connected

    text, still_connected = asyncio.run(_scenario())

    assert text == "1. Fix login bug (u-3)"
    assert still_connected is False
    assert "mcp close failed" not in caplog.text
    assert "mcp session closed" in caplog.text


def test_sessions_are_isolated_between_turns() -> None:
    client = _stdio_client(projects_delay=1.0)

    async def _scenario() -> tuple[str, str]:
        async with client.session() as slow:
            await slow.open()
            pending = asyncio.create_task(slow.call_tool(ToolInvocation("listProjects")))
            async with client.session() as quick:
                quick_text = (await quick.call_tool(ToolInvocation("listTasks"))).content_text
            slow_text = (await pending).content_text
        return quick_text, slow_text

    quick_text, slow_text = asyncio.run(_scenario())

    assert quick_text == "1. Fix login bug (everyone)"
    assert slow_text == "1. Website Redesign\n2. Mobile App"


def test_concurrent_dispatch_for_two_callers(services, make_ctx) -> None:
    services = dataclasses.replace(services, tools=_stdio_client(projects_delay=1.0))
    dispatcher = ActionDispatcher()

    def _ctx(message: str, caller_id: str):
        ctx = make_ctx(message, caller_id=caller_id)
        ctx.services = services
        ctx.tools = None
        return ctx

    async def _scenario():
        return await asyncio.gather(
            dispatcher.dispatch_all(
                [high(ActionType.LIST_MY_TASKS)],
                _ctx("show my tasks", "ext-john"),
            ),
            dispatcher.dispatch_all(
                [low(ActionType.LIST_PROJECTS)],
                _ctx("list projects", "ext-sarah-c"),
            ),
        )

    mine, projects = asyncio.run(_scenario())

    assert mine == [ToolOutcome("listTasks", "1. Fix login bug (ext-john)")]
    assert projects == [ToolOutcome("listProjects", "1. Website Redesign\n2. Mobile App")]


def test_timeframe_view_fans_out_over_one_session(services, make_ctx, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="taskflow.agent.tools.mcp_client")
    services = dataclasses.replace(services, tools=_stdio_client())
    ctx = make_ctx("what are my tasks this week")
    ctx.services = services
    ctx.tools = None

    outcomes = asyncio.run(
        ActionDispatcher().dispatch_all([high(ActionType.GET_TASKS_BY_TIMEFRAME)], ctx)
    )

    (outcome,) = outcomes
    assert outcome.tool_name == "getTaskSummary"
    assert "3 open tasks for ext-john (this_week)" in outcome.result_text
    assert "1. Fix login bug (ext-john)" in outcome.result_text
    assert "Write API docs due Friday" in outcome.result_text
    assert caplog.text.count("mcp connected") == 1
    assert "mcp close failed" not in caplog.text
