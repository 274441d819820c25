from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Callable

import pytest

from taskflow.agent.cognition.conversation_state import ConversationState
from taskflow.agent.cognition.dispatch_context import DispatchContext, InterpreterServices
from taskflow.agent.cognition.entity_resolver import (
    EntityResolver,
    InMemoryDirectory,
    ProjectRecord,
    TaskRecord,
    UserRecord,
)
from taskflow.agent.cognition.parameter_extractor import ParameterExtractor
from taskflow.agent.identity import DirectoryIdentityLookup
from taskflow.agent.tools.base import ToolInvocation, ToolResult


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("TASKFLOW_TIMEZONE", "UTC")
    monkeypatch.setenv("TASKFLOW_ENABLE_LLM_INTENT_FALLBACK", "false")
    monkeypatch.setenv("TASKFLOW_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("TASKFLOW_MAX_ACTIONS_PER_TURN", raising=False)
    monkeypatch.delenv("TASKFLOW_SESSION_TTL_SECONDS", raising=False)


class FakeCompletion:
    """Scripted completion service.

    Low-temperature calls are extraction or classification requests and get
    ``extraction``; everything else is a compose request and gets the
    ``Actions Performed`` section of the system prompt echoed back unless a
    ``reply`` is set.
    """

    def __init__(
        self,
        *,
        extraction: str | Exception = "{}",
        reply: str | Exception | None = None,
        handler: Callable[[list[dict[str, Any]], float, int], str] | None = None,
    ) -> None:
        self.extraction = extraction
        self.reply = reply
        self.handler = handler
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> str:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.handler is not None:
            return self.handler(messages, temperature, max_tokens)
        if temperature <= 0.1:
            return _resolve(self.extraction)
        if self.reply is not None:
            return _resolve(self.reply)
        system = str(messages[0].get("content") or "")
        marker = "Actions Performed:"
        return system.split(marker, 1)[1].strip() if marker in system else "How can I help?"


def _resolve(value: str | Exception) -> str:
    if isinstance(value, Exception):
        raise value
    return value


class FakeTools:
    """Tool session factory returning canned text per tool name."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[ToolInvocation] = []
        self.opened = 0
        self.closed = 0

    async def call_tool(self, invocation: ToolInvocation) -> ToolResult:
        self.calls.append(invocation)
        response = self.responses.get(invocation.name, f"{invocation.name} ok")
        if callable(response):
            response = response(invocation.arguments)
        if isinstance(response, Exception):
            raise response
        return ToolResult(name=invocation.name, content=[str(response)])

    async def open(self) -> None:
        return None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeTools]:
        self.opened += 1
        try:
            yield self
        finally:
            self.closed += 1

    def called(self, name: str) -> list[ToolInvocation]:
        return [item for item in self.calls if item.name == name]


def build_directory() -> InMemoryDirectory:
    return InMemoryDirectory(
        users=[
            UserRecord("u-1", "Sarah", "Connor", "sarah.connor@example.com", external_id="ext-sarah-c"),
            UserRecord("u-2", "Sarah", "Lee", "sarah.lee@example.com", external_id="ext-sarah-l"),
            UserRecord("u-3", "John", "Smith", "john.smith@example.com", external_id="ext-john"),
            UserRecord("u-4", "Maria", "Garcia", "maria@example.com"),
        ],
        projects=[
            ProjectRecord("p-1", "Website Redesign", "Marketing site refresh"),
            ProjectRecord("p-2", "Mobile App"),
            ProjectRecord("p-3", "API Platform"),
            ProjectRecord("p-4", "Data Warehouse"),
            ProjectRecord("p-5", "Internal Tools"),
            ProjectRecord("p-6", "Website Analytics"),
        ],
        tasks=[
            TaskRecord("t-1", "Fix login bug", "p-1", "Website Redesign", "u-3", "John Smith", "todo"),
            TaskRecord("t-2", "Write API docs", "p-3", "API Platform", "u-4", "Maria Garcia", "in_progress"),
            TaskRecord("t-3", "Update landing page", "p-1", "Website Redesign", None, None, "todo"),
            TaskRecord("t-4", "Landing page copy", "p-6", "Website Analytics", "u-1", "Sarah Connor", "todo"),
        ],
    )


@pytest.fixture
def directory() -> InMemoryDirectory:
    return build_directory()


@pytest.fixture
def fake_tools() -> FakeTools:
    return FakeTools()


@pytest.fixture
def fake_completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def services(
    directory: InMemoryDirectory,
    fake_tools: FakeTools,
    fake_completion: FakeCompletion,
) -> InterpreterServices:
    return InterpreterServices(
        tools=fake_tools,
        resolver=EntityResolver(directory),
        identity=DirectoryIdentityLookup(directory),
        extractor=ParameterExtractor(fake_completion),
    )


@pytest.fixture
def make_ctx(services: InterpreterServices) -> Callable[..., DispatchContext]:
    def _make(message: str, state: ConversationState | None = None, caller_id: str = "ext-john") -> DispatchContext:
        return DispatchContext(
            message=message,
            caller_id=caller_id,
            state=state or ConversationState(caller_id=caller_id),
            history=[],
            services=services,
            tools=services.tools,
        )

    return _make
