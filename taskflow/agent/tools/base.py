from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class ToolInvocation:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    name: str
    content: list[str] = field(default_factory=list)

    @property
    def content_text(self) -> str:
        return "\n".join(item for item in self.content if item)


class ToolCaller(Protocol):
    async def call_tool(self, invocation: ToolInvocation) -> ToolResult: ...

    async def open(self) -> Any: ...


class ToolSessionFactory(Protocol):
    def session(self) -> AbstractAsyncContextManager[ToolCaller]: ...


class ToolCallError(Exception):
    """The named operation ran and reported a failure."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.message = message


class ToolTransportError(Exception):
    """The tool surface could not be reached at all."""

    def __init__(self, message: str, *, code: str = "tool_transport_failed") -> None:
        super().__init__(message)
        self.code = code
        self.message = message
