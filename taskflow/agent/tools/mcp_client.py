from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError

from taskflow.agent.tools.base import (
    ToolCallError,
    ToolInvocation,
    ToolResult,
    ToolTransportError,
)
from taskflow.config import settings

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (
    OSError,
    EOFError,
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
)


class McpToolClient:
    """Opens MCP stdio sessions against the task service.

    The client holds only the server parameters. Every turn gets its own
    ``McpToolSession`` from ``session()`` so callers never share a
    transport and one turn's teardown cannot cut another turn's calls.
    """

    def __init__(
        self,
        *,
        command: str | None = None,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        connect_timeout_seconds: float | None = None,
    ) -> None:
        self._params = StdioServerParameters(
            command=command or settings.get_mcp_server_command(),
            args=list(args) if args is not None else settings.get_mcp_server_args(),
            cwd=cwd if cwd is not None else settings.get_mcp_server_cwd(),
            env=env,
        )
        self._connect_timeout = (
            connect_timeout_seconds
            if connect_timeout_seconds is not None
            else settings.get_tool_connect_timeout_seconds()
        )

    def new_session(self) -> McpToolSession:
        return McpToolSession(self._params, self._connect_timeout)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[McpToolSession]:
        tools = self.new_session()
        try:
            yield tools
        finally:
            await tools.close()


class McpToolSession:
    """One MCP connection, opened lazily and closed by ``close``.

    The stdio transport is bound to an anyio task group, so ``open`` and
    ``close`` must run in the same task. Callers that fan out with
    ``asyncio.gather`` call ``open`` first so no child task ever connects.
    """

    def __init__(self, params: StdioServerParameters, connect_timeout: float) -> None:
        self._params = params
        self._connect_timeout = connect_timeout
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._broken = False
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._broken

    async def open(self) -> ClientSession:
        async with self._lock:
            if self._broken:
                raise ToolTransportError("The task service connection was lost")
            if self._session is not None:
                return self._session
            stack = AsyncExitStack()
            try:
                async with asyncio.timeout(self._connect_timeout):
                    read, write = await stack.enter_async_context(stdio_client(self._params))
                    session = await stack.enter_async_context(ClientSession(read, write))
                    await session.initialize()
            except TimeoutError as exc:
                await _close_quietly(stack)
                logger.warning(
                    "mcp connect timeout command=%s timeout=%s",
                    self._params.command,
                    self._connect_timeout,
                )
                raise ToolTransportError(
                    f"Connection timeout after {self._connect_timeout:g}s",
                    code="tool_connect_timeout",
                ) from exc
            except Exception as exc:
                await _close_quietly(stack)
                logger.warning("mcp connect failed command=%s error=%s", self._params.command, exc)
                raise ToolTransportError(str(exc) or type(exc).__name__) from exc
            self._stack = stack
            self._session = session
            logger.info("mcp connected command=%s", self._params.command)
            return session

    async def call_tool(self, invocation: ToolInvocation) -> ToolResult:
        session = await self.open()
        try:
            result = await session.call_tool(invocation.name, dict(invocation.arguments))
        except McpError as exc:
            raise ToolCallError(invocation.name, str(exc)) from exc
        except _TRANSPORT_ERRORS as exc:
            # The stack is released by close() in the owning task.
            logger.warning("mcp transport broken tool=%s error=%s", invocation.name, exc)
            self._broken = True
            raise ToolTransportError(str(exc) or type(exc).__name__) from exc
        texts = _content_texts(result.content)
        if result.isError:
            raise ToolCallError(invocation.name, "\n".join(texts) or f"{invocation.name} failed")
        return ToolResult(name=invocation.name, content=texts)

    async def close(self) -> None:
        stack = self._stack
        self._stack = None
        self._session = None
        if stack is not None:
            await _close_quietly(stack)
            logger.info("mcp session closed command=%s", self._params.command)


def _content_texts(content: list[Any]) -> list[str]:
    texts: list[str] = []
    for item in content or []:
        text = getattr(item, "text", None)
        if isinstance(text, str):
            texts.append(text)
    return texts


async def _close_quietly(stack: AsyncExitStack) -> None:
    try:
        await stack.aclose()
    except Exception as exc:
        logger.warning("mcp close failed error=%s", exc)
