from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any, Callable

from taskflow.agent.cognition.conversation_state import ConversationState
from taskflow.agent.cognition.entity_resolver import EntityResolver
from taskflow.agent.cognition.parameter_extractor import ParameterExtractor
from taskflow.agent.identity import IdentityLookup, IdentityResolutionError
from taskflow.agent.observability.log_manager import LogManager, get_log_manager
from taskflow.agent.tools.base import (
    ToolCallError,
    ToolCaller,
    ToolInvocation,
    ToolResult,
    ToolSessionFactory,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolOutcome:
    tool_name: str
    result_text: str

    def to_dict(self) -> dict[str, str]:
        return {"toolName": self.tool_name, "resultText": self.result_text}


@dataclass
class InterpreterServices:
    tools: ToolSessionFactory
    resolver: EntityResolver
    identity: IdentityLookup
    extractor: ParameterExtractor
    log_manager: LogManager = field(default_factory=get_log_manager)


@dataclass
class DispatchContext:
    message: str
    caller_id: str
    state: ConversationState
    history: list[dict[str, str]]
    services: InterpreterServices
    tools: ToolCaller | None = None
    internal_id: str | None = None

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        payload = {key: value for key, value in (arguments or {}).items() if value is not None}
        logger.debug("tool call caller=%s tool=%s args=%s", self.caller_id, name, sorted(payload))
        return await self._tools().call_tool(ToolInvocation(name=name, arguments=payload))

    async def gather(self, *calls: Coroutine[Any, Any, Any]) -> list[Any]:
        """Run tool calls concurrently on the turn's session.

        The session is opened here first so the connection belongs to the
        dispatch task and not to one of the gathered children. Every call
        finishes before the first failure is raised.
        """
        try:
            await self._tools().open()
        except BaseException:
            for call in calls:
                call.close()
            raise
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    def _tools(self) -> ToolCaller:
        if self.tools is None:
            raise RuntimeError("No tool session is open for this turn")
        return self.tools

    async def call_text(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        result = await self.call(name, arguments)
        return result.content_text

    async def call_with_identity(
        self,
        name: str,
        build_arguments: Callable[[str], dict[str, Any]],
    ) -> ToolResult:
        """Call ``name`` as the caller, retrying once with the internal record id.

        The raw caller identity is tried first. When the tool rejects it the
        identity collaborator maps it to the internal user id and the call is
        retried exactly once. A caller with no internal record cannot be
        served, so that raises ``IdentityResolutionError``.
        """
        if self.internal_id is not None:
            return await self.call(name, build_arguments(self.internal_id))
        try:
            return await self.call(name, build_arguments(self.caller_id))
        except ToolCallError as exc:
            logger.info(
                "tool call rejected caller identity caller=%s tool=%s error=%s",
                self.caller_id,
                name,
                exc.message,
            )
            internal_id = await self.services.identity.resolve_internal_id(self.caller_id)
            if not internal_id:
                raise IdentityResolutionError(self.caller_id) from exc
            self.internal_id = internal_id
            return await self.call(name, build_arguments(internal_id))

    async def call_text_with_identity(
        self,
        name: str,
        build_arguments: Callable[[str], dict[str, Any]],
    ) -> str:
        result = await self.call_with_identity(name, build_arguments)
        return result.content_text
