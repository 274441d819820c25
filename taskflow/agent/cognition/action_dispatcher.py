from __future__ import annotations

import asyncio
import logging
import time

from taskflow.agent.cognition.actions import Action
from taskflow.agent.cognition.dispatch_context import DispatchContext, ToolOutcome
from taskflow.agent.cognition.handlers import ACTION_HANDLERS, Handler
from taskflow.agent.identity import IdentityResolutionError
from taskflow.agent.tools import catalog
from taskflow.agent.tools.base import ToolTransportError
from taskflow.config import settings

logger = logging.getLogger(__name__)

TRANSPORT_FAILURE_TEXT = "Error: the task service is unavailable right now. Please try again shortly."
CANCELLED_ACTION_TEXT = "Error: the request was interrupted before it finished."


class ActionDispatcher:
    def __init__(
        self,
        handlers: dict | None = None,
        *,
        max_actions: int | None = None,
    ) -> None:
        self._handlers: dict = dict(handlers if handlers is not None else ACTION_HANDLERS)
        self._max_actions = max_actions

    def plan(self, actions: list[Action]) -> list[Action]:
        """Order by priority (stable within a priority) and cap the batch."""
        limit = self._max_actions or settings.get_max_actions_per_turn()
        ordered = sorted(actions, key=lambda action: action.priority.rank)
        if len(ordered) > limit:
            logger.info(
                "dispatch capped actions=%s limit=%s dropped=%s",
                len(ordered),
                limit,
                ",".join(action.type.value for action in ordered[limit:]),
            )
        return ordered[:limit]

    async def dispatch(self, action: Action, ctx: DispatchContext) -> ToolOutcome:
        handler: Handler | None = self._handlers.get(action.type)
        if handler is None:
            raise LookupError(f"No handler for action {action.type.value}")
        return await handler(ctx)

    async def dispatch_all(self, actions: list[Action], ctx: DispatchContext) -> list[ToolOutcome]:
        """Run the planned actions one after another on one tool session.

        The session is opened for this batch and closed when it ends, in
        this task. Each action fails on its own: its exception becomes an
        ``Error:`` outcome and the rest of the batch still runs. A
        cancellation that does not target this task is treated the same
        way. A transport failure replaces the whole batch with one
        synthetic ``error`` outcome. Identity resolution failure propagates
        and ends the turn.
        """
        log_manager = ctx.services.log_manager
        outcomes: list[ToolOutcome] = []
        try:
            async with ctx.services.tools.session() as tools:
                ctx.tools = tools
                for action in self.plan(actions):
                    outcomes.append(await self._run_one(action, ctx))
        except ToolTransportError as exc:
            log_manager.emit_exception(
                event="dispatch.transport_failed",
                exc=exc,
                component="action_dispatcher",
                caller_id=ctx.caller_id,
                error_code=exc.code,
            )
            return [ToolOutcome(catalog.SYNTHETIC_ERROR, TRANSPORT_FAILURE_TEXT)]
        finally:
            ctx.tools = None
        return outcomes

    async def _run_one(self, action: Action, ctx: DispatchContext) -> ToolOutcome:
        log_manager = ctx.services.log_manager
        started = time.monotonic()
        try:
            outcome = await self.dispatch(action, ctx)
        except (ToolTransportError, IdentityResolutionError):
            raise
        except asyncio.CancelledError as exc:
            if _cancelling():
                raise
            log_manager.emit_exception(
                event="dispatch.action_cancelled",
                exc=exc,
                component="action_dispatcher",
                caller_id=ctx.caller_id,
                tool=action.type.value,
            )
            return ToolOutcome(action.type.value, CANCELLED_ACTION_TEXT)
        except Exception as exc:
            log_manager.emit_exception(
                event="dispatch.action_failed",
                exc=exc,
                component="action_dispatcher",
                caller_id=ctx.caller_id,
                tool=action.type.value,
            )
            return ToolOutcome(action.type.value, f"Error: {exc}")
        log_manager.emit(
            event="dispatch.action_completed",
            component="action_dispatcher",
            caller_id=ctx.caller_id,
            tool=outcome.tool_name,
            status="ok",
            latency_ms=int((time.monotonic() - started) * 1000),
            payload={"action": action.type.value, "priority": action.priority.value},
        )
        return outcome


def _cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
