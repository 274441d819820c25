from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from taskflow.agent.cognition.action_dispatcher import ActionDispatcher
from taskflow.agent.cognition.actions import Action
from taskflow.agent.cognition.conversation_state import ConversationState, summarize_state
from taskflow.agent.cognition.dispatch_context import (
    DispatchContext,
    InterpreterServices,
    ToolOutcome,
)
from taskflow.agent.cognition.entity_resolver import (
    EntityResolver,
    InMemoryDirectory,
    SqliteDirectory,
)
from taskflow.agent.cognition.intent_classifier import (
    IntentClassifier,
    LlmIntentFallback,
    NounFallback,
    RuleEngine,
)
from taskflow.agent.cognition.parameter_extractor import ParameterExtractor
from taskflow.agent.cognition.providers import AsyncCompletionService, build_llm_client
from taskflow.agent.cognition.response_composer import FALLBACK_REPLY, ResponseComposer
from taskflow.agent.cortex.state_store import SessionStore, build_session_store
from taskflow.agent.identity import (
    CallerProfile,
    DirectoryIdentityLookup,
    IdentityResolutionError,
    UnauthenticatedCaller,
)
from taskflow.agent.tools.mcp_client import McpToolClient
from taskflow.config import settings

logger = logging.getLogger(__name__)


class TurnState(TypedDict, total=False):
    message: str
    caller_id: str
    history: list[dict[str, str]]
    conversation: ConversationState
    profile: CallerProfile
    actions: list[Action]
    tool_results: list[ToolOutcome]
    response: str
    fallback: bool


@dataclass(frozen=True)
class TurnResult:
    response: str
    tools_used: list[str] = field(default_factory=list)
    intent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"response": self.response, "toolsUsed": list(self.tools_used), "intent": self.intent}


def build_turn_graph(
    services: InterpreterServices,
    classifier: IntentClassifier,
    dispatcher: ActionDispatcher,
    composer: ResponseComposer,
) -> StateGraph:
    graph = StateGraph(TurnState)
    graph.add_node("ingest_node", _ingest_node(services))
    graph.add_node("classify_node", _classify_node(classifier))
    graph.add_node("dispatch_node", _dispatch_node(services, dispatcher))
    graph.add_node("respond_node", _respond_node(composer))

    graph.set_entry_point("ingest_node")
    graph.add_edge("ingest_node", "classify_node")
    graph.add_conditional_edges(
        "classify_node",
        _route_after_classify,
        {"dispatch_node": "dispatch_node", "respond_node": "respond_node"},
    )
    graph.add_edge("dispatch_node", "respond_node")
    graph.add_edge("respond_node", END)
    return graph


def _ingest_node(services: InterpreterServices):
    async def _node(state: TurnState) -> dict[str, Any]:
        caller = state["caller_id"]
        try:
            profile = await services.identity.get_profile(caller)
        except Exception as exc:
            services.log_manager.emit_exception(
                event="turn.profile_lookup_failed",
                exc=exc,
                component="interpreter",
                caller_id=caller,
            )
            profile = CallerProfile(caller_id=caller)
        return {"profile": profile, "tool_results": []}

    return _node


def _classify_node(classifier: IntentClassifier):
    async def _node(state: TurnState) -> dict[str, Any]:
        actions = await classifier.classify(
            state["message"],
            state["caller_id"],
            state.get("history") or [],
            state["conversation"],
        )
        return {"actions": actions}

    return _node


def _route_after_classify(state: TurnState) -> str:
    return "dispatch_node" if state.get("actions") else "respond_node"


def _dispatch_node(services: InterpreterServices, dispatcher: ActionDispatcher):
    async def _node(state: TurnState) -> dict[str, Any]:
        ctx = DispatchContext(
            message=state["message"],
            caller_id=state["caller_id"],
            state=state["conversation"],
            history=state.get("history") or [],
            services=services,
        )
        outcomes = await dispatcher.dispatch_all(state.get("actions") or [], ctx)
        return {"tool_results": outcomes}

    return _node


def _respond_node(composer: ResponseComposer):
    async def _node(state: TurnState) -> dict[str, Any]:
        reply = await composer.compose(
            state["profile"],
            state.get("history") or [],
            state["message"],
            state.get("tool_results") or [],
            state["conversation"],
        )
        return {"response": reply.text, "fallback": reply.fallback}

    return _node


class TurnInterpreter:
    """Entry point for one chat turn from an authenticated caller."""

    def __init__(
        self,
        *,
        services: InterpreterServices,
        classifier: IntentClassifier,
        composer: ResponseComposer,
        store: SessionStore,
        dispatcher: ActionDispatcher | None = None,
        turn_timeout_seconds: float | None = None,
    ) -> None:
        self._services = services
        self._store = store
        self._turn_timeout_seconds = turn_timeout_seconds
        self._graph = build_turn_graph(
            services,
            classifier,
            dispatcher or ActionDispatcher(),
            composer,
        ).compile()

    @classmethod
    def from_settings(cls) -> TurnInterpreter:
        completion = AsyncCompletionService(build_llm_client())
        db_path = settings.get_directory_db_path()
        if db_path is not None:
            directory = SqliteDirectory(db_path)
        else:
            logger.warning("directory db not configured; entity lookups will find nothing")
            directory = InMemoryDirectory()
        services = InterpreterServices(
            tools=McpToolClient(),
            resolver=EntityResolver(directory),
            identity=DirectoryIdentityLookup(directory),
            extractor=ParameterExtractor(completion),
        )
        classifier = IntentClassifier(
            strategies=[RuleEngine(), NounFallback(), LlmIntentFallback(completion)],
        )
        return cls(
            services=services,
            classifier=classifier,
            composer=ResponseComposer(completion),
            store=build_session_store(),
        )

    async def handle_turn(
        self,
        message: str,
        history: list[dict[str, str]] | None,
        caller_id: str | None,
    ) -> TurnResult:
        caller = str(caller_id or "").strip()
        if not caller:
            raise UnauthenticatedCaller("A caller identity is required for every turn")
        window = settings.get_history_window()
        recent = list(history or [])[-window:] if window else []
        log_manager = self._services.log_manager
        timeout = self._turn_timeout_seconds or settings.get_turn_timeout_seconds()

        async with self._store.lock_for(caller):
            conversation = self._store.load(caller) or ConversationState(caller_id=caller)
            started = time.monotonic()
            log_manager.emit(
                event="turn.started",
                component="interpreter",
                caller_id=caller,
                turn=conversation.turn_count + 1,
                payload={"active_intent": conversation.active_intent.value},
            )
            try:
                async with asyncio.timeout(timeout):
                    final = await self._graph.ainvoke(
                        {
                            "message": message,
                            "caller_id": caller,
                            "history": recent,
                            "conversation": conversation,
                        }
                    )
            except TimeoutError as exc:
                log_manager.emit_exception(
                    event="turn.timeout",
                    exc=exc,
                    component="interpreter",
                    caller_id=caller,
                    error_code="turn_timeout",
                    payload={"timeout_seconds": timeout},
                )
                return TurnResult(FALLBACK_REPLY)
            except IdentityResolutionError as exc:
                log_manager.emit_exception(
                    event="turn.identity_failed",
                    exc=exc,
                    component="interpreter",
                    caller_id=caller,
                )
                return TurnResult(FALLBACK_REPLY)
            finally:
                conversation.touch()
                self._store.save(caller, conversation)

        actions: list[Action] = final.get("actions") or []
        outcomes: list[ToolOutcome] = final.get("tool_results") or []
        tools_used = [] if final.get("fallback") else _unique(outcome.tool_name for outcome in outcomes)
        result = TurnResult(
            response=str(final.get("response") or FALLBACK_REPLY),
            tools_used=tools_used,
            intent=actions[0].type.value if actions else None,
        )
        log_manager.emit(
            event="turn.completed",
            component="interpreter",
            caller_id=caller,
            turn=conversation.turn_count,
            status="fallback" if final.get("fallback") else "ok",
            latency_ms=int((time.monotonic() - started) * 1000),
            payload={"tools_used": tools_used, "active_intent": conversation.active_intent.value},
        )
        return result

    def conversation_status(self, caller_id: str) -> dict[str, Any]:
        return {
            "context": summarize_state(self._store.load(caller_id)),
            "active_sessions": self._store.active_count(),
        }

    def clear_conversation(self, caller_id: str) -> bool:
        removed = self._store.delete(caller_id)
        logger.info("conversation cleared caller=%s removed=%s", caller_id, removed)
        return removed


def _unique(values) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
