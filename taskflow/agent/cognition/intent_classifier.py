from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Protocol

from taskflow.agent.cognition import dates, keywords
from taskflow.agent.cognition.actions import (
    Action,
    ActionPriority,
    ActionType,
    high,
    low,
)
from taskflow.agent.cognition.conversation_state import ActiveIntent, ConversationState
from taskflow.agent.cognition.intent_rules import NOUN_RULES, RULES, IntentRule
from taskflow.agent.cognition.parameter_extractor import parse_json_object
from taskflow.agent.cognition.providers.completion import CompletionService
from taskflow.config import settings

logger = logging.getLogger(__name__)

_STATEFUL_ACTIONS = {
    ActionType.CONTINUE_TASK_CREATION,
    ActionType.CONFIRM_TASK_CREATION,
    ActionType.CANCEL_TASK_CREATION,
    ActionType.HANDLE_CLARIFICATION,
    ActionType.CANCEL_CLARIFICATION,
}
_ASSIGN_UPDATE = re.compile(r"\bassign(ed)?\s+(it\s+)?to\b", re.IGNORECASE)


class ClassificationStrategy(Protocol):
    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]: ...


class ContinuationStrategy:
    """Routes a message that arrives while a dialogue flow is open."""

    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]:
        if state.active_intent == ActiveIntent.TASK_CREATION:
            return [high(self._task_creation_action(message))]
        if state.active_intent == ActiveIntent.ENTITY_CLARIFICATION:
            if keywords.is_cancellation(message):
                return [high(ActionType.CANCEL_CLARIFICATION)]
            return [high(ActionType.HANDLE_CLARIFICATION)]
        return []

    def _task_creation_action(self, message: str) -> ActionType:
        if keywords.is_cancellation(message):
            return ActionType.CANCEL_TASK_CREATION
        if has_field_update(message):
            return ActionType.CONTINUE_TASK_CREATION
        if keywords.is_confirmation(message):
            return ActionType.CONFIRM_TASK_CREATION
        return ActionType.CONTINUE_TASK_CREATION


class RuleEngine:
    def __init__(self, rules: tuple[IntentRule, ...] = RULES) -> None:
        self._rules = rules

    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]:
        return self.match(message)

    def match(self, message: str) -> list[Action]:
        text = " ".join(str(message or "").lower().split())
        if not text:
            return []
        matched_categories: set[str] = set()
        actions: list[Action] = []
        for rule in self._rules:
            if rule.category in matched_categories or not rule.matches(text):
                continue
            if rule.exclusive:
                if not actions:
                    logger.debug("rule engine exclusive match rule=%s", rule.name)
                    return list(rule.actions)
                continue
            matched_categories.add(rule.category)
            logger.debug("rule engine match rule=%s category=%s", rule.name, rule.category)
            for action in rule.actions:
                if all(existing.type != action.type for existing in actions):
                    actions.append(action)
        return actions


class NounFallback:
    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]:
        text = str(message or "").lower()
        for pattern, action in NOUN_RULES:
            if re.search(pattern, text):
                return [action]
        return []


class LlmIntentFallback:
    """Asks the completion service to pick catalog actions for free-form text."""

    def __init__(self, completion: CompletionService, *, timeout_seconds: float | None = None) -> None:
        self._completion = completion
        self._timeout_seconds = timeout_seconds

    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]:
        if not settings.get_enable_llm_intent_fallback():
            return []
        allowed = [item.value for item in ActionType if item not in _STATEFUL_ACTIONS]
        prompt = (
            "Classify the user's request for a project management assistant.\n"
            f"Allowed actions: {', '.join(allowed)}\n"
            'Return ONLY JSON like {"actions": [{"type": "<action>", "priority": "high|medium|low"}]} '
            "with at most 3 actions, or an empty list when none apply.\n"
            f"Request: {message}"
        )
        timeout = self._timeout_seconds or settings.get_extraction_timeout_seconds()
        try:
            async with asyncio.timeout(timeout):
                raw = await self._completion.complete(
                    [{"role": "user", "content": prompt}],
                    temperature=0.0,
                    max_tokens=150,
                )
        except TimeoutError:
            logger.warning("llm intent fallback timeout caller=%s", caller_id)
            return []
        except Exception as exc:
            logger.warning("llm intent fallback failed caller=%s error=%s", caller_id, exc)
            return []
        return _parse_llm_actions(raw)


class IntentClassifier:
    def __init__(
        self,
        *,
        continuation: ContinuationStrategy | None = None,
        strategies: list[ClassificationStrategy] | None = None,
    ) -> None:
        self._continuation = continuation or ContinuationStrategy()
        self._strategies = strategies if strategies is not None else [RuleEngine(), NounFallback()]

    async def classify(
        self,
        message: str,
        caller_id: str,
        history: list[dict[str, str]],
        state: ConversationState,
    ) -> list[Action]:
        if not state.is_idle:
            actions = await self._continuation.classify(message, caller_id, history, state)
            logger.info(
                "classifier continuation caller=%s active_intent=%s action=%s",
                caller_id,
                state.active_intent.value,
                actions[0].type.value if actions else None,
            )
            return actions
        for strategy in self._strategies:
            actions = await strategy.classify(message, caller_id, history, state)
            if actions:
                logger.info(
                    "classifier matched caller=%s strategy=%s actions=%s",
                    caller_id,
                    type(strategy).__name__,
                    ",".join(action.type.value for action in actions),
                )
                return actions
        logger.info("classifier default caller=%s", caller_id)
        return [low(ActionType.LIST_PROJECTS)]


def has_field_update(message: str) -> bool:
    """True when a creation-flow reply carries a value for some task field."""
    return bool(
        keywords.detect_priority(message)
        or dates.mentions_date(message)
        or keywords.mentions_project(message)
        or keywords.parse_leading_int(message) is not None
        or _ASSIGN_UPDATE.search(message)
    )


def _parse_llm_actions(raw: str) -> list[Action]:
    parsed = parse_json_object(raw)
    if parsed is None:
        try:
            parsed = {"actions": json.loads(str(raw or "").strip())}
        except json.JSONDecodeError:
            return []
    items = parsed.get("actions") if isinstance(parsed, dict) else None
    if not isinstance(items, list):
        return []
    actions: list[Action] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            action_type = ActionType(str(item.get("type") or ""))
        except ValueError:
            continue
        if action_type in _STATEFUL_ACTIONS:
            continue
        try:
            priority = ActionPriority(str(item.get("priority") or "medium").lower())
        except ValueError:
            priority = ActionPriority.MEDIUM
        actions.append(Action(action_type, priority))
    return actions[:3]
