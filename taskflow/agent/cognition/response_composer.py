from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from taskflow.agent.cognition.conversation_state import ActiveIntent, ConversationState
from taskflow.agent.cognition.dispatch_context import ToolOutcome
from taskflow.agent.cognition.providers.completion import CompletionService
from taskflow.agent.identity import CallerProfile
from taskflow.config import settings

logger = logging.getLogger(__name__)

COMPOSE_TEMPERATURE = 0.7
COMPOSE_MAX_TOKENS = 1500
FALLBACK_REPLY = (
    "I apologize, but I encountered an error while processing your request. "
    "Please try again or rephrase your question."
)
EMPTY_REPLY = "I apologize, but I couldn't generate a response."

_SYSTEM_PROMPT = """You are an AI assistant for a project management application called TaskFlow. You can help users with:

- Creating tasks, projects, bugs, and sprints
- Listing and viewing project information
- Managing team assignments and priorities
- Setting due dates and status updates
- Checking team members and user information

Base your answer on the results of the actions below. When an action reports an error, say briefly that it could not be completed without repeating technical details.

Current user: {user}
User ID: {user_id}

Be conversational and helpful in your responses."""

_TASK_FLOW_GUIDANCE = (
    "A task is being created with this user. Keep guiding them: show the list or summary "
    "from the actions exactly as given, ask for anything still missing, and remind them "
    'to reply "create" to confirm or "cancel" to stop.'
)
_CLARIFICATION_GUIDANCE = (
    "The user must pick one of the numbered options shown in the actions. Repeat the "
    "options exactly with their numbers and ask them to choose one or say cancel."
)


@dataclass(frozen=True)
class ComposedReply:
    text: str
    fallback: bool = False


class ResponseComposer:
    def __init__(self, completion: CompletionService, *, timeout_seconds: float | None = None) -> None:
        self._completion = completion
        self._timeout_seconds = timeout_seconds

    async def compose(
        self,
        profile: CallerProfile,
        history: list[dict[str, str]],
        message: str,
        tool_results: list[ToolOutcome],
        state: ConversationState,
    ) -> ComposedReply:
        messages = [
            {"role": "system", "content": build_system_prompt(profile, tool_results, state)},
            *[
                {"role": str(item.get("role") or "user"), "content": str(item.get("content") or "")}
                for item in history
            ],
            {"role": "user", "content": message},
        ]
        timeout = self._timeout_seconds or settings.get_compose_timeout_seconds()
        try:
            async with asyncio.timeout(timeout):
                text = await self._completion.complete(
                    messages,
                    temperature=COMPOSE_TEMPERATURE,
                    max_tokens=COMPOSE_MAX_TOKENS,
                )
        except TimeoutError:
            logger.warning("composer timeout caller=%s seconds=%s", profile.caller_id, timeout)
            return ComposedReply(FALLBACK_REPLY, fallback=True)
        except Exception as exc:
            logger.warning("composer completion failed caller=%s error=%s", profile.caller_id, exc)
            return ComposedReply(FALLBACK_REPLY, fallback=True)
        text = str(text or "").strip()
        return ComposedReply(text or EMPTY_REPLY)


def build_system_prompt(
    profile: CallerProfile,
    tool_results: list[ToolOutcome],
    state: ConversationState,
) -> str:
    prompt = _SYSTEM_PROMPT.format(
        user=profile.describe(),
        user_id=profile.internal_id or profile.caller_id,
    )
    if state.active_intent == ActiveIntent.TASK_CREATION:
        prompt += f"\n\n{_TASK_FLOW_GUIDANCE}"
    elif state.active_intent == ActiveIntent.ENTITY_CLARIFICATION:
        prompt += f"\n\n{_CLARIFICATION_GUIDANCE}"
    if tool_results:
        prompt += "\n\nActions Performed:\n"
        for outcome in tool_results:
            prompt += f"\n{outcome.tool_name}:\n{outcome.result_text}\n"
    return prompt
