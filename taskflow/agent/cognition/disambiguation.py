from __future__ import annotations

import logging

from taskflow.agent.cognition.conversation_state import (
    Candidate,
    ClarificationKind,
    PendingClarification,
)
from taskflow.agent.cognition.keywords import parse_leading_int

logger = logging.getLogger(__name__)

MIN_SUBSTRING_CHARS = 3

_NOUNS = {
    ClarificationKind.USER_SEARCH: "people",
    ClarificationKind.TASK_SEARCH: "tasks",
    ClarificationKind.PROJECT_SEARCH: "projects",
}


def present(candidates: list[Candidate], kind: ClarificationKind, query: str | None = None) -> str:
    noun = _NOUNS.get(kind, "matches")
    subject = f' matching "{query}"' if query else ""
    lines = [f"I found {len(candidates)} {noun}{subject}. Which one did you mean?"]
    lines.extend(f"{index}. {item.render()}" for index, item in enumerate(candidates, start=1))
    lines.append("Reply with the number or the name, or say cancel.")
    return "\n".join(lines)


def resolve_selection(message: str, clarification: PendingClarification) -> Candidate | None:
    """Map the caller's reply onto one of the offered candidates.

    A leading number is always read as a 1-based index and is never re-read
    as text, so an out-of-range number is an invalid selection. Text replies
    prefer an exact display-name match, then the first candidate whose
    rendered line contains the reply. Replies shorter than
    ``MIN_SUBSTRING_CHARS`` never match by substring.
    """
    candidates = clarification.candidates
    index = parse_leading_int(message)
    if index is not None:
        if 1 <= index <= len(candidates):
            return candidates[index - 1]
        logger.info(
            "disambiguation selection out of range index=%s candidates=%s",
            index,
            len(candidates),
        )
        return None

    reply = " ".join(str(message or "").split()).lower().strip(" .!?")
    if not reply:
        return None
    for item in candidates:
        if item.display_name.lower() == reply:
            return item
    if len(reply) < MIN_SUBSTRING_CHARS:
        return None
    for item in candidates:
        if reply in item.render().lower():
            return item
    return None


def reprompt(clarification: PendingClarification) -> str:
    lines = ["I didn't catch which one you meant. Please choose one of these:"]
    lines.extend(clarification.candidate_lines)
    lines.append(f"Reply with a number from 1 to {len(clarification.candidates)}, or say cancel.")
    return "\n".join(lines)
