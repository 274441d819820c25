"""Deterministic text rules shared by the classifier and the flow handlers.

Nothing in here touches the network: every function is a pure
transformation of the caller's message so it can be tested directly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

CANCEL_PATTERN = re.compile(r"\b(cancel\w*|abort\w*|stop\w*|no)\b", re.IGNORECASE)
CONFIRM_PATTERN = re.compile(r"\b(create|confirm|yes)\b", re.IGNORECASE)

_PRIORITY_PATTERNS = (
    ("high", re.compile(r"\b(high|urgent|critical|asap)\b", re.IGNORECASE)),
    ("medium", re.compile(r"\b(medium|normal)\b", re.IGNORECASE)),
    ("low", re.compile(r"\blow\b", re.IGNORECASE)),
)
VALID_PRIORITIES = ("low", "medium", "high")

_PROJECT_PATTERNS = (
    re.compile(
        r"\b(?:in|for|to|under|into)\s+(?:the\s+)?[\"']?(?P<name>[\w][\w .&-]*?)[\"']?\s+project\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bproject\s*(?:is|:|=|called|named)?\s*[\"']?(?P<name>[\w][\w .&-]*?)[\"']?\s*(?:[,.!?]|$)",
        re.IGNORECASE,
    ),
)
_PREPOSITION_SPLIT = re.compile(r"\b(?:in|for|to|under|into)\s+", re.IGNORECASE)
_TASKS_IN_PROJECT = (
    re.compile(
        r"\btasks?\s+(?:in|under)\s+(?:the\s+)?[\"']?(?P<name>[\w][\w .&-]*?)[\"']?(?:\s+project)?\s*[?.!]?$",
        re.IGNORECASE,
    ),
    re.compile(
        r"\btasks?\s+for\s+(?:the\s+)?[\"']?(?P<name>[\w][\w .&-]*?)[\"']?\s+project\b",
        re.IGNORECASE,
    ),
)
_REASSIGN = re.compile(
    r"\b(?:re)?assign\s+(?P<task>.+?)\s+to\s+(?P<user>.+?)\s*[.!?]*$",
    re.IGNORECASE,
)
_HAND_OFF = re.compile(
    r"\b(?:give|hand|move)\s+(?P<task>.+?\btask\b.*?)\s+to\s+(?P<user>.+?)\s*[.!?]*$",
    re.IGNORECASE,
)
_USER_TASKS = (
    re.compile(r"\b(?P<user>[\w.-]+)'s\s+tasks\b", re.IGNORECASE),
    re.compile(r"\bwhat\s+is\s+(?P<user>[\w.-]+(?:\s+[\w.-]+)?)\s+working\s+on\b", re.IGNORECASE),
    re.compile(
        r"\btasks\s+(?:assigned\s+)?(?:to|for)\s+(?P<user>[\w.@-]+(?:\s+[\w.-]+)?)\s*[?.!]*$",
        re.IGNORECASE,
    ),
)
_QUOTED = (
    re.compile(r"[\"“]([^\"”]+)[\"”]"),
    re.compile(r"(?:^|\s)'([^']+)'(?=\s|$|[.,!?])"),
)
_CALLED = re.compile(
    r"\b(?:called|named|titled)\s+(?P<title>.+?)(?:\s+(?:in|for|to|due|by|with|under)\b|[.!?]*$)",
    re.IGNORECASE,
)
_LEADING_INT = re.compile(r"^\s*(?:#|number\s+|option\s+|choice\s+)?(\d+)\b", re.IGNORECASE)
_SPRINT_WEEKS = re.compile(r"\b(\d+|one|two|three|four|six)[\s-]*(?:week|wk)s?\b", re.IGNORECASE)
_SPRINT_DAYS = re.compile(r"\b(\d+)[\s-]*days?\b", re.IGNORECASE)

_WORD_NUMBERS = {"one": 1, "two": 2, "three": 3, "four": 4, "six": 6}
_NON_NAMES = {"me", "my", "i", "us", "we", "myself", "everyone", "everybody", "team", "the team", "all"}
_NON_PROJECT_NAMES = {"the", "a", "this", "that", "my", "our", "it", "which", "what", "each", "every"}


@dataclass(frozen=True)
class Reassignment:
    task_ref: str
    assignee_ref: str


def is_cancellation(text: str) -> bool:
    return bool(CANCEL_PATTERN.search(str(text or "")))


def is_confirmation(text: str) -> bool:
    return bool(CONFIRM_PATTERN.search(str(text or "")))


def detect_priority(text: str) -> str | None:
    for value, pattern in _PRIORITY_PATTERNS:
        if pattern.search(str(text or "")):
            return value
    return None


def normalize_priority(value: object) -> str | None:
    text = str(value or "").strip().lower()
    if text in VALID_PRIORITIES:
        return text
    return detect_priority(text)


def extract_project_phrase(text: str) -> str | None:
    raw = str(text or "").strip()
    for pattern in _PROJECT_PATTERNS:
        match = pattern.search(raw)
        if match:
            # keep only the phrase after the last preposition
            tail = _PREPOSITION_SPLIT.split(match.group("name"))[-1]
            name = _clean_reference(tail)
            if name and name.lower() not in _NON_PROJECT_NAMES:
                return name
    return None


def extract_tasks_project(text: str) -> str | None:
    raw = str(text or "").strip()
    for pattern in _TASKS_IN_PROJECT:
        match = pattern.search(raw)
        if not match:
            continue
        name = _clean_reference(match.group("name"))
        if name and name.lower() not in _NON_PROJECT_NAMES | _NON_NAMES:
            return name
    return None


def mentions_project(text: str) -> bool:
    return bool(re.search(r"\bproject\b", str(text or ""), re.IGNORECASE))


def parse_reassignment(text: str) -> Reassignment | None:
    raw = str(text or "").strip()
    match = _REASSIGN.search(raw) or _HAND_OFF.search(raw)
    if not match:
        return None
    task_ref = _clean_task_reference(match.group("task"))
    assignee_ref = _clean_reference(match.group("user"))
    if not task_ref or not assignee_ref:
        return None
    return Reassignment(task_ref=task_ref, assignee_ref=assignee_ref)


def parse_user_task_query(text: str) -> str | None:
    raw = str(text or "").strip()
    for pattern in _USER_TASKS:
        match = pattern.search(raw)
        if not match:
            continue
        name = _clean_reference(match.group("user"))
        if not name or name.lower() in _NON_NAMES or "project" in name.lower():
            continue
        return name
    return None


def extract_quoted_title(text: str) -> str | None:
    raw = str(text or "")
    for pattern in _QUOTED:
        match = pattern.search(raw)
        if match and match.group(1).strip():
            return match.group(1).strip()
    called = _CALLED.search(raw)
    if called:
        title = called.group("title").strip(" \"'.")
        return title or None
    return None


def parse_leading_int(text: str) -> int | None:
    match = _LEADING_INT.search(str(text or ""))
    return int(match.group(1)) if match else None


def detect_timeframe(text: str) -> str | None:
    lowered = str(text or "").lower()
    if re.search(r"\btoday\b", lowered):
        return "today"
    if re.search(r"\bnext week\b", lowered):
        return "next_week"
    if re.search(r"\bthis week\b|\bthe week\b", lowered):
        return "this_week"
    if re.search(r"\bthis month\b", lowered):
        return "this_month"
    return None


def parse_sprint_weeks(text: str, default: int = 2) -> int:
    raw = str(text or "")
    weeks = _SPRINT_WEEKS.search(raw)
    if weeks:
        token = weeks.group(1).lower()
        return int(token) if token.isdigit() else _WORD_NUMBERS.get(token, default)
    days = _SPRINT_DAYS.search(raw)
    if days:
        return max(1, -(-int(days.group(1)) // 7))
    return default


def split_name(text: str) -> tuple[str, str]:
    tokens = str(text or "").strip().split()
    if not tokens:
        return "", ""
    return tokens[0], " ".join(tokens[1:])


def _clean_reference(value: str | None) -> str:
    text = str(value or "").strip().strip("\"'“”").strip()
    text = re.sub(r"^(?:the|a|an)\s+", "", text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip(" .,!?")


def _clean_task_reference(value: str | None) -> str:
    text = _clean_reference(value)
    text = re.sub(r"^(?:task|ticket)\s+", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s+(?:task|ticket)$", "", text, flags=re.IGNORECASE)
    return text.strip("\"'“” ")
