from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any

from taskflow.agent.cognition import dates, keywords
from taskflow.agent.cognition.providers.completion import CompletionService
from taskflow.config import settings

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.1
EXTRACTION_MAX_TOKENS = 200

_PROMPT = """Extract task information from this conversation. Return ONLY a JSON object with these fields (omit any you cannot determine):
- title: the task title
- projectName: the project name
- assigneeName: the person to assign it to
- priority: low, medium or high
- dueDate: YYYY-MM-DD

Today's date is {today}. Resolve relative dates such as "tomorrow" or "next week" against it.

Conversation:
{history}
user: {message}

JSON:"""


@dataclass
class ExtractedParams:
    title: str | None = None
    project_name: str | None = None
    assignee_name: str | None = None
    priority: str | None = None
    due_date: str | None = None

    @property
    def is_empty(self) -> bool:
        return not any(asdict(self).values())

    def merged_with(self, hints: ExtractedParams) -> ExtractedParams:
        """Fill only the fields this bag is missing from ``hints``."""
        return ExtractedParams(
            **{key: value if value else getattr(hints, key) for key, value in asdict(self).items()}
        )

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value}


class ParameterExtractor:
    def __init__(self, completion: CompletionService, *, timeout_seconds: float | None = None) -> None:
        self._completion = completion
        self._timeout_seconds = timeout_seconds

    async def extract(
        self,
        message: str,
        history: list[dict[str, str]] | None = None,
    ) -> ExtractedParams:
        today = dates.today_in()
        prompt = _PROMPT.format(
            today=today.isoformat(),
            history=_join_history(history),
            message=message,
        )
        timeout = self._timeout_seconds or settings.get_extraction_timeout_seconds()
        try:
            async with asyncio.timeout(timeout):
                raw = await self._completion.complete(
                    [{"role": "user", "content": prompt}],
                    temperature=EXTRACTION_TEMPERATURE,
                    max_tokens=EXTRACTION_MAX_TOKENS,
                )
        except TimeoutError:
            logger.warning("extractor timeout seconds=%s", timeout)
            return ExtractedParams()
        except Exception as exc:
            logger.warning("extractor completion failed error=%s", exc)
            return ExtractedParams()

        parsed = parse_json_object(raw)
        if parsed is None:
            logger.info("extractor non-json response chars=%s", len(str(raw or "")))
            return ExtractedParams()
        return _normalize(parsed, today)


def rule_hints(message: str, today: date) -> ExtractedParams:
    """Parameters recoverable from the message without a completion call."""
    return ExtractedParams(
        title=keywords.extract_quoted_title(message),
        project_name=keywords.extract_project_phrase(message),
        priority=keywords.detect_priority(message),
        due_date=dates.resolve_due_date(message, today) if dates.mentions_date(message) else None,
    )


def parse_json_object(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, dict):
        return raw
    candidate = str(raw or "").strip()
    if not candidate:
        return None
    if candidate.startswith("```"):
        candidate = candidate.strip("`")
        if candidate.startswith("json"):
            candidate = candidate[4:].strip()
    parsed = _json_loads(candidate)
    if isinstance(parsed, dict):
        return parsed
    start = candidate.find("{")
    end = candidate.rfind("}")
    if start >= 0 and end > start:
        parsed = _json_loads(candidate[start : end + 1])
        if isinstance(parsed, dict):
            return parsed
    return None


def _normalize(raw: dict[str, Any], today: date) -> ExtractedParams:
    return ExtractedParams(
        title=_text(raw.get("title")),
        project_name=_text(raw.get("projectName") or raw.get("project_name") or raw.get("project")),
        assignee_name=_text(raw.get("assigneeName") or raw.get("assignee_name") or raw.get("assignee")),
        priority=keywords.normalize_priority(raw.get("priority")),
        due_date=dates.normalize_iso_date(raw.get("dueDate") or raw.get("due_date"), today),
    )


def _join_history(history: list[dict[str, str]] | None) -> str:
    lines = []
    for item in history or []:
        role = str(item.get("role") or "user")
        content = str(item.get("content") or "").strip()
        if content:
            lines.append(f"{role}: {content}")
    return "\n".join(lines)


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def _json_loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None
