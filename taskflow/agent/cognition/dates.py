from __future__ import annotations

import calendar
import logging
import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import dateparser

from taskflow.config import settings

logger = logging.getLogger(__name__)

_WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_NUMBER_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_IN_N_UNITS = re.compile(
    r"\bin\s+(\d+|a|an|one|two|three|four|five|six|seven|eight|nine|ten)\s+(day|week|month)s?\b"
)
_WEEKDAY = re.compile(r"\b(?:(next|this|on|by|before)\s+)?(" + "|".join(_WEEKDAYS) + r")\b")
_DUE_PHRASE = re.compile(r"\b(?:due|by|on|before|until)\s+(?P<phrase>[\w ,/.-]+)")

DATE_HINT = re.compile(
    r"\b(today|tonight|tomorrow|next\s+week|next\s+month|end\s+of\s+(?:the\s+)?(?:week|month)"
    r"|in\s+\w+\s+(?:day|week|month)s?|" + "|".join(_WEEKDAYS) + r"|due|deadline)\b"
    r"|\d{4}-\d{2}-\d{2}"
)


def today_in(tz_name: str | None = None) -> date:
    """Current calendar date in the configured timezone, evaluated on every call."""
    return datetime.now(tz=ZoneInfo(tz_name or settings.get_timezone())).date()


def mentions_date(text: str) -> bool:
    return bool(DATE_HINT.search(str(text or "").lower()))


def resolve_due_date(text: str, today: date) -> str | None:
    lowered = re.sub(r"\s+", " ", str(text or "").strip().lower())
    if not lowered:
        return None

    iso = _ISO_DATE.search(lowered)
    if iso:
        try:
            return date.fromisoformat(iso.group(1)).isoformat()
        except ValueError:
            return None

    if "day after tomorrow" in lowered:
        return (today + timedelta(days=2)).isoformat()
    if "tomorrow" in lowered:
        return (today + timedelta(days=1)).isoformat()
    if re.search(r"\b(today|tonight)\b", lowered):
        return today.isoformat()
    if "next week" in lowered:
        return (today + timedelta(days=7)).isoformat()
    if "next month" in lowered:
        return (today + timedelta(days=30)).isoformat()
    if re.search(r"\bend of (the )?week\b", lowered):
        return (today + timedelta(days=(4 - today.weekday()) % 7)).isoformat()
    if re.search(r"\bend of (the )?month\b", lowered):
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.replace(day=last_day).isoformat()

    relative = _IN_N_UNITS.search(lowered)
    if relative:
        amount = _to_int(relative.group(1))
        unit = relative.group(2)
        days = amount * {"day": 1, "week": 7, "month": 30}[unit]
        return (today + timedelta(days=days)).isoformat()

    weekday = _WEEKDAY.search(lowered)
    if weekday:
        return next_weekday(today, _WEEKDAYS.index(weekday.group(2))).isoformat()

    phrase = _DUE_PHRASE.search(lowered)
    if phrase:
        return _parse_with_dateparser(phrase.group("phrase").strip(" .,"), today)
    return None


def next_weekday(today: date, weekday: int) -> date:
    """Next occurrence of ``weekday`` strictly after ``today``."""
    days_ahead = (weekday - today.weekday()) % 7
    return today + timedelta(days=days_ahead or 7)


def normalize_iso_date(value: object, today: date) -> str | None:
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError:
        return resolve_due_date(text, today)


def sprint_window(today: date, weeks: int) -> tuple[str, str]:
    end = today + timedelta(weeks=max(weeks, 1))
    return today.isoformat(), end.isoformat()


def _parse_with_dateparser(phrase: str, today: date) -> str | None:
    if not phrase:
        return None
    parsed = dateparser.parse(
        phrase,
        settings={
            "RELATIVE_BASE": datetime(today.year, today.month, today.day),
            "PREFER_DATES_FROM": "future",
        },
    )
    if parsed is None:
        logger.debug("dates resolve_due_date unparsed phrase=%s", phrase)
        return None
    return parsed.date().isoformat()


def _to_int(token: str) -> int:
    if token.isdigit():
        return int(token)
    return _NUMBER_WORDS.get(token, 1)
