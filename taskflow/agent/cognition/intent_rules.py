from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable

from taskflow.agent.cognition import keywords
from taskflow.agent.cognition.actions import Action, ActionType, high, low, medium


@dataclass(frozen=True)
class IntentRule:
    """One row of the ordered rule table.

    A rule matches when any of its patterns, or its ``matcher``, hits the
    lowered message. ``exclusive`` rules end matching and are dispatched
    alone.
    """

    name: str
    category: str
    actions: tuple[Action, ...]
    patterns: tuple[str, ...] = ()
    matcher: Callable[[str], bool] | None = None
    exclusive: bool = False
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_compiled",
            tuple(re.compile(pattern, re.IGNORECASE) for pattern in self.patterns),
        )

    def matches(self, text: str) -> bool:
        if any(pattern.search(text) for pattern in self._compiled):
            return True
        return bool(self.matcher and self.matcher(text))


_CREATES_OTHER = re.compile(
    r"\b(create|make|add|new|start|plan|report|log|file|open)\s+(?:an?\s+)?(?:new\s+)?"
    r"(?:\d+[\s-]*weeks?\s+)?(sprint|bug)\b"
)


def _is_task_creation(text: str) -> bool:
    if _CREATES_OTHER.search(text):
        return False
    return bool(re.search(r"\b(create|make|add|new)\b.*\btasks?\b", text))


def _is_project_task_listing(text: str) -> bool:
    return keywords.extract_tasks_project(text) is not None


def _is_user_task_query(text: str) -> bool:
    return keywords.parse_user_task_query(text) is not None


RULES: tuple[IntentRule, ...] = (
    IntentRule(
        name="create_task",
        category="task_creation",
        actions=(high(ActionType.CREATE_TASK),),
        matcher=_is_task_creation,
        exclusive=True,
    ),
    IntentRule(
        name="reassign_task",
        category="reassignment",
        actions=(high(ActionType.REASSIGN_TASK),),
        patterns=(r"\b(re)?assign\b.+\bto\b", r"\b(give|hand|move)\b.+\btask\b.+\bto\b"),
        exclusive=True,
    ),
    IntentRule(
        name="create_sprint",
        category="sprint_creation",
        actions=(high(ActionType.CREATE_SPRINT),),
        patterns=(r"\b(create|start|plan|make|new|set up)\b.*\bsprint\b",),
        exclusive=True,
    ),
    IntentRule(
        name="create_bug",
        category="bug_creation",
        actions=(high(ActionType.CREATE_BUG),),
        patterns=(r"\b(report|create|log|file|add|new|open)\b.*\bbug\b",),
        exclusive=True,
    ),
    IntentRule(
        name="schedule_risk",
        category="schedule",
        actions=(
            high(ActionType.GET_PROJECT_HEALTH),
            medium(ActionType.GET_OVERDUE_TASKS),
            low(ActionType.GET_UPCOMING_DEADLINES),
        ),
        patterns=(r"\bbehind schedule\b", r"\bfalling behind\b", r"\bat risk\b", r"\bslipping\b"),
    ),
    IntentRule(
        name="completed_this_week",
        category="completion",
        actions=(high(ActionType.GET_COMPLETED_THIS_WEEK),),
        patterns=(r"\b(completed|finished|done|closed)\b.*\b(this|the|last) week\b",),
    ),
    IntentRule(
        name="completed_this_month",
        category="completion",
        actions=(high(ActionType.GET_COMPLETED_THIS_MONTH),),
        patterns=(r"\b(completed|finished|done|closed)\b.*\b(this|the|last) month\b",),
    ),
    IntentRule(
        name="tasks_by_timeframe",
        category="my_work",
        actions=(high(ActionType.GET_TASKS_BY_TIMEFRAME),),
        patterns=(
            r"\b(tasks?|due|work|working on|to do|todo)\b.*\b(today|this week|next week|this month)\b",
            r"\b(today|this week|next week|this month)\b.*\b(tasks?|due)\b",
        ),
    ),
    IntentRule(
        name="my_tasks",
        category="my_work",
        actions=(high(ActionType.LIST_MY_TASKS),),
        patterns=(
            r"\bmy tasks\b",
            r"\bassigned to me\b",
            r"\bwhat (am i|should i be) working on\b",
            r"\bmy (work|todo|to-do)\b",
        ),
    ),
    IntentRule(
        name="user_tasks",
        category="people",
        actions=(high(ActionType.LIST_USER_TASKS),),
        matcher=_is_user_task_query,
    ),
    IntentRule(
        name="overdue",
        category="deadlines",
        actions=(high(ActionType.GET_OVERDUE_TASKS),),
        patterns=(r"\boverdue\b", r"\bpast due\b", r"\blate tasks\b", r"\bmissed deadlines?\b"),
    ),
    IntentRule(
        name="upcoming_deadlines",
        category="deadlines",
        actions=(high(ActionType.GET_UPCOMING_DEADLINES),),
        patterns=(r"\bdeadlines?\b", r"\bdue soon\b", r"\bupcoming\b"),
    ),
    IntentRule(
        name="project_health",
        category="health",
        actions=(high(ActionType.GET_PROJECT_HEALTH),),
        patterns=(
            r"\bproject health\b",
            r"\bhealth of\b",
            r"\bhow (is|are) .*\b(doing|going)\b",
            r"\bprogress\b",
        ),
    ),
    IntentRule(
        name="team_workload",
        category="workload",
        actions=(high(ActionType.GET_TEAM_WORKLOAD),),
        patterns=(r"\bworkload\b", r"\bcapacity\b", r"\bbandwidth\b", r"\bwho is (busy|overloaded)\b"),
    ),
    IntentRule(
        name="list_sprints",
        category="sprints",
        actions=(high(ActionType.LIST_SPRINTS),),
        patterns=(r"\bsprints?\b",),
    ),
    IntentRule(
        name="list_bugs",
        category="bugs",
        actions=(high(ActionType.LIST_BUGS),),
        patterns=(r"\bbugs?\b", r"\bdefects?\b"),
    ),
    IntentRule(
        name="project_tasks",
        category="projects",
        actions=(high(ActionType.LIST_PROJECT_TASKS),),
        matcher=_is_project_task_listing,
    ),
    IntentRule(
        name="project_details",
        category="projects",
        actions=(high(ActionType.GET_PROJECT_DETAILS),),
        patterns=(
            r"\b(details|about|info|information|overview)\b.*\bproject\b",
            r"\bproject\b.*\b(details|info|information|overview)\b",
        ),
    ),
    IntentRule(
        name="team_members",
        category="team",
        actions=(high(ActionType.LIST_TEAM_MEMBERS),),
        patterns=(r"\bteam members?\b", r"\bwho is on (the|my|our) team\b", r"\bteammates\b"),
    ),
)


NOUN_RULES: tuple[tuple[str, Action], ...] = (
    (r"\bprojects?\b", high(ActionType.LIST_PROJECTS)),
    (r"\btasks?\b", high(ActionType.LIST_TASKS)),
    (r"\b(team|members?)\b", high(ActionType.LIST_TEAM_MEMBERS)),
)
