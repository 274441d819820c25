from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ActionType(str, Enum):
    CREATE_TASK = "createTask"
    CONTINUE_TASK_CREATION = "continueTaskCreation"
    CONFIRM_TASK_CREATION = "confirmTaskCreation"
    CANCEL_TASK_CREATION = "cancelTaskCreation"
    HANDLE_CLARIFICATION = "handleClarification"
    CANCEL_CLARIFICATION = "cancelClarification"
    REASSIGN_TASK = "reassignTask"
    LIST_MY_TASKS = "listMyTasks"
    LIST_USER_TASKS = "listUserTasks"
    GET_TASKS_BY_TIMEFRAME = "getTasksByTimeframe"
    GET_COMPLETED_THIS_WEEK = "getCompletedThisWeek"
    GET_COMPLETED_THIS_MONTH = "getCompletedThisMonth"
    GET_OVERDUE_TASKS = "getOverdueTasks"
    GET_UPCOMING_DEADLINES = "getUpcomingDeadlines"
    GET_PROJECT_HEALTH = "getProjectHealth"
    GET_TEAM_WORKLOAD = "getTeamWorkload"
    CREATE_SPRINT = "createSprint"
    LIST_SPRINTS = "listSprints"
    CREATE_BUG = "createBug"
    LIST_BUGS = "listBugs"
    LIST_PROJECTS = "listProjects"
    LIST_PROJECT_TASKS = "listProjectTasks"
    LIST_TASKS = "listTasks"
    LIST_TEAM_MEMBERS = "listTeamMembers"
    GET_PROJECT_DETAILS = "getProjectDetails"


class ActionPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {ActionPriority.HIGH: 0, ActionPriority.MEDIUM: 1, ActionPriority.LOW: 2}


@dataclass(frozen=True)
class Action:
    type: ActionType
    priority: ActionPriority = ActionPriority.HIGH

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "priority": self.priority.value}


def high(action_type: ActionType) -> Action:
    return Action(action_type, ActionPriority.HIGH)


def medium(action_type: ActionType) -> Action:
    return Action(action_type, ActionPriority.MEDIUM)


def low(action_type: ActionType) -> Action:
    return Action(action_type, ActionPriority.LOW)
