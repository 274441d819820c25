from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from taskflow.agent.cognition import dates, disambiguation, keywords, task_creation
from taskflow.agent.cognition.actions import ActionType
from taskflow.agent.cognition.conversation_state import (
    ClarificationKind,
    PendingClarification,
)
from taskflow.agent.cognition.dispatch_context import DispatchContext, ToolOutcome
from taskflow.agent.cognition.entity_resolver import Resolution
from taskflow.agent.cortex.transitions import (
    CANCEL_CLARIFICATION,
    RESOLVE_CLARIFICATION,
    apply_transition,
    begin_clarification,
)
from taskflow.agent.tools import catalog

logger = logging.getLogger(__name__)

Handler = Callable[[DispatchContext], Awaitable[ToolOutcome]]
Flow = Callable[[DispatchContext, dict[str, Any]], Awaitable[ToolOutcome]]

_SLOT_BY_KIND = {
    ClarificationKind.USER_SEARCH: "user",
    ClarificationKind.TASK_SEARCH: "task",
    ClarificationKind.PROJECT_SEARCH: "project",
}
_NOT_FOUND_TOOL = {
    ClarificationKind.USER_SEARCH: catalog.FIND_USER,
    ClarificationKind.TASK_SEARCH: catalog.LIST_TASKS,
    ClarificationKind.PROJECT_SEARCH: catalog.LIST_PROJECTS,
}
_NOT_FOUND_TEXT = {
    ClarificationKind.USER_SEARCH: 'I could not find a user named "{query}". Please check the spelling and try again.',
    ClarificationKind.TASK_SEARCH: 'I could not find a task matching "{query}". Please check the title and try again.',
    ClarificationKind.PROJECT_SEARCH: 'I could not find a project named "{query}". Please check the name and try again.',
}
_TIMEFRAME_LABELS = {
    "today": "today",
    "this_week": "this week",
    "next_week": "next week",
    "this_month": "this month",
}


# Entity slots shared by the multi-step flows


async def _require(
    ctx: DispatchContext,
    params: dict[str, Any],
    *,
    kind: ClarificationKind,
    target: ActionType,
    query: str,
    resolve: Callable[[str], Awaitable[Resolution]],
) -> ToolOutcome | None:
    """Resolve one entity slot, or return the outcome that stops the flow."""
    slot = _SLOT_BY_KIND[kind]
    if params.get(f"{slot}_id"):
        return None
    resolution = await resolve(query)
    if resolution.single is not None:
        params[f"{slot}_id"] = resolution.single.id
        params[f"{slot}_name"] = resolution.single.display_name
        return None
    if not resolution.candidates:
        return ToolOutcome(_NOT_FOUND_TOOL[kind], _NOT_FOUND_TEXT[kind].format(query=query))
    clarification = PendingClarification(
        kind=kind,
        original_message=str(params.get("original_message") or ctx.message),
        target_action=target.value,
        candidates=resolution.candidates,
        extracted_params=dict(params),
    )
    apply_transition(ctx.state, begin_clarification(clarification))
    logger.info(
        "clarification opened caller=%s kind=%s target=%s candidates=%s",
        ctx.caller_id,
        kind.value,
        target.value,
        len(resolution.candidates),
    )
    return ToolOutcome(_NOT_FOUND_TOOL[kind], disambiguation.present(resolution.candidates, kind, query))


# Clarification-capable flows: each re-runs from params after a selection


async def _reassign_flow(ctx: DispatchContext, params: dict[str, Any]) -> ToolOutcome:
    resolver = ctx.services.resolver
    stop = await _require(
        ctx,
        params,
        kind=ClarificationKind.USER_SEARCH,
        target=ActionType.REASSIGN_TASK,
        query=params["assignee_query"],
        resolve=resolver.resolve_user,
    )
    if stop is not None:
        return stop
    stop = await _require(
        ctx,
        params,
        kind=ClarificationKind.TASK_SEARCH,
        target=ActionType.REASSIGN_TASK,
        query=params["task_query"],
        resolve=resolver.resolve_task,
    )
    if stop is not None:
        return stop
    result = await ctx.call(
        catalog.UPDATE_TASK,
        {"taskId": params["task_id"], "assigneeId": params["user_id"]},
    )
    text = f'Reassigned "{params["task_name"]}" to {params["user_name"]}.'
    if result.content_text:
        text = f"{text}\n{result.content_text}"
    return ToolOutcome(catalog.UPDATE_TASK, text)


async def _user_tasks_flow(ctx: DispatchContext, params: dict[str, Any]) -> ToolOutcome:
    stop = await _require(
        ctx,
        params,
        kind=ClarificationKind.USER_SEARCH,
        target=ActionType.LIST_USER_TASKS,
        query=params["user_query"],
        resolve=ctx.services.resolver.resolve_user,
    )
    if stop is not None:
        return stop
    text = await ctx.call_text(catalog.LIST_TASKS, {"assigneeId": params["user_id"]})
    return ToolOutcome(catalog.LIST_TASKS, f"Tasks for {params['user_name']}:\n{text or 'No tasks found.'}")


async def _sprint_flow(ctx: DispatchContext, params: dict[str, Any]) -> ToolOutcome:
    stop = await _require_project(ctx, params, ActionType.CREATE_SPRINT)
    if stop is not None:
        return stop
    start, end = dates.sprint_window(dates.today_in(), int(params.get("weeks") or 2))
    name = params.get("name") or f"{params['project_name']} Sprint {start}"
    text = await ctx.call_text(
        catalog.CREATE_SPRINT,
        {
            "name": name,
            "projectId": params["project_id"],
            "startDate": start,
            "endDate": end,
        },
    )
    summary = f'Created sprint "{name}" in {params["project_name"]} from {start} to {end}.'
    return ToolOutcome(catalog.CREATE_SPRINT, f"{summary}\n{text}" if text else summary)


async def _bug_flow(ctx: DispatchContext, params: dict[str, Any]) -> ToolOutcome:
    stop = await _require_project(ctx, params, ActionType.CREATE_BUG)
    if stop is not None:
        return stop
    severity = str(params.get("severity") or "medium").upper()
    text = await ctx.call_text(
        catalog.CREATE_BUG,
        {
            "title": params["title"],
            "projectId": params["project_id"],
            "severity": severity,
            "priority": severity,
        },
    )
    summary = f'Reported bug "{params["title"]}" in {params["project_name"]}.'
    return ToolOutcome(catalog.CREATE_BUG, f"{summary}\n{text}" if text else summary)


async def _project_tasks_flow(ctx: DispatchContext, params: dict[str, Any]) -> ToolOutcome:
    stop = await _require_project(ctx, params, ActionType.LIST_PROJECT_TASKS)
    if stop is not None:
        return stop
    text = await ctx.call_text(catalog.LIST_TASKS, {"projectId": params["project_id"]})
    return ToolOutcome(catalog.LIST_TASKS, f"Tasks in {params['project_name']}:\n{text or 'No tasks found.'}")


async def _require_project(
    ctx: DispatchContext,
    params: dict[str, Any],
    target: ActionType,
) -> ToolOutcome | None:
    resolver = ctx.services.resolver
    query = params.get("project_query")
    if query or params.get("project_id"):
        return await _require(
            ctx,
            params,
            kind=ClarificationKind.PROJECT_SEARCH,
            target=target,
            query=str(query or ""),
            resolve=resolver.resolve_project,
        )
    projects = await resolver.list_projects(limit=task_creation.MAX_PROJECT_OPTIONS)
    if len(projects) == 1:
        params["project_id"] = projects[0].id
        params["project_name"] = projects[0].display_name
        return None
    if not projects:
        return ToolOutcome(catalog.LIST_PROJECTS, "There are no projects yet. Create a project first.")
    clarification = PendingClarification(
        kind=ClarificationKind.PROJECT_SEARCH,
        original_message=str(params.get("original_message") or ctx.message),
        target_action=target.value,
        candidates=projects,
        extracted_params=dict(params),
    )
    apply_transition(ctx.state, begin_clarification(clarification))
    return ToolOutcome(
        catalog.LIST_PROJECTS,
        disambiguation.present(projects, ClarificationKind.PROJECT_SEARCH),
    )


CLARIFICATION_FLOWS: dict[str, Flow] = {
    ActionType.REASSIGN_TASK.value: _reassign_flow,
    ActionType.LIST_USER_TASKS.value: _user_tasks_flow,
    ActionType.CREATE_SPRINT.value: _sprint_flow,
    ActionType.CREATE_BUG.value: _bug_flow,
    ActionType.LIST_PROJECT_TASKS.value: _project_tasks_flow,
}


# Entry handlers


async def reassign_task(ctx: DispatchContext) -> ToolOutcome:
    parsed = keywords.parse_reassignment(ctx.message)
    if parsed is None:
        return ToolOutcome(
            catalog.UPDATE_TASK,
            'Tell me which task and who should take it, for example "assign the login task to Sarah".',
        )
    params = {
        "original_message": ctx.message,
        "task_query": parsed.task_ref,
        "assignee_query": parsed.assignee_ref,
    }
    return await _reassign_flow(ctx, params)


async def list_user_tasks(ctx: DispatchContext) -> ToolOutcome:
    name = keywords.parse_user_task_query(ctx.message)
    if not name:
        return await list_my_tasks(ctx)
    return await _user_tasks_flow(ctx, {"original_message": ctx.message, "user_query": name})


async def create_sprint(ctx: DispatchContext) -> ToolOutcome:
    params = {
        "original_message": ctx.message,
        "project_query": keywords.extract_project_phrase(ctx.message),
        "weeks": keywords.parse_sprint_weeks(ctx.message),
        "name": keywords.extract_quoted_title(ctx.message),
    }
    return await _sprint_flow(ctx, params)


async def create_bug(ctx: DispatchContext) -> ToolOutcome:
    title = keywords.extract_quoted_title(ctx.message)
    project_query = keywords.extract_project_phrase(ctx.message)
    if not title or not project_query:
        extracted = await ctx.services.extractor.extract(ctx.message, ctx.history)
        title = title or extracted.title
        project_query = project_query or extracted.project_name
    if not title:
        return ToolOutcome(
            catalog.CREATE_BUG,
            'What is the bug? For example: report a bug "Login button unresponsive" in the Website project.',
        )
    params = {
        "original_message": ctx.message,
        "title": title,
        "project_query": project_query,
        "severity": keywords.detect_priority(ctx.message),
    }
    return await _bug_flow(ctx, params)


async def list_project_tasks(ctx: DispatchContext) -> ToolOutcome:
    name = keywords.extract_tasks_project(ctx.message) or keywords.extract_project_phrase(ctx.message)
    if not name:
        return await list_tasks(ctx)
    return await _project_tasks_flow(ctx, {"original_message": ctx.message, "project_query": name})


async def handle_clarification(ctx: DispatchContext) -> ToolOutcome:
    clarification = ctx.state.pending_clarification
    if clarification is None:
        return ToolOutcome("clarification", "There is nothing waiting for a choice right now.")
    chosen = disambiguation.resolve_selection(ctx.message, clarification)
    if chosen is None:
        return ToolOutcome("clarification", disambiguation.reprompt(clarification))
    flow = CLARIFICATION_FLOWS.get(clarification.target_action)
    if flow is None:
        apply_transition(ctx.state, CANCEL_CLARIFICATION)
        logger.warning(
            "clarification target unknown caller=%s target=%s",
            ctx.caller_id,
            clarification.target_action,
        )
        return ToolOutcome("clarification", "Sorry, I lost track of what that choice was for. Please ask again.")

    params = dict(clarification.extracted_params)
    slot = _SLOT_BY_KIND[clarification.kind]
    params[f"{slot}_id"] = chosen.id
    params[f"{slot}_name"] = chosen.display_name
    apply_transition(ctx.state, RESOLVE_CLARIFICATION)
    logger.info(
        "clarification resolved caller=%s kind=%s target=%s",
        ctx.caller_id,
        clarification.kind.value,
        clarification.target_action,
    )
    return await flow(ctx, params)


async def cancel_clarification(ctx: DispatchContext) -> ToolOutcome:
    if ctx.state.pending_clarification is not None:
        apply_transition(ctx.state, CANCEL_CLARIFICATION)
    return ToolOutcome("clarification", "Okay, cancelled. What would you like to do next?")


# Query handlers


async def list_my_tasks(ctx: DispatchContext) -> ToolOutcome:
    text = await ctx.call_text_with_identity(catalog.LIST_TASKS, lambda user_id: {"assigneeId": user_id})
    return ToolOutcome(catalog.LIST_TASKS, text or "You have no tasks assigned.")


async def get_tasks_by_timeframe(ctx: DispatchContext) -> ToolOutcome:
    timeframe = keywords.detect_timeframe(ctx.message) or "this_week"
    summary, tasks, overdue, deadlines = await ctx.gather(
        ctx.call_text_with_identity(
            catalog.GET_TASK_SUMMARY,
            lambda user_id: {"userId": user_id, "timeframe": timeframe},
        ),
        ctx.call_text_with_identity(catalog.LIST_TASKS, lambda user_id: {"assigneeId": user_id}),
        ctx.call_text_with_identity(catalog.GET_OVERDUE_TASKS, lambda user_id: {"userId": user_id}),
        ctx.call_text_with_identity(
            catalog.GET_UPCOMING_DEADLINES,
            lambda user_id: {"userId": user_id, "timeframe": timeframe},
        ),
    )
    label = _TIMEFRAME_LABELS.get(timeframe, timeframe)
    sections = [
        f"Summary for {label}:\n{summary or 'No summary available.'}",
        f"Your tasks:\n{tasks or 'No tasks found.'}",
        f"Overdue:\n{overdue or 'Nothing overdue.'}",
        f"Upcoming deadlines:\n{deadlines or 'No upcoming deadlines.'}",
    ]
    return ToolOutcome(catalog.GET_TASK_SUMMARY, "\n\n".join(sections))


async def get_completed_this_week(ctx: DispatchContext) -> ToolOutcome:
    return await _completion_view(ctx, "week")


async def get_completed_this_month(ctx: DispatchContext) -> ToolOutcome:
    return await _completion_view(ctx, "month")


async def _completion_view(ctx: DispatchContext, period: str) -> ToolOutcome:
    summary, done = await ctx.gather(
        ctx.call_text_with_identity(
            catalog.GET_COMPLETION_SUMMARY,
            lambda user_id: {"userId": user_id, "period": period},
        ),
        ctx.call_text_with_identity(
            catalog.LIST_TASKS,
            lambda user_id: {"assigneeId": user_id, "status": "done"},
        ),
    )
    text = (
        f"Completed this {period}:\n{summary or 'No summary available.'}\n\n"
        f"Finished tasks:\n{done or 'No completed tasks found.'}"
    )
    return ToolOutcome(catalog.GET_COMPLETION_SUMMARY, text)


async def get_overdue_tasks(ctx: DispatchContext) -> ToolOutcome:
    return ToolOutcome(catalog.GET_OVERDUE_TASKS, await ctx.call_text(catalog.GET_OVERDUE_TASKS))


async def get_upcoming_deadlines(ctx: DispatchContext) -> ToolOutcome:
    text = await ctx.call_text(catalog.GET_UPCOMING_DEADLINES, {"days": 7})
    return ToolOutcome(catalog.GET_UPCOMING_DEADLINES, text)


async def get_project_health(ctx: DispatchContext) -> ToolOutcome:
    project = keywords.extract_project_phrase(ctx.message)
    text = await ctx.call_text(catalog.GET_PROJECT_HEALTH, {"projectName": project})
    return ToolOutcome(catalog.GET_PROJECT_HEALTH, text)


async def get_team_workload(ctx: DispatchContext) -> ToolOutcome:
    return ToolOutcome(catalog.GET_TEAM_WORKLOAD, await ctx.call_text(catalog.GET_TEAM_WORKLOAD))


async def get_project_details(ctx: DispatchContext) -> ToolOutcome:
    project = keywords.extract_project_phrase(ctx.message)
    if not project:
        return await list_projects(ctx)
    text = await ctx.call_text(catalog.GET_PROJECT_DETAILS, {"projectName": project})
    return ToolOutcome(catalog.GET_PROJECT_DETAILS, text)


async def list_sprints(ctx: DispatchContext) -> ToolOutcome:
    project_id = await _optional_project_id(ctx)
    text = await ctx.call_text(catalog.LIST_SPRINTS, {"projectId": project_id})
    return ToolOutcome(catalog.LIST_SPRINTS, text)


async def list_bugs(ctx: DispatchContext) -> ToolOutcome:
    project_id = await _optional_project_id(ctx)
    text = await ctx.call_text(catalog.LIST_BUGS, {"projectId": project_id})
    return ToolOutcome(catalog.LIST_BUGS, text)


async def list_projects(ctx: DispatchContext) -> ToolOutcome:
    return ToolOutcome(catalog.LIST_PROJECTS, await ctx.call_text(catalog.LIST_PROJECTS))


async def list_tasks(ctx: DispatchContext) -> ToolOutcome:
    return ToolOutcome(catalog.LIST_TASKS, await ctx.call_text(catalog.LIST_TASKS))


async def list_team_members(ctx: DispatchContext) -> ToolOutcome:
    return ToolOutcome(catalog.LIST_TEAM_MEMBERS, await ctx.call_text(catalog.LIST_TEAM_MEMBERS))


async def _optional_project_id(ctx: DispatchContext) -> str | None:
    name = keywords.extract_project_phrase(ctx.message)
    if not name:
        return None
    resolution = await ctx.services.resolver.resolve_project(name)
    return resolution.single.id if resolution.single is not None else None


ACTION_HANDLERS: dict[ActionType, Handler] = {
    ActionType.CREATE_TASK: task_creation.start_task_creation,
    ActionType.CONTINUE_TASK_CREATION: task_creation.continue_task_creation,
    ActionType.CONFIRM_TASK_CREATION: task_creation.confirm_task_creation,
    ActionType.CANCEL_TASK_CREATION: task_creation.cancel_task_creation,
    ActionType.HANDLE_CLARIFICATION: handle_clarification,
    ActionType.CANCEL_CLARIFICATION: cancel_clarification,
    ActionType.REASSIGN_TASK: reassign_task,
    ActionType.LIST_MY_TASKS: list_my_tasks,
    ActionType.LIST_USER_TASKS: list_user_tasks,
    ActionType.GET_TASKS_BY_TIMEFRAME: get_tasks_by_timeframe,
    ActionType.GET_COMPLETED_THIS_WEEK: get_completed_this_week,
    ActionType.GET_COMPLETED_THIS_MONTH: get_completed_this_month,
    ActionType.GET_OVERDUE_TASKS: get_overdue_tasks,
    ActionType.GET_UPCOMING_DEADLINES: get_upcoming_deadlines,
    ActionType.GET_PROJECT_HEALTH: get_project_health,
    ActionType.GET_TEAM_WORKLOAD: get_team_workload,
    ActionType.CREATE_SPRINT: create_sprint,
    ActionType.LIST_SPRINTS: list_sprints,
    ActionType.CREATE_BUG: create_bug,
    ActionType.LIST_BUGS: list_bugs,
    ActionType.LIST_PROJECTS: list_projects,
    ActionType.LIST_PROJECT_TASKS: list_project_tasks,
    ActionType.LIST_TASKS: list_tasks,
    ActionType.LIST_TEAM_MEMBERS: list_team_members,
    ActionType.GET_PROJECT_DETAILS: get_project_details,
}
