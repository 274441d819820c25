from __future__ import annotations

import logging
import re

from taskflow.agent.cognition import dates, keywords
from taskflow.agent.cognition.conversation_state import (
    REQUIRED_TASK_FIELDS,
    Candidate,
    PendingTask,
)
from taskflow.agent.cognition.dispatch_context import DispatchContext, ToolOutcome
from taskflow.agent.cognition.parameter_extractor import rule_hints
from taskflow.agent.cortex.transitions import (
    CANCEL_TASK,
    COMPLETE_TASK,
    apply_transition,
    begin_task,
    update_task,
)
from taskflow.agent.tools import catalog

logger = logging.getLogger(__name__)

MAX_PROJECT_OPTIONS = 5
FLOW_TOOL_NAME = "taskCreation"

_ASSIGNEE = re.compile(
    r"\bassign(?:ed)?\s+(?:it\s+)?to\s+(?P<name>[\w.@' -]+?)\s*(?:[,.!?]|$|\b(?:with|due|by|in)\b)",
    re.IGNORECASE,
)


async def start_task_creation(ctx: DispatchContext) -> ToolOutcome:
    today = dates.today_in()
    extracted = await ctx.services.extractor.extract(ctx.message, ctx.history)
    params = extracted.merged_with(rule_hints(ctx.message, today))
    logger.info(
        "task creation start caller=%s extracted=%s",
        ctx.caller_id,
        ",".join(sorted(params.to_dict())) or "none",
    )

    task = PendingTask(
        title=params.title,
        priority=params.priority,
        due_date=params.due_date,
        missing_fields=[name for name in REQUIRED_TASK_FIELDS if name != "title" or not params.title],
    )
    notes: list[str] = []
    await _bind_project(ctx, task, params.project_name, notes)
    if params.assignee_name:
        await _bind_assignee(ctx, task, params.assignee_name, notes)

    apply_transition(ctx.state, begin_task(task))
    return _render(task, notes)


async def continue_task_creation(ctx: DispatchContext) -> ToolOutcome:
    task = ctx.state.pending_task
    if task is None:
        return ToolOutcome(FLOW_TOOL_NAME, "There is no task being created right now.")
    message = ctx.message
    notes: list[str] = []
    updated = False

    selection = keywords.parse_leading_int(message)
    if selection is not None and "project" in task.missing_fields and task.project_options:
        options = task.project_options
        if not 1 <= selection <= len(options):
            notes.append(f"Please pick a project number between 1 and {len(options)}.")
            return _render(task, notes)
        chosen = options[selection - 1]
        task.fill("project", project_id=chosen.id, project_name=chosen.display_name, project_options=[])
        updated = True

    priority = keywords.detect_priority(message)
    if priority:
        task.priority = priority
        updated = True

    if dates.mentions_date(message):
        due_date = dates.resolve_due_date(message, dates.today_in())
        if due_date:
            task.due_date = due_date
            updated = True

    assignee = _ASSIGNEE.search(message)
    if assignee:
        await _bind_assignee(ctx, task, assignee.group("name"), notes)
        updated = True

    project_name = keywords.extract_project_phrase(message)
    if project_name:
        await _bind_project(ctx, task, project_name, notes)
        updated = True

    if not updated:
        reply = " ".join(message.split()).strip(" .!?")
        if "title" in task.missing_fields and reply:
            task.fill("title", title=reply)
        elif "project" in task.missing_fields and reply:
            await _bind_project(ctx, task, reply, notes)
        else:
            notes.append("I didn't find anything to change in that message.")

    apply_transition(ctx.state, update_task(task))
    return _render(task, notes)


async def confirm_task_creation(ctx: DispatchContext) -> ToolOutcome:
    task = ctx.state.pending_task
    if task is None:
        return ToolOutcome(FLOW_TOOL_NAME, "There is no task waiting for confirmation.")
    if task.missing_fields:
        return _render(task, [])

    title, project_name, assignee_name = task.title, task.project_name, task.assignee_name
    result = await ctx.call(
        catalog.CREATE_TASK,
        {
            "title": task.title,
            "description": task.description,
            "projectId": task.project_id,
            "priority": task.priority,
            "assigneeId": task.assignee_id,
            "dueDate": task.due_date,
        },
    )
    apply_transition(ctx.state, COMPLETE_TASK)
    logger.info("task creation completed caller=%s project=%s", ctx.caller_id, project_name)

    lines = [f'Created task "{title}" in {project_name}.']
    if assignee_name:
        lines.append(f"Assigned to {assignee_name}.")
    if result.content_text:
        lines.append(result.content_text)
    return ToolOutcome(catalog.CREATE_TASK, "\n".join(lines))


async def cancel_task_creation(ctx: DispatchContext) -> ToolOutcome:
    if ctx.state.pending_task is None:
        return ToolOutcome(FLOW_TOOL_NAME, "There is no task being created right now.")
    apply_transition(ctx.state, CANCEL_TASK)
    return ToolOutcome(FLOW_TOOL_NAME, "Task creation cancelled. Nothing was created.")


def render_summary(task: PendingTask) -> str:
    lines = [
        "Here is the task I'm about to create:",
        f"- Title: {task.title}",
        f"- Project: {task.project_name}",
        f"- Assignee: {task.assignee_name or 'Unassigned'}",
        f"- Priority: {task.priority or 'medium'}",
        f"- Due date: {task.due_date or 'None'}",
        'Reply "create" to confirm or "cancel" to discard it.',
    ]
    return "\n".join(lines)


def render_missing_prompt(task: PendingTask) -> str:
    lines: list[str] = []
    if task.title:
        lines.append(f'Creating task "{task.title}".')
    if "title" in task.missing_fields:
        lines.append("What should the task be called?")
    if "project" in task.missing_fields:
        if task.project_options:
            lines.append("Which project should it go in? Reply with a number:")
            lines.extend(
                f"{index}. {option.render()}"
                for index, option in enumerate(task.project_options, start=1)
            )
        else:
            lines.append("Which project should it go in?")
    lines.append('You can also set a priority, a due date, or say "cancel".')
    return "\n".join(lines)


async def _bind_project(
    ctx: DispatchContext,
    task: PendingTask,
    project_name: str | None,
    notes: list[str],
) -> None:
    resolver = ctx.services.resolver
    if project_name:
        resolution = await resolver.resolve_project(project_name)
        if resolution.single is not None:
            chosen = resolution.single
            task.fill("project", project_id=chosen.id, project_name=chosen.display_name, project_options=[])
            return
        if resolution.candidates:
            notes.append(f'More than one project matches "{project_name}".')
            _offer_projects(task, resolution.candidates)
            return
        notes.append(f'I could not find a project called "{project_name}".')
    _offer_projects(task, await resolver.list_projects(MAX_PROJECT_OPTIONS))


def _offer_projects(task: PendingTask, options: list[Candidate]) -> None:
    task.project_id = None
    task.project_name = None
    task.project_options = list(options[:MAX_PROJECT_OPTIONS])
    if "project" not in task.missing_fields:
        task.missing_fields.append("project")


async def _bind_assignee(
    ctx: DispatchContext,
    task: PendingTask,
    assignee_name: str,
    notes: list[str],
) -> None:
    name = assignee_name.strip()
    if name.lower() in {"me", "myself"}:
        profile = await ctx.services.identity.get_profile(ctx.caller_id)
        if profile.internal_id:
            task.assignee_id = profile.internal_id
            task.assignee_name = profile.display_name or "you"
            return
    resolution = await ctx.services.resolver.resolve_user(name)
    if resolution.single is not None:
        task.assignee_id = resolution.single.id
        task.assignee_name = resolution.single.display_name
        return
    if resolution.candidates:
        listed = ", ".join(item.render() for item in resolution.candidates)
        notes.append(f'Several people match "{name}" ({listed}). Say "assign to" with a full name.')
    else:
        notes.append(f'I could not find a user called "{name}", so the task stays unassigned.')


def _render(task: PendingTask, notes: list[str]) -> ToolOutcome:
    body = render_missing_prompt(task) if task.missing_fields else render_summary(task)
    text = "\n".join([*notes, body]) if notes else body
    tool_name = catalog.LIST_PROJECTS if task.project_options else FLOW_TOOL_NAME
    return ToolOutcome(tool_name, text)
