"""Minimal task service spoken to over MCP stdio by the transport tests.

Usage: python stdio_task_server.py [projects_delay_seconds]
"""

from __future__ import annotations

import asyncio
import sys

from mcp.server.fastmcp import FastMCP

PROJECTS_DELAY_SECONDS = float(sys.argv[1]) if len(sys.argv) > 1 else 0.0

mcp = FastMCP("taskflow-test-service")


@mcp.tool(name="listProjects")
async def list_projects() -> str:
    await asyncio.sleep(PROJECTS_DELAY_SECONDS)
    return "1. Website Redesign\n2. Mobile App"


@mcp.tool(name="listTasks")
def list_tasks(assigneeId: str | None = None, projectId: str | None = None, status: str | None = None) -> str:
    owner = assigneeId or projectId or "everyone"
    suffix = f" [{status}]" if status else ""
    return f"1. Fix login bug ({owner}){suffix}"


@mcp.tool(name="getTaskSummary")
def get_task_summary(userId: str, timeframe: str = "this_week") -> str:
    return f"3 open tasks for {userId} ({timeframe})"


@mcp.tool(name="getOverdueTasks")
def get_overdue_tasks(userId: str | None = None) -> str:
    return "No overdue tasks"


@mcp.tool(name="getUpcomingDeadlines")
def get_upcoming_deadlines(userId: str | None = None, timeframe: str | None = None, days: int | None = None) -> str:
    return "Write API docs due Friday"


@mcp.tool(name="getCompletionSummary")
def get_completion_summary(userId: str, period: str = "week") -> str:
    return f"2 tasks completed this {period}"


if __name__ == "__main__":
    mcp.run(transport="stdio")
