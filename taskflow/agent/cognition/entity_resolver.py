from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from taskflow.agent.cognition.conversation_state import Candidate
from taskflow.agent.cognition.keywords import split_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    id: str
    first_name: str
    last_name: str = ""
    email: str = ""
    external_id: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def as_candidate(self) -> Candidate:
        return Candidate(id=self.id, display_name=self.full_name, description=self.email or None)


@dataclass(frozen=True)
class ProjectRecord:
    id: str
    name: str
    description: str | None = None

    def as_candidate(self) -> Candidate:
        return Candidate(id=self.id, display_name=self.name, description=self.description or None)


@dataclass(frozen=True)
class TaskRecord:
    id: str
    title: str
    project_id: str | None = None
    project_name: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    status: str | None = None
    due_date: str | None = None

    def as_candidate(self) -> Candidate:
        details = [item for item in (self.project_name, self.assignee_name, self.status) if item]
        return Candidate(id=self.id, display_name=self.title, description=", ".join(details) or None)


class EntityDirectory(Protocol):
    async def users(self) -> list[UserRecord]: ...

    async def projects(self) -> list[ProjectRecord]: ...

    async def tasks(
        self,
        *,
        project_id: str | None = None,
        assignee_id: str | None = None,
    ) -> list[TaskRecord]: ...


@dataclass
class Resolution:
    candidates: list[Candidate] = field(default_factory=list)

    @property
    def status(self) -> str:
        if not self.candidates:
            return "not_found"
        if len(self.candidates) == 1:
            return "resolved"
        return "ambiguous"

    @property
    def single(self) -> Candidate | None:
        return self.candidates[0] if len(self.candidates) == 1 else None


class EntityResolver:
    def __init__(self, directory: EntityDirectory) -> None:
        self._directory = directory

    async def resolve_user(self, name_or_email: str) -> Resolution:
        query = _normalize(name_or_email)
        if not query:
            return Resolution()
        users = await self._directory.users()

        if "@" in query:
            by_email = [user for user in users if user.email.lower() == query]
            if by_email:
                return _resolution(user.as_candidate() for user in by_email)

        first, last = split_name(query)
        tiers = []
        if last:
            tiers.append(
                lambda user: user.first_name.lower() == first and user.last_name.lower() == last
            )
        tiers.extend(
            [
                lambda user: first in user.first_name.lower(),
                lambda user: bool(user.last_name) and (last or first) in user.last_name.lower(),
                lambda user: _squash(query) in _squash(user.full_name),
            ]
        )
        for index, matches in enumerate(tiers):
            found = [user for user in users if matches(user)]
            if found:
                logger.debug("resolver user query=%s tier=%s matches=%s", query, index, len(found))
                return _resolution(user.as_candidate() for user in found)
        logger.info("resolver user not found query=%s", query)
        return Resolution()

    async def resolve_project(self, name: str) -> Resolution:
        query = _normalize(name)
        if not query:
            return Resolution()
        projects = await self._directory.projects()
        exact = [item for item in projects if item.name.lower() == query]
        if len(exact) == 1:
            return _resolution(item.as_candidate() for item in exact)
        found = [item for item in projects if query in item.name.lower()]
        if not found:
            logger.info("resolver project not found query=%s", query)
        return _resolution(item.as_candidate() for item in found)

    async def resolve_task(
        self,
        reference: str,
        *,
        project_id: str | None = None,
        assignee_id: str | None = None,
    ) -> Resolution:
        query = _normalize(reference)
        if not query:
            return Resolution()
        tasks = await self._directory.tasks(project_id=project_id, assignee_id=assignee_id)
        exact = [item for item in tasks if item.title.lower() == query]
        if len(exact) == 1:
            return _resolution(item.as_candidate() for item in exact)
        found = [item for item in tasks if query in item.title.lower()]
        if not found:
            logger.info(
                "resolver task not found query=%s project_id=%s assignee_id=%s",
                query,
                project_id,
                assignee_id,
            )
        return _resolution(item.as_candidate() for item in found)

    async def list_projects(self, limit: int = 5) -> list[Candidate]:
        projects = await self._directory.projects()
        return [item.as_candidate() for item in projects[:limit]]


class InMemoryDirectory:
    def __init__(
        self,
        *,
        users: list[UserRecord] | None = None,
        projects: list[ProjectRecord] | None = None,
        tasks: list[TaskRecord] | None = None,
    ) -> None:
        self._users = list(users or [])
        self._projects = list(projects or [])
        self._tasks = list(tasks or [])

    async def users(self) -> list[UserRecord]:
        return list(self._users)

    async def projects(self) -> list[ProjectRecord]:
        return list(self._projects)

    async def tasks(
        self,
        *,
        project_id: str | None = None,
        assignee_id: str | None = None,
    ) -> list[TaskRecord]:
        return [
            item
            for item in self._tasks
            if (project_id is None or item.project_id == project_id)
            and (assignee_id is None or item.assignee_id == assignee_id)
        ]


class SqliteDirectory:
    """Read-only view over the workspace tables."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)

    async def users(self) -> list[UserRecord]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT id, first_name, last_name, email, external_id FROM users ORDER BY first_name, last_name",
            (),
        )
        return [
            UserRecord(
                id=str(row[0]),
                first_name=str(row[1] or ""),
                last_name=str(row[2] or ""),
                email=str(row[3] or ""),
                external_id=str(row[4]) if row[4] is not None else None,
            )
            for row in rows
        ]

    async def projects(self) -> list[ProjectRecord]:
        rows = await asyncio.to_thread(
            self._query,
            "SELECT id, name, description FROM projects ORDER BY name",
            (),
        )
        return [ProjectRecord(id=str(row[0]), name=str(row[1] or ""), description=row[2]) for row in rows]

    async def tasks(
        self,
        *,
        project_id: str | None = None,
        assignee_id: str | None = None,
    ) -> list[TaskRecord]:
        clauses: list[str] = []
        params: list[str] = []
        if project_id is not None:
            clauses.append("t.project_id = ?")
            params.append(project_id)
        if assignee_id is not None:
            clauses.append("t.assignee_id = ?")
            params.append(assignee_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await asyncio.to_thread(
            self._query,
            f"""
            SELECT t.id, t.title, t.project_id, p.name, t.assignee_id,
                   TRIM(COALESCE(u.first_name, '') || ' ' || COALESCE(u.last_name, '')),
                   t.status, t.due_date
            FROM tasks t
            LEFT JOIN projects p ON p.id = t.project_id
            LEFT JOIN users u ON u.id = t.assignee_id
            {where}
            ORDER BY t.title
            """,
            tuple(params),
        )
        return [
            TaskRecord(
                id=str(row[0]),
                title=str(row[1] or ""),
                project_id=row[2],
                project_name=row[3],
                assignee_id=row[4],
                assignee_name=row[5] or None,
                status=row[6],
                due_date=row[7],
            )
            for row in rows
        ]

    def _query(self, sql: str, params: tuple) -> list[tuple]:
        with sqlite3.connect(self._db_path) as conn:
            return conn.execute(sql, params).fetchall()


def apply_directory_schema(db_path: Path | str) -> None:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(path) as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
              id TEXT PRIMARY KEY,
              first_name TEXT NOT NULL,
              last_name TEXT,
              email TEXT,
              external_id TEXT UNIQUE
            );
            CREATE TABLE IF NOT EXISTS projects (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              description TEXT
            );
            CREATE TABLE IF NOT EXISTS tasks (
              id TEXT PRIMARY KEY,
              title TEXT NOT NULL,
              project_id TEXT REFERENCES projects(id),
              assignee_id TEXT REFERENCES users(id),
              status TEXT,
              due_date TEXT
            );
            """
        )
        conn.commit()


def _resolution(candidates) -> Resolution:
    unique: dict[str, Candidate] = {}
    for item in candidates:
        unique.setdefault(item.id, item)
    return Resolution(candidates=list(unique.values()))


def _normalize(value: str | None) -> str:
    return re.sub(r"\s+", " ", str(value or "").strip()).lower()


def _squash(value: str) -> str:
    return re.sub(r"\s+", "", value.lower())
