from __future__ import annotations

import asyncio
import sqlite3

from taskflow.agent.cognition.entity_resolver import (
    EntityResolver,
    SqliteDirectory,
    apply_directory_schema,
)


def _ids(resolution) -> list[str]:
    return [item.id for item in resolution.candidates]


def test_user_by_email_is_exact(directory) -> None:
    resolver = EntityResolver(directory)

    result = asyncio.run(resolver.resolve_user("Sarah.Lee@example.com"))

    assert result.status == "resolved"
    assert result.single.id == "u-2"
    assert result.single.description == "sarah.lee@example.com"


def test_unknown_email_falls_through_to_name_tiers(directory) -> None:
    resolver = EntityResolver(directory)
    assert asyncio.run(resolver.resolve_user("nobody@example.com")).status == "not_found"


def test_user_first_name_is_ambiguous(directory) -> None:
    resolver = EntityResolver(directory)

    result = asyncio.run(resolver.resolve_user("Sarah"))

    assert result.status == "ambiguous"
    assert _ids(result) == ["u-1", "u-2"]
    assert [item.render() for item in result.candidates] == [
        "Sarah Connor - sarah.connor@example.com",
        "Sarah Lee - sarah.lee@example.com",
    ]


def test_user_full_name_and_last_name_tiers(directory) -> None:
    resolver = EntityResolver(directory)

    assert _ids(asyncio.run(resolver.resolve_user("sarah connor"))) == ["u-1"]
    assert _ids(asyncio.run(resolver.resolve_user("Smith"))) == ["u-3"]
    assert _ids(asyncio.run(resolver.resolve_user("mariagarcia"))) == ["u-4"]
    assert asyncio.run(resolver.resolve_user("Zed")).status == "not_found"
    assert asyncio.run(resolver.resolve_user("   ")).status == "not_found"


def test_resolution_is_repeatable(directory) -> None:
    resolver = EntityResolver(directory)

    first = asyncio.run(resolver.resolve_user("Sarah"))
    second = asyncio.run(resolver.resolve_user("Sarah"))

    assert first.candidates == second.candidates


def test_project_exact_match_beats_substring(directory) -> None:
    resolver = EntityResolver(directory)

    assert _ids(asyncio.run(resolver.resolve_project("website redesign"))) == ["p-1"]
    assert _ids(asyncio.run(resolver.resolve_project("Website"))) == ["p-1", "p-6"]
    assert asyncio.run(resolver.resolve_project("Payroll")).status == "not_found"


def test_task_search_can_be_scoped(directory) -> None:
    resolver = EntityResolver(directory)

    assert _ids(asyncio.run(resolver.resolve_task("login"))) == ["t-1"]
    assert _ids(asyncio.run(resolver.resolve_task("landing page"))) == ["t-3", "t-4"]
    assert _ids(asyncio.run(resolver.resolve_task("landing page", project_id="p-1"))) == ["t-3"]
    assert _ids(asyncio.run(resolver.resolve_task("landing", assignee_id="u-1"))) == ["t-4"]


def test_list_projects_respects_limit(directory) -> None:
    resolver = EntityResolver(directory)

    options = asyncio.run(resolver.list_projects(limit=5))

    assert [item.id for item in options] == ["p-1", "p-2", "p-3", "p-4", "p-5"]


def test_sqlite_directory_reads_workspace_tables(tmp_path) -> None:
    db_path = tmp_path / "workspace.db"
    apply_directory_schema(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.executemany(
            "INSERT INTO users (id, first_name, last_name, email, external_id) VALUES (?, ?, ?, ?, ?)",
            [
                ("u-1", "Sarah", "Connor", "sarah@example.com", "ext-1"),
                ("u-2", "John", "Smith", "john@example.com", None),
            ],
        )
        conn.execute("INSERT INTO projects (id, name, description) VALUES ('p-1', 'Mobile App', NULL)")
        conn.execute(
            "INSERT INTO tasks (id, title, project_id, assignee_id, status) "
            "VALUES ('t-1', 'Fix login bug', 'p-1', 'u-2', 'todo')"
        )
        conn.commit()

    resolver = EntityResolver(SqliteDirectory(db_path))

    assert _ids(asyncio.run(resolver.resolve_user("john"))) == ["u-2"]
    assert _ids(asyncio.run(resolver.resolve_project("mobile"))) == ["p-1"]
    task = asyncio.run(resolver.resolve_task("login")).single
    assert task is not None
    assert task.render() == "Fix login bug - Mobile App, John Smith, todo"
