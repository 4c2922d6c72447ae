"""Shared pytest fixtures: a file-backed SQLite database per test and a bootstrapped team."""

from __future__ import annotations

import threading
from typing import Any, Callable, Iterable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.engine import Engine

from contentflow import content, roles, teams
from contentflow.db import get_engine, make_engine
from contentflow.main import app
from contentflow.models import Content, Role
from contentflow.schema import create_schema

TEAM_ID = "team-acme"
OWNER = "user-owner"


@pytest.fixture()
def engine(tmp_path) -> Engine:
    eng = make_engine(f"sqlite:///{tmp_path / 'contentflow.sqlite'}")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def team(engine: Engine) -> str:
    teams.bootstrap_team(engine, TEAM_ID, "Acme", OWNER)
    return TEAM_ID


@pytest.fixture()
def space(engine: Engine, team: str) -> str:
    return teams.register_space(engine, team, "Blog", space_id="space-blog")


@pytest.fixture()
def make_member(engine: Engine, team: str) -> Callable[..., Role]:
    """Create a custom role with exactly `grants` and bind `user_id` to it."""

    def _make(user_id: str, grants: Iterable[str], name: str | None = None) -> Role:
        role = roles.create_role(engine, team, name or f"role-{user_id}", list(grants), OWNER)
        teams.set_member_role(engine, team, user_id, role.id, OWNER)
        return role

    return _make


@pytest.fixture()
def draft(engine: Engine, space: str) -> Content:
    return content.create_content(engine, space, "Launch announcement", OWNER)


@pytest.fixture()
def force_status(engine: Engine) -> Callable[[str, str], None]:
    """Put content into a status directly, bypassing the edge table."""

    def _force(content_id: str, status: str) -> None:
        with engine.begin() as conn:
            conn.execute(
                text("UPDATE content_items SET status = :status WHERE id = :id"),
                {"status": status, "id": content_id},
            )

    return _force


def role_by_name(engine: Engine, team_id: str, name: str) -> Role:
    return next(r for r in roles.list_roles(engine, team_id) if r.name == name)


def event_types(engine: Engine, content_id: str) -> list[str]:
    with engine.connect() as conn:
        return list(
            conn.execute(
                text("SELECT event_type FROM activity_events WHERE content_id = :id ORDER BY sequence"),
                {"id": content_id},
            ).scalars()
        )


@pytest.fixture()
def client(engine: Engine) -> TestClient:
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def run_concurrently(monkeypatch, module, loader: str, *calls: Callable[[], Any]) -> list[Any]:
    """
    Run `calls` in parallel threads. Each thread pauses after its first
    `module.<loader>` read until every thread has read, so all of them start
    from the same snapshot. Returns each call's result or raised exception.
    """
    barrier = threading.Barrier(len(calls), timeout=10)
    original = getattr(module, loader)
    state = threading.local()

    def read_then_wait(*args, **kwargs):
        value = original(*args, **kwargs)
        if not getattr(state, "waited", False):
            state.waited = True
            barrier.wait()
        return value

    monkeypatch.setattr(module, loader, read_then_wait)

    outcomes: list[Any] = [None] * len(calls)

    def worker(index: int, call: Callable[[], Any]) -> None:
        try:
            outcomes[index] = call()
        except Exception as exc:
            outcomes[index] = exc

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    monkeypatch.setattr(module, loader, original)
    return outcomes
