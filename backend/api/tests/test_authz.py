import logging

import pytest
from sqlalchemy import text

from contentflow import authz, roles
from contentflow.db import make_engine

from conftest import OWNER, TEAM_ID


@pytest.mark.parametrize(
    "resource_type,resource_id",
    [("team", TEAM_ID), ("space", "space-blog")],
)
def test_owner_holds_permissions_across_team_resources(engine, space, resource_type, resource_id) -> None:
    assert authz.has_permission(engine, OWNER, "content:approve", resource_type, resource_id)


def test_content_and_role_resolve_to_owning_team(engine, draft) -> None:
    assert authz.has_permission(engine, OWNER, "content:publish", "content", draft.id)
    role = roles.list_roles(engine, TEAM_ID)[0]
    assert authz.has_permission(engine, OWNER, "team:manage_roles", "role", role.id)


def test_member_limited_to_own_grants(engine, space, make_member) -> None:
    make_member("user-editor", ["content:create", "content:comment"])

    assert authz.has_permission(engine, "user-editor", "content:create", "space", space)
    assert not authz.has_permission(engine, "user-editor", "content:approve", "space", space)


@pytest.mark.parametrize(
    "actor,permission,resource_type,resource_id",
    [
        ("user-stranger", "content:create", "team", TEAM_ID),
        (OWNER, "content:create", "team", "team-missing"),
        (OWNER, "content:create", "planet", TEAM_ID),
        (OWNER, "content:teleport", "team", TEAM_ID),
        ("", "content:create", "team", TEAM_ID),
    ],
)
def test_lookup_failures_fail_closed(engine, team, actor, permission, resource_type, resource_id) -> None:
    assert authz.has_permission(engine, actor, permission, resource_type, resource_id) is False


def test_member_bound_to_missing_role_is_denied(engine, team) -> None:
    with engine.begin() as conn:
        conn.execute(
            text("""
                INSERT INTO team_members (team_id, user_id, role_id, created_at)
                VALUES (:team_id, 'user-orphan', 'role-gone', '2026-01-01T00:00:00.000000Z')
            """),
            {"team_id": TEAM_ID},
        )

    assert not authz.has_permission(engine, "user-orphan", "team:view", "team", TEAM_ID)


def test_store_failure_is_logged_and_denied(tmp_path, caplog) -> None:
    broken = make_engine(f"sqlite:///{tmp_path / 'missing' / 'nowhere.sqlite'}")

    with caplog.at_level(logging.WARNING, logger="contentflow.authz"):
        assert authz.has_permission(broken, OWNER, "team:view", "team", TEAM_ID) is False

    assert any("denying" in record.getMessage() for record in caplog.records)


def test_grant_changes_are_seen_immediately(engine, space, make_member) -> None:
    role = make_member("user-writer", ["content:create"])
    assert not authz.has_permission(engine, "user-writer", "content:edit", "space", space)

    roles.set_permission(engine, role.id, "content:edit", True, OWNER)
    assert authz.has_permission(engine, "user-writer", "content:edit", "space", space)

    roles.set_permission(engine, role.id, "content:edit", False, OWNER)
    assert not authz.has_permission(engine, "user-writer", "content:edit", "space", space)
