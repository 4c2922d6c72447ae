"""
Team, space and membership records.

Teams and spaces are provisioned by the surrounding platform; this module
only holds what authorization resolves through: which team owns a space,
and which role each member holds inside a team.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from contentflow import authz
from contentflow.db import utc_now
from contentflow.errors import Conflict, NotFound, ValidationError
from contentflow.models import TeamMember
from contentflow.permissions import (
    PERMISSIONS,
    TEAM_DELETE,
    TEAM_MANAGE_MEMBERS,
    TEAM_OWNER,
    GrantSet,
)
from contentflow.roles import insert_role, load_role

logger = logging.getLogger(__name__)

OWNER_ROLE = "Owner"
ADMIN_ROLE = "Admin"
MEMBER_ROLE = "Member"

MEMBER_GRANTS: tuple[str, ...] = (
    "team:view",
    "space:view",
    "content:view",
    "content:create",
    "content:comment",
    "file:download",
    "message:view",
    "message:send",
)


def bootstrap_team(engine: Engine, team_id: str, name: str, owner_id: str) -> TeamMember:
    """
    Create a team with its two system roles (Owner, Admin), a default custom
    Member role, and bind `owner_id` to Owner.
    """
    if not owner_id:
        raise ValidationError("owner_id is required")

    with engine.begin() as conn:
        exists = conn.execute(
            text("SELECT 1 FROM teams WHERE id = :team_id"), {"team_id": str(team_id)}
        ).first()
        if exists:
            raise Conflict(f"Team '{team_id}' already exists")

        conn.execute(
            text("INSERT INTO teams (id, name, created_at) VALUES (:id, :name, :created_at)"),
            {"id": str(team_id), "name": name, "created_at": utc_now()},
        )

        everything = GrantSet(PERMISSIONS)
        owner_role_id = insert_role(
            conn, str(team_id), OWNER_ROLE, everything, is_system=True, is_default=False,
            description="Full control over the team",
        )
        insert_role(
            conn, str(team_id), ADMIN_ROLE,
            everything.with_permission(TEAM_OWNER, False).with_permission(TEAM_DELETE, False),
            is_system=True, is_default=False,
            description="Administrative access to most team features",
        )
        insert_role(
            conn, str(team_id), MEMBER_ROLE, GrantSet(MEMBER_GRANTS),
            is_system=False, is_default=True,
            description="Standard team member",
        )
        _upsert_member(conn, str(team_id), str(owner_id), owner_role_id)

    logger.info("Team bootstrapped: team=%s owner=%s", team_id, owner_id)
    return TeamMember(user_id=str(owner_id), team_id=str(team_id), role_id=owner_role_id)


def register_space(engine: Engine, team_id: str, name: str, space_id: Optional[str] = None) -> str:
    space_id = space_id or str(uuid4())
    with engine.begin() as conn:
        team = conn.execute(
            text("SELECT 1 FROM teams WHERE id = :team_id"), {"team_id": str(team_id)}
        ).first()
        if team is None:
            raise NotFound(f"Team '{team_id}' not found")
        conn.execute(
            text("""
                INSERT INTO spaces (id, team_id, name, created_at)
                VALUES (:id, :team_id, :name, :created_at)
            """),
            {"id": space_id, "team_id": str(team_id), "name": name, "created_at": utc_now()},
        )
    return space_id


def require_space(conn: Connection, space_id: str) -> str:
    """Resolve the owning team of a space."""
    row = conn.execute(
        text("SELECT team_id FROM spaces WHERE id = :space_id LIMIT 1"),
        {"space_id": str(space_id)},
    ).mappings().first()

    if not row:
        raise NotFound(f"Space '{space_id}' not found")

    return str(row["team_id"])


def _upsert_member(conn: Connection, team_id: str, user_id: str, role_id: str) -> None:
    updated = conn.execute(
        text("UPDATE team_members SET role_id = :role_id WHERE team_id = :team_id AND user_id = :user_id"),
        {"team_id": team_id, "user_id": user_id, "role_id": role_id},
    )
    if updated.rowcount == 0:
        conn.execute(
            text("""
                INSERT INTO team_members (team_id, user_id, role_id, created_at)
                VALUES (:team_id, :user_id, :role_id, :created_at)
            """),
            {"team_id": team_id, "user_id": user_id, "role_id": role_id, "created_at": utc_now()},
        )


def set_member_role(engine: Engine, team_id: str, user_id: str, role_id: str, actor_id: str) -> TeamMember:
    """Bind `user_id` to `role_id` in the team, adding the member if needed."""
    if not user_id:
        raise ValidationError("user_id is required")

    with engine.begin() as conn:
        authz.require_permission(conn, actor_id, TEAM_MANAGE_MEMBERS, "team", team_id)
        role = load_role(conn, role_id)
        if role.team_id != str(team_id):
            raise ValidationError("Role belongs to a different team")
        current_role_id = conn.execute(
            text("SELECT role_id FROM team_members WHERE team_id = :team_id AND user_id = :user_id"),
            {"team_id": str(team_id), "user_id": str(user_id)},
        ).scalar_one_or_none()
        # Moving anyone into or out of a system role is an owner decision.
        touches_system = role.is_system or (
            current_role_id is not None and load_role(conn, current_role_id).is_system
        )
        if touches_system:
            authz.require_permission(conn, actor_id, TEAM_OWNER, "team", team_id)
        _upsert_member(conn, str(team_id), str(user_id), role.id)

    logger.info("Member role set: team=%s user=%s role=%s by=%s", team_id, user_id, role_id, actor_id)
    return TeamMember(user_id=str(user_id), team_id=str(team_id), role_id=role.id)


def list_members(engine: Engine, team_id: str) -> list[TeamMember]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT user_id, team_id, role_id
                FROM team_members
                WHERE team_id = :team_id
                ORDER BY created_at ASC, user_id ASC
            """),
            {"team_id": str(team_id)},
        ).mappings().all()
    return [TeamMember(user_id=r["user_id"], team_id=r["team_id"], role_id=r["role_id"]) for r in rows]
