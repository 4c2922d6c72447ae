"""Role store: team-scoped roles and their permission grants."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from contentflow import authz
from contentflow.db import as_bool, parse_ts, utc_now
from contentflow.errors import Conflict, Forbidden, NotFound, ValidationError
from contentflow.models import Role
from contentflow.permissions import (
    TEAM_MANAGE_ROLES,
    TEAM_OWNER,
    GrantSet,
    Permission,
    catalog_with_grants,
    group_states,
)

logger = logging.getLogger(__name__)

ROLE_NAME_MAX = 100


@dataclass(frozen=True)
class RolePermissionView:
    role: Role
    permissions: list[dict[str, Any]]
    groups: list[dict[str, Any]]


# ----------------------------
# Helpers
# ----------------------------

def _clean_name(name: str) -> str:
    cleaned = (name or "").strip() if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError("Role name must not be blank")
    if len(cleaned) > ROLE_NAME_MAX:
        raise ValidationError(f"Role name must be at most {ROLE_NAME_MAX} characters")
    return cleaned


def _load_grants(conn: Connection, role_id: str) -> GrantSet:
    rows = conn.execute(
        text("SELECT permission_id FROM role_permissions WHERE role_id = :role_id"),
        {"role_id": role_id},
    ).scalars().all()
    return GrantSet(rows)


def _row_to_role(conn: Connection, row) -> Role:
    return Role(
        id=row["id"],
        team_id=row["team_id"],
        name=row["name"],
        description=row["description"],
        grants=_load_grants(conn, row["id"]),
        is_system=as_bool(row["is_system"]),
        is_default=as_bool(row["is_default"]),
        version=int(row["version"]),
        created_at=parse_ts(row["created_at"]),
    )


def load_role(conn: Connection, role_id: str) -> Role:
    row = conn.execute(
        text("""
            SELECT id, team_id, name, description, is_system, is_default, version, created_at
            FROM roles
            WHERE id = :role_id
        """),
        {"role_id": str(role_id)},
    ).mappings().first()
    if row is None:
        raise NotFound(f"Role '{role_id}' not found")
    return _row_to_role(conn, row)


def _bump_version(conn: Connection, role: Role) -> None:
    result = conn.execute(
        text("""
            UPDATE roles
            SET version = version + 1
            WHERE id = :role_id AND version = :version
        """),
        {"role_id": role.id, "version": role.version},
    )
    if result.rowcount != 1:
        raise Conflict(f"Role '{role.id}' changed since it was read; reload and retry")


def _write_grants(conn: Connection, role: Role, grants: GrantSet) -> None:
    _bump_version(conn, role)

    added = sorted(grants.ids - role.grants.ids)
    removed = sorted(role.grants.ids - grants.ids)
    if removed:
        conn.execute(
            text("DELETE FROM role_permissions WHERE role_id = :role_id AND permission_id = :pid"),
            [{"role_id": role.id, "pid": pid} for pid in removed],
        )
    if added:
        conn.execute(
            text("INSERT INTO role_permissions (role_id, permission_id) VALUES (:role_id, :pid)"),
            [{"role_id": role.id, "pid": pid} for pid in added],
        )


def insert_role(
    conn: Connection,
    team_id: str,
    name: str,
    grants: GrantSet,
    is_system: bool,
    is_default: bool,
    description: str = "",
) -> str:
    role_id = str(uuid4())
    conn.execute(
        text("""
            INSERT INTO roles
                (id, team_id, name, description, is_system, is_default, version, created_at)
            VALUES
                (:id, :team_id, :name, :description, :is_system, :is_default, 1, :created_at)
        """),
        {
            "id": role_id,
            "team_id": team_id,
            "name": name,
            "description": description or "",
            "is_system": is_system,
            "is_default": is_default,
            "created_at": utc_now(),
        },
    )
    if len(grants):
        conn.execute(
            text("INSERT INTO role_permissions (role_id, permission_id) VALUES (:role_id, :pid)"),
            [{"role_id": role_id, "pid": pid} for pid in grants],
        )
    return role_id


def _lock_team_roles(conn: Connection, team_id: str) -> None:
    """
    Take the team row lock before reading or moving the default flag.

    Concurrent default changes for one team queue behind this update, so
    each one sees the flag where the previous one left it.
    """
    result = conn.execute(
        text("UPDATE teams SET roles_version = roles_version + 1 WHERE id = :team_id"),
        {"team_id": str(team_id)},
    )
    if result.rowcount != 1:
        raise NotFound(f"Team '{team_id}' not found")


def _authorize_mutation(
    conn: Connection, role_id: str, actor_id: str, expected_version: Optional[int]
) -> Role:
    role = load_role(conn, role_id)
    authz.require_permission(conn, actor_id, TEAM_MANAGE_ROLES, "role", role.id)
    if role.is_system:
        raise Forbidden(f"System role '{role.name}' cannot be modified")
    if expected_version is not None and expected_version != role.version:
        raise Conflict(f"Role '{role.id}' is at version {role.version}, not {expected_version}")
    return role


# ----------------------------
# Reads
# ----------------------------

def list_roles(engine: Engine, team_id: str) -> list[Role]:
    with engine.connect() as conn:
        rows = conn.execute(
            text("""
                SELECT id, team_id, name, description, is_system, is_default, version, created_at
                FROM roles
                WHERE team_id = :team_id
                ORDER BY created_at ASC, name ASC
            """),
            {"team_id": str(team_id)},
        ).mappings().all()
        return [_row_to_role(conn, r) for r in rows]


def get_role(engine: Engine, role_id: str) -> Role:
    with engine.connect() as conn:
        return load_role(conn, role_id)


def get_role_permissions(engine: Engine, role_id: str) -> RolePermissionView:
    """The full catalog, each entry flagged `granted` for this role, plus group states."""
    role = get_role(engine, role_id)
    return RolePermissionView(
        role=role,
        permissions=catalog_with_grants(role.grants),
        groups=group_states(role.grants),
    )


# ----------------------------
# Mutations
# ----------------------------

def create_role(
    engine: Engine,
    team_id: str,
    name: str,
    initial_grants: Iterable[str] | None,
    actor_id: str,
    description: str = "",
) -> Role:
    cleaned = _clean_name(name)
    grants = GrantSet.parse(initial_grants)

    try:
        with engine.begin() as conn:
            authz.require_permission(conn, actor_id, TEAM_MANAGE_ROLES, "team", team_id)
            _lock_team_roles(conn, team_id)

            clash = conn.execute(
                text("SELECT 1 FROM roles WHERE team_id = :team_id AND name = :name"),
                {"team_id": str(team_id), "name": cleaned},
            ).first()
            if clash:
                raise Conflict(f"Role '{cleaned}' already exists in this team")

            has_default = conn.execute(
                text("SELECT 1 FROM roles WHERE team_id = :team_id AND is_default = :flag"),
                {"team_id": str(team_id), "flag": True},
            ).first()

            role_id = insert_role(
                conn,
                team_id=str(team_id),
                name=cleaned,
                grants=grants,
                is_system=False,
                is_default=has_default is None,
                description=description,
            )
            role = load_role(conn, role_id)
    except IntegrityError:
        raise Conflict(f"Role '{cleaned}' already exists in this team")

    logger.info("Role created: team=%s role=%s name=%s by=%s", team_id, role.id, role.name, actor_id)
    return role


def set_permission(
    engine: Engine,
    role_id: str,
    permission_id: str | Permission,
    granted: bool,
    actor_id: str,
    expected_version: Optional[int] = None,
) -> Role:
    with engine.begin() as conn:
        role = _authorize_mutation(conn, role_id, actor_id, expected_version)
        updated = role.grants.with_permission(permission_id, bool(granted))
        if updated != role.grants:
            _write_grants(conn, role, updated)
        role = load_role(conn, role.id)

    logger.info("Role %s: %s %s by=%s", role.id, "granted" if granted else "revoked", permission_id, actor_id)
    return role


def set_group_permissions(
    engine: Engine,
    role_id: str,
    namespace: str,
    granted: bool,
    actor_id: str,
    expected_version: Optional[int] = None,
) -> Role:
    """Grant or clear every permission under `namespace` in one unit of work."""
    with engine.begin() as conn:
        role = _authorize_mutation(conn, role_id, actor_id, expected_version)
        updated = role.grants.with_group(namespace, bool(granted))
        if updated != role.grants:
            _write_grants(conn, role, updated)
        role = load_role(conn, role.id)

    logger.info(
        "Role %s: group %s %s by=%s", role.id, namespace, "enabled" if granted else "cleared", actor_id
    )
    return role


def set_default_role(engine: Engine, role_id: str, actor_id: str) -> Role:
    with engine.begin() as conn:
        role = load_role(conn, role_id)
        authz.require_permission(conn, actor_id, TEAM_MANAGE_ROLES, "role", role.id)
        _lock_team_roles(conn, role.team_id)
        role = load_role(conn, role.id)
        if role.is_default:
            return role

        _bump_version(conn, role)
        conn.execute(
            text("""
                UPDATE roles
                SET is_default = :off, version = version + 1
                WHERE team_id = :team_id AND is_default = :on
            """),
            {"team_id": role.team_id, "on": True, "off": False},
        )
        conn.execute(
            text("UPDATE roles SET is_default = :on WHERE id = :role_id"),
            {"role_id": role.id, "on": True},
        )
        role = load_role(conn, role.id)

    logger.info("Default role for team %s is now %s by=%s", role.team_id, role.id, actor_id)
    return role


def _promotion_candidate(conn: Connection, role: Role) -> Optional[str]:
    # Custom roles before system roles, then the narrowest grant set, then oldest.
    row = conn.execute(
        text("""
            SELECT r.id, r.is_system, r.created_at, COUNT(rp.permission_id) AS grant_count
            FROM roles r
            LEFT JOIN role_permissions rp ON rp.role_id = r.id
            WHERE r.team_id = :team_id AND r.id <> :role_id
            GROUP BY r.id, r.is_system, r.created_at
            ORDER BY r.is_system ASC, grant_count ASC, r.created_at ASC, r.id ASC
            LIMIT 1
        """),
        {"team_id": role.team_id, "role_id": role.id},
    ).mappings().first()
    return None if row is None else str(row["id"])


def delete_role(
    engine: Engine,
    role_id: str,
    actor_id: str,
    reassign_to: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Optional[str]:
    """
    Delete a custom role.

    Members holding the role move to `reassign_to`; deleting a role that
    still has members requires it. If the role was the team default,
    `reassign_to` (or the best remaining role) becomes the default.
    Returns the id of the promoted default role, if any.
    """
    with engine.begin() as conn:
        role = _authorize_mutation(conn, role_id, actor_id, expected_version)
        _lock_team_roles(conn, role.team_id)
        current = load_role(conn, role.id)
        if current.version != role.version:
            raise Conflict(f"Role '{role.id}' changed since it was read; reload and retry")
        role = current

        target: Optional[Role] = None
        if reassign_to is not None:
            target = load_role(conn, reassign_to)
            if target.team_id != role.team_id:
                raise ValidationError("Reassignment role belongs to a different team")
            if target.id == role.id:
                raise ValidationError("Cannot reassign members to the role being deleted")
            if target.is_system:
                authz.require_permission(conn, actor_id, TEAM_OWNER, "team", role.team_id)

        member_count = conn.execute(
            text("SELECT COUNT(*) FROM team_members WHERE role_id = :role_id"),
            {"role_id": role.id},
        ).scalar_one()
        if member_count and target is None:
            raise Conflict(
                f"Role '{role.name}' is assigned to {member_count} member(s); supply a reassignment role"
            )

        promoted: Optional[str] = None
        if role.is_default:
            promoted = target.id if target is not None else _promotion_candidate(conn, role)
            if promoted is None:
                raise Conflict(f"Role '{role.name}' is the team's only role and cannot be deleted")

        _bump_version(conn, role)

        if member_count:
            conn.execute(
                text("UPDATE team_members SET role_id = :target WHERE role_id = :role_id"),
                {"target": target.id, "role_id": role.id},
            )
        conn.execute(text("DELETE FROM role_permissions WHERE role_id = :role_id"), {"role_id": role.id})
        conn.execute(text("DELETE FROM roles WHERE id = :role_id"), {"role_id": role.id})

        if promoted is not None:
            conn.execute(
                text("UPDATE roles SET is_default = :on, version = version + 1 WHERE id = :role_id"),
                {"role_id": promoted, "on": True},
            )

    logger.info(
        "Role deleted: team=%s role=%s members_moved=%s promoted_default=%s by=%s",
        role.team_id, role.id, member_count, promoted, actor_id,
    )
    return promoted
