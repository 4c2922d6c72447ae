"""
Authorization engine.

Resolves the actor's role inside the team that owns a resource and checks
flat grant membership. Every check fails closed: lookup faults are logged
and answered with "no", never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from contentflow.errors import Forbidden
from contentflow.permissions import Permission, get_permission

logger = logging.getLogger(__name__)

RESOURCE_TYPES: tuple[str, ...] = ("team", "space", "content", "role", "comment")

_OWNING_TEAM_SQL: dict[str, str] = {
    "team": "SELECT id AS team_id FROM teams WHERE id = :rid",
    "space": "SELECT team_id FROM spaces WHERE id = :rid",
    "content": "SELECT team_id FROM content_items WHERE id = :rid",
    "role": "SELECT team_id FROM roles WHERE id = :rid",
    "comment": """
        SELECT c.team_id
        FROM comments m
        JOIN content_items c ON c.id = m.content_id
        WHERE m.id = :rid
    """,
}

_ACTOR_GRANTS_SQL = text("""
    SELECT rp.permission_id
    FROM team_members m
    JOIN roles r ON r.id = m.role_id AND r.team_id = m.team_id
    JOIN role_permissions rp ON rp.role_id = r.id
    WHERE m.team_id = :team_id
      AND m.user_id = :actor_id
""")


def resolve_team_id(conn: Connection, resource_type: str, resource_id: str) -> str:
    """Team that owns the resource. Raises LookupError when it cannot be resolved."""
    sql = _OWNING_TEAM_SQL.get(resource_type)
    if sql is None:
        raise LookupError(f"Unknown resource type '{resource_type}'")

    row = conn.execute(text(sql), {"rid": str(resource_id)}).mappings().first()
    if row is None:
        raise LookupError(f"{resource_type} '{resource_id}' not found")
    return str(row["team_id"])


def _granted_ids(conn: Connection, actor_id: str, resource_type: str, resource_id: str) -> frozenset[str]:
    if not actor_id:
        raise LookupError("No actor supplied")
    team_id = resolve_team_id(conn, resource_type, resource_id)
    rows = conn.execute(
        _ACTOR_GRANTS_SQL, {"team_id": team_id, "actor_id": str(actor_id)}
    ).scalars().all()
    return frozenset(rows)


def granted_permissions(conn: Connection, actor_id: str, resource_type: str, resource_id: str) -> frozenset[str]:
    try:
        return _granted_ids(conn, actor_id, resource_type, resource_id)
    except Exception:
        logger.warning(
            "Authorization lookup failed for actor=%s %s=%s; denying",
            actor_id, resource_type, resource_id,
            exc_info=True,
        )
        return frozenset()


def check(
    conn: Connection,
    actor_id: str,
    permission: str | Permission,
    resource_type: str,
    resource_id: str,
) -> bool:
    try:
        pid = get_permission(permission).id
        granted = pid in _granted_ids(conn, actor_id, resource_type, resource_id)
    except Exception:
        logger.warning(
            "Authorization lookup failed for actor=%s permission=%s %s=%s; denying",
            actor_id, permission, resource_type, resource_id,
            exc_info=True,
        )
        return False

    if not granted:
        logger.info(
            "Permission denied: actor=%s permission=%s %s=%s",
            actor_id, pid, resource_type, resource_id,
        )
    return granted


def has_permission(
    engine: Engine,
    actor_id: str,
    permission: str | Permission,
    resource_type: str,
    resource_id: str,
) -> bool:
    """May `actor_id` exercise `permission` on the resource? Always a definite bool."""
    try:
        with engine.connect() as conn:
            return check(conn, actor_id, permission, resource_type, resource_id)
    except Exception:
        logger.warning("Authorization store unavailable; denying", exc_info=True)
        return False


def require_permission(
    conn: Connection,
    actor_id: str,
    permission: str | Permission,
    resource_type: str,
    resource_id: str,
) -> None:
    if not check(conn, actor_id, permission, resource_type, resource_id):
        raise Forbidden(f"Missing permission {permission} on {resource_type} {resource_id}")


def require_any_permission(
    conn: Connection,
    actor_id: str,
    permissions: Iterable[str | Permission],
    resource_type: str,
    resource_id: str,
) -> None:
    wanted = tuple(permissions)
    granted = granted_permissions(conn, actor_id, resource_type, resource_id)
    if any(str(p) in granted for p in wanted):
        return
    logger.info(
        "Permission denied: actor=%s needs one of %s on %s=%s",
        actor_id, [str(p) for p in wanted], resource_type, resource_id,
    )
    raise Forbidden(
        f"Missing one of {', '.join(str(p) for p in wanted)} on {resource_type} {resource_id}"
    )
