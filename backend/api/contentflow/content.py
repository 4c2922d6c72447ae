"""Content records and status transitions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from contentflow import activity, authz, workflow
from contentflow.db import parse_ts, utc_now
from contentflow.errors import Conflict, InvalidState, NotFound, ValidationError
from contentflow.models import Content
from contentflow.permissions import CONTENT_CREATE, CONTENT_EDIT
from contentflow.teams import require_space

logger = logging.getLogger(__name__)

TITLE_MAX = 400
DESCRIPTION_MAX = 10000
CONTENT_TYPE_MAX = 50

_CONTENT_COLUMNS = """
    id, team_id, space_id, title, description, content_type, status,
    creator_id, created_at, updated_at, version
"""


# ----------------------------
# Helpers (safe + deterministic)
# ----------------------------

def _sort_to_order_by(sort: str) -> str:
    """
    Allowed sort values (explicit allow-list to avoid SQL injection):
      - created_at_desc (default)
      - created_at_asc
      - updated_at_desc
      - updated_at_asc
      - title_asc
      - title_desc
    """
    s = (sort or "").strip().lower()
    if s == "created_at_asc":
        return "created_at ASC, id ASC"
    if s == "updated_at_desc":
        return "updated_at DESC, id DESC"
    if s == "updated_at_asc":
        return "updated_at ASC, id ASC"
    if s == "title_asc":
        return "title ASC, id ASC"
    if s == "title_desc":
        return "title DESC, id DESC"
    return "created_at DESC, id DESC"


def _escape_like(term: str) -> str:
    """Match `term` literally inside a LIKE pattern that uses ESCAPE '!'."""
    return term.replace("!", "!!").replace("%", "!%").replace("_", "!_")


def _clean_text(value: Optional[str], field: str, max_len: int, required: bool) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    cleaned = value.strip()
    if required and not cleaned:
        raise ValidationError(f"{field} must not be blank")
    if len(cleaned) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return cleaned


def _row_to_content(row) -> Content:
    return Content(
        id=row["id"],
        team_id=row["team_id"],
        space_id=row["space_id"],
        title=row["title"],
        description=row["description"],
        content_type=row["content_type"],
        status=row["status"],
        creator_id=row["creator_id"],
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row["updated_at"]),
        version=int(row["version"]),
    )


def load_content(conn: Connection, content_id: str) -> Content:
    row = conn.execute(
        text(f"SELECT {_CONTENT_COLUMNS} FROM content_items WHERE id = :content_id"),
        {"content_id": str(content_id)},
    ).mappings().first()
    if row is None:
        raise NotFound(f"Content '{content_id}' not found")
    return _row_to_content(row)


def _compare_and_set(conn: Connection, content: Content, changes: Dict[str, Any]) -> None:
    """Apply `changes` only if the row is still at `content.version`."""
    assignments = ", ".join(f"{column} = :{column}" for column in changes)
    result = conn.execute(
        text(f"""
            UPDATE content_items
            SET {assignments}, updated_at = :updated_at, version = version + 1
            WHERE id = :content_id AND version = :version
        """),
        {**changes, "updated_at": utc_now(), "content_id": content.id, "version": content.version},
    )
    if result.rowcount != 1:
        raise Conflict(f"Content '{content.id}' changed since it was read; reload and retry")


# ----------------------------
# CRUD / Queries
# ----------------------------

def create_content(
    engine: Engine,
    space_id: str,
    title: str,
    actor_id: str,
    description: str = "",
    content_type: str = "post",
) -> Content:
    title = _clean_text(title, "title", TITLE_MAX, required=True)
    description = _clean_text(description, "description", DESCRIPTION_MAX, required=False)
    content_type = _clean_text(content_type, "content_type", CONTENT_TYPE_MAX, required=True)

    with engine.begin() as conn:
        team_id = require_space(conn, space_id)
        authz.require_permission(conn, actor_id, CONTENT_CREATE, "space", space_id)

        content_id = str(uuid4())
        now = utc_now()
        conn.execute(
            text("""
                INSERT INTO content_items
                    (id, team_id, space_id, title, description, content_type, status,
                     creator_id, created_at, updated_at, version, activity_seq)
                VALUES
                    (:id, :team_id, :space_id, :title, :description, :content_type, :status,
                     :creator_id, :now, :now, 1, 0)
            """),
            {
                "id": content_id,
                "team_id": team_id,
                "space_id": str(space_id),
                "title": title,
                "description": description,
                "content_type": content_type,
                "status": workflow.INITIAL_STATE,
                "creator_id": str(actor_id),
                "now": now,
            },
        )
        activity.append(
            conn,
            content_id,
            actor_id,
            "content_created",
            {"title": title, "content_type": content_type, "status": workflow.INITIAL_STATE},
        )
        item = load_content(conn, content_id)

    logger.info("Content created: content=%s space=%s by=%s", item.id, space_id, actor_id)
    return item


def get_content(engine: Engine, content_id: str) -> Content:
    with engine.connect() as conn:
        return load_content(conn, content_id)


def list_content(
    engine: Engine,
    team_id: str,
    space_id: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    sort: str = "created_at_desc",
) -> Tuple[List[Content], int]:
    order_by = _sort_to_order_by(sort)

    where_parts = ["team_id = :team_id"]
    params: Dict[str, Any] = {"team_id": str(team_id), "limit": int(limit), "offset": int(offset)}

    if space_id:
        where_parts.append("space_id = :space_id")
        params["space_id"] = str(space_id)
    if status:
        if status not in workflow.STATES:
            raise ValidationError(f"Unknown status filter '{status}'")
        where_parts.append("status = :status")
        params["status"] = status
    if q:
        where_parts.append("LOWER(title) LIKE :q ESCAPE '!'")
        params["q"] = f"%{_escape_like(q.lower())}%"

    where_sql = " AND ".join(where_parts)

    sql_items = text(f"""
        SELECT {_CONTENT_COLUMNS}
        FROM content_items
        WHERE {where_sql}
        ORDER BY {order_by}
        LIMIT :limit OFFSET :offset
    """)

    sql_total = text(f"""
        SELECT COUNT(*) AS total
        FROM content_items
        WHERE {where_sql}
    """)

    with engine.connect() as conn:
        rows = conn.execute(sql_items, params).mappings().all()
        total = conn.execute(sql_total, params).mappings().one()["total"]

    return [_row_to_content(r) for r in rows], int(total)


def update_content(
    engine: Engine,
    content_id: str,
    actor_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Content:
    changes: Dict[str, Any] = {}
    if title is not None:
        changes["title"] = _clean_text(title, "title", TITLE_MAX, required=True)
    if description is not None:
        changes["description"] = _clean_text(description, "description", DESCRIPTION_MAX, required=False)
    if not changes:
        raise ValidationError("Nothing to update")

    with engine.begin() as conn:
        current = load_content(conn, content_id)
        authz.require_permission(conn, actor_id, CONTENT_EDIT, "content", current.id)
        if workflow.is_terminal(current.status):
            raise InvalidState(f"Content in status '{current.status}' cannot be edited")
        if expected_version is not None and expected_version != current.version:
            raise Conflict(f"Content '{current.id}' is at version {current.version}, not {expected_version}")

        changed = {k: v for k, v in changes.items() if getattr(current, k) != v}
        if not changed:
            return current

        _compare_and_set(conn, current, changed)
        activity.append(conn, current.id, actor_id, "content_updated", {"fields": sorted(changed)})
        item = load_content(conn, current.id)

    logger.info("Content updated: content=%s fields=%s by=%s", item.id, sorted(changed), actor_id)
    return item


# ----------------------------
# Governance: allowed + transition
# ----------------------------

def _apply_edge(
    conn: Connection,
    current: Content,
    edge: workflow.TransitionEdge,
    actor_id: str,
) -> None:
    authz.require_any_permission(conn, actor_id, edge.permissions, "content", current.id)
    _compare_and_set(conn, current, {"status": edge.to_status})
    activity.append(
        conn,
        current.id,
        actor_id,
        "status_change",
        {"from_status": edge.from_status, "to_status": edge.to_status},
    )


def _transition(
    engine: Engine,
    content_id: str,
    actor_id: str,
    pick_edge,
    expected_version: Optional[int],
) -> Content:
    with engine.begin() as conn:
        current = load_content(conn, content_id)
        if expected_version is not None and expected_version != current.version:
            raise Conflict(f"Content '{current.id}' is at version {current.version}, not {expected_version}")
        edge = pick_edge(current.status)
        _apply_edge(conn, current, edge, actor_id)
        item = load_content(conn, current.id)

    logger.info(
        "Content transitioned: content=%s %s -> %s by=%s",
        item.id, edge.from_status, edge.to_status, actor_id,
    )
    return item


def transition_status(
    engine: Engine,
    content_id: str,
    target_status: str,
    actor_id: str,
    expected_version: Optional[int] = None,
) -> Content:
    """
    Move content along one declared edge.

    The status update and its `status_change` event commit together; a
    concurrent transition that already moved the row makes this one fail
    with Conflict rather than apply from a stale status.
    """
    return _transition(
        engine,
        content_id,
        actor_id,
        lambda status: workflow.find_edge(status, target_status),
        expected_version,
    )


def move_to_next_step(
    engine: Engine, content_id: str, actor_id: str, expected_version: Optional[int] = None
) -> Content:
    return _transition(engine, content_id, actor_id, workflow.next_step_edge, expected_version)


def move_to_previous_step(
    engine: Engine, content_id: str, actor_id: str, expected_version: Optional[int] = None
) -> Content:
    return _transition(engine, content_id, actor_id, workflow.previous_step_edge, expected_version)


def archive_content(
    engine: Engine, content_id: str, actor_id: str, expected_version: Optional[int] = None
) -> Content:
    return transition_status(engine, content_id, workflow.ARCHIVED, actor_id, expected_version)


def allowed_transitions(engine: Engine, content_id: str, actor_id: str) -> Dict[str, Any]:
    """Targets reachable from the current status that the actor could take. Advisory only."""
    with engine.connect() as conn:
        current = load_content(conn, content_id)
        granted = authz.granted_permissions(conn, actor_id, "content", current.id)

    allowed = [
        edge.to_status
        for edge in workflow.edges_from(current.status)
        if any(str(p) in granted for p in edge.permissions)
    ]
    return {
        "content_id": current.id,
        "from_status": current.status,
        "version": current.version,
        "allowed": allowed,
    }
