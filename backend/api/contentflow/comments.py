"""Typed comments on content items."""

from __future__ import annotations

import logging
from typing import Mapping
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Engine

from contentflow import activity, authz, workflow
from contentflow.config import get_settings
from contentflow.content import load_content
from contentflow.db import parse_ts, utc_now
from contentflow.errors import InvalidState, NotFound, ValidationError
from contentflow.models import COMMENT_TYPES, Comment
from contentflow.permissions import CONTENT_APPROVE, CONTENT_COMMENT, CONTENT_DELETE, Permission

logger = logging.getLogger(__name__)

# Approval and rejection notes read as sign-off, so they need the same
# permission as the workflow edges they describe.
COMMENT_PERMISSIONS: Mapping[str, Permission] = {
    "general": CONTENT_COMMENT,
    "revision": CONTENT_COMMENT,
    "approval": CONTENT_APPROVE,
    "rejection": CONTENT_APPROVE,
}


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row["id"],
        content_id=row["content_id"],
        author_id=row["author_id"],
        type=row["comment_type"],
        text=row["body"],
        created_at=parse_ts(row["created_at"]),
    )


def _validate(comment_type: str, body: str) -> tuple[str, str]:
    if comment_type not in COMMENT_TYPES:
        raise ValidationError(f"Comment type must be one of {list(COMMENT_TYPES)}")
    cleaned = body.strip() if isinstance(body, str) else ""
    if not cleaned:
        raise ValidationError("Comment text must not be blank")
    max_len = get_settings().comment_max_length
    if len(cleaned) > max_len:
        raise ValidationError(f"Comment text must be at most {max_len} characters")
    return comment_type, cleaned


def list_comments(engine: Engine, content_id: str) -> list[Comment]:
    with engine.connect() as conn:
        load_content(conn, content_id)
        rows = conn.execute(
            text("""
                SELECT id, content_id, author_id, comment_type, body, created_at
                FROM comments
                WHERE content_id = :content_id
                ORDER BY created_at ASC, id ASC
            """),
            {"content_id": str(content_id)},
        ).mappings().all()
    return [_row_to_comment(r) for r in rows]


def add_comment(engine: Engine, content_id: str, actor_id: str, comment_type: str, body: str) -> Comment:
    comment_type, body = _validate(comment_type, body)

    with engine.begin() as conn:
        content = load_content(conn, content_id)
        authz.require_permission(conn, actor_id, COMMENT_PERMISSIONS[comment_type], "content", content.id)
        if workflow.is_terminal(content.status):
            raise InvalidState(f"Content in status '{content.status}' no longer accepts comments")

        comment_id = str(uuid4())
        created_at = utc_now()
        conn.execute(
            text("""
                INSERT INTO comments (id, content_id, author_id, comment_type, body, created_at)
                VALUES (:id, :content_id, :author_id, :comment_type, :body, :created_at)
            """),
            {
                "id": comment_id,
                "content_id": content.id,
                "author_id": str(actor_id),
                "comment_type": comment_type,
                "body": body,
                "created_at": created_at,
            },
        )
        activity.append(
            conn,
            content.id,
            actor_id,
            "comment_added",
            {"comment_id": comment_id, "comment_type": comment_type},
        )
        # The append holds the content row; an archive that committed before it is visible now.
        if workflow.is_terminal(load_content(conn, content.id).status):
            raise InvalidState(f"Content '{content.id}' was archived; comment not added")

    logger.info("Comment added: content=%s comment=%s type=%s by=%s", content.id, comment_id, comment_type, actor_id)
    return Comment(
        id=comment_id,
        content_id=content.id,
        author_id=str(actor_id),
        type=comment_type,
        text=body,
        created_at=parse_ts(created_at),
    )


def delete_comment(engine: Engine, comment_id: str, actor_id: str) -> None:
    """Authors may delete their own comments; anyone else needs content:delete."""
    with engine.begin() as conn:
        row = conn.execute(
            text("""
                SELECT id, content_id, author_id, comment_type, body, created_at
                FROM comments
                WHERE id = :comment_id
            """),
            {"comment_id": str(comment_id)},
        ).mappings().first()
        if row is None:
            raise NotFound(f"Comment '{comment_id}' not found")
        comment = _row_to_comment(row)

        if str(actor_id) != comment.author_id:
            authz.require_permission(conn, actor_id, CONTENT_DELETE, "content", comment.content_id)

        conn.execute(text("DELETE FROM comments WHERE id = :comment_id"), {"comment_id": comment.id})
        activity.append(
            conn,
            comment.content_id,
            actor_id,
            "comment_deleted",
            {"comment_id": comment.id, "comment_type": comment.type},
        )

    logger.info("Comment deleted: content=%s comment=%s by=%s", comment.content_id, comment.id, actor_id)
