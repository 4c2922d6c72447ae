"""
Append-only activity log.

Each content item has its own monotonic `sequence`; `created_at` is clamped
so it never goes backwards for a content id, which keeps the
(created_at, sequence) order identical to append order. Rows are never
updated or deleted here.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Iterator, Optional
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from contentflow.config import get_settings
from contentflow.db import parse_ts, utc_now
from contentflow.errors import NotFound, ValidationError
from contentflow.models import ACTIVITY_TYPES, ActivityEvent, ActivityPage

logger = logging.getLogger(__name__)


def append(
    conn: Connection,
    content_id: str,
    actor_id: str,
    event_type: str,
    payload: Optional[dict[str, Any]] = None,
) -> ActivityEvent:
    """
    Append one event inside the caller's transaction.

    The counter bump on the content row serializes concurrent appends for the
    same content id; appends for different content never touch the same row.
    """
    if event_type not in ACTIVITY_TYPES:
        raise ValidationError(f"Unknown activity type '{event_type}'")

    bumped = conn.execute(
        text("UPDATE content_items SET activity_seq = activity_seq + 1 WHERE id = :content_id"),
        {"content_id": content_id},
    )
    if bumped.rowcount != 1:
        raise NotFound(f"Content '{content_id}' not found")

    row = conn.execute(
        text("SELECT activity_seq, last_activity_at FROM content_items WHERE id = :content_id"),
        {"content_id": content_id},
    ).mappings().one()

    sequence = int(row["activity_seq"])
    created_at = utc_now()
    if row["last_activity_at"] and row["last_activity_at"] > created_at:
        created_at = row["last_activity_at"]

    conn.execute(
        text("UPDATE content_items SET last_activity_at = :created_at WHERE id = :content_id"),
        {"content_id": content_id, "created_at": created_at},
    )

    event_id = str(uuid4())
    body = payload or {}
    conn.execute(
        text("""
            INSERT INTO activity_events
                (id, content_id, actor_id, event_type, payload, created_at, sequence)
            VALUES
                (:id, :content_id, :actor_id, :event_type, :payload, :created_at, :sequence)
        """),
        {
            "id": event_id,
            "content_id": content_id,
            "actor_id": str(actor_id),
            "event_type": event_type,
            "payload": json.dumps(body, sort_keys=True),
            "created_at": created_at,
            "sequence": sequence,
        },
    )

    return ActivityEvent(
        id=event_id,
        content_id=content_id,
        actor_id=str(actor_id),
        type=event_type,
        payload=body,
        created_at=parse_ts(created_at),
        sequence=sequence,
    )


# ----------------------------
# Cursor pagination
# ----------------------------

def encode_cursor(created_at: str, sequence: int) -> str:
    raw = json.dumps({"c": created_at, "s": sequence}, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[str, int]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
        created_at, sequence = data["c"], data["s"]
        parse_ts(created_at)
    except (binascii.Error, ValueError, KeyError, TypeError):
        raise ValidationError("Malformed activity cursor")
    if not isinstance(sequence, int) or isinstance(sequence, bool):
        raise ValidationError("Malformed activity cursor")
    return created_at, sequence


def _row_to_event(row) -> ActivityEvent:
    return ActivityEvent(
        id=row["id"],
        content_id=row["content_id"],
        actor_id=row["actor_id"],
        type=row["event_type"],
        payload=json.loads(row["payload"]),
        created_at=parse_ts(row["created_at"]),
        sequence=int(row["sequence"]),
    )


def list_activity(
    engine: Engine,
    content_id: str,
    limit: Optional[int] = None,
    cursor: Optional[str] = None,
) -> ActivityPage:
    """
    One page of events, newest first.

    `cursor` is the opaque `next_cursor` of the previous page. Rows appended
    after the first page was read sort ahead of it, so they never shift or
    repeat rows in later pages.
    """
    settings = get_settings()
    page_size = settings.activity_page_size if limit is None else int(limit)
    if page_size < 1 or page_size > settings.activity_page_max:
        raise ValidationError(f"limit must be between 1 and {settings.activity_page_max}")

    params: dict[str, Any] = {"content_id": str(content_id), "limit": page_size + 1}
    where = "content_id = :content_id"
    if cursor:
        params["c_at"], params["c_seq"] = decode_cursor(cursor)
        where += " AND (created_at < :c_at OR (created_at = :c_at AND sequence < :c_seq))"

    with engine.connect() as conn:
        exists = conn.execute(
            text("SELECT 1 FROM content_items WHERE id = :content_id"), {"content_id": str(content_id)}
        ).first()
        if exists is None:
            raise NotFound(f"Content '{content_id}' not found")

        rows = conn.execute(
            text(f"""
                SELECT id, content_id, actor_id, event_type, payload, created_at, sequence
                FROM activity_events
                WHERE {where}
                ORDER BY created_at DESC, sequence DESC
                LIMIT :limit
            """),
            params,
        ).mappings().all()

    has_more = len(rows) > page_size
    rows = rows[:page_size]
    next_cursor = None
    if has_more:
        last = rows[-1]
        next_cursor = encode_cursor(last["created_at"], int(last["sequence"]))
    return ActivityPage(items=[_row_to_event(r) for r in rows], next_cursor=next_cursor)


def iter_activity(engine: Engine, content_id: str, page_size: Optional[int] = None) -> Iterator[ActivityEvent]:
    """Lazily walk the whole history, newest first, one page at a time."""
    cursor: Optional[str] = None
    while True:
        page = list_activity(engine, content_id, limit=page_size, cursor=cursor)
        yield from page.items
        if page.next_cursor is None:
            return
        cursor = page.next_cursor
