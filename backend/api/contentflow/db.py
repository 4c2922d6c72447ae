# backend/api/contentflow/db.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from contentflow.config import get_settings

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_engine: Engine | None = None


def make_engine(db_url: str) -> Engine:
    connect_args = {}
    if db_url.startswith("sqlite"):
        # API handlers run in a threadpool; the pool hands connections across threads.
        connect_args["check_same_thread"] = False
    return create_engine(db_url, pool_pre_ping=True, future=True, connect_args=connect_args)


def get_engine() -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    _engine = make_engine(get_settings().require_database_url())
    return _engine


def db_ping(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1")).scalar_one()


def utc_now() -> str:
    """Fixed-width UTC timestamp; lexical order equals chronological order."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def as_bool(value) -> bool:
    # SQLite hands booleans back as 0/1.
    return bool(value)


def parse_ts(value) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
