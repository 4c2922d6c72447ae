"""
Table definitions for the review core.

Plain DDL kept portable between PostgreSQL (production) and SQLite (tests):
text ids, fixed-width ISO-8601 text timestamps and JSON text payloads.
The alembic revision executes the same statements.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Engine

DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS teams (
        id             TEXT PRIMARY KEY,
        name           TEXT NOT NULL,
        roles_version  INTEGER NOT NULL DEFAULT 0,
        created_at     TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS spaces (
        id          TEXT PRIMARY KEY,
        team_id     TEXT NOT NULL REFERENCES teams (id),
        name        TEXT NOT NULL,
        created_at  TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS roles (
        id           TEXT PRIMARY KEY,
        team_id      TEXT NOT NULL REFERENCES teams (id),
        name         TEXT NOT NULL,
        description  TEXT NOT NULL DEFAULT '',
        is_system    BOOLEAN NOT NULL,
        is_default   BOOLEAN NOT NULL,
        version      INTEGER NOT NULL,
        created_at   TEXT NOT NULL,
        UNIQUE (team_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS role_permissions (
        role_id        TEXT NOT NULL REFERENCES roles (id) ON DELETE CASCADE,
        permission_id  TEXT NOT NULL,
        PRIMARY KEY (role_id, permission_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_members (
        team_id     TEXT NOT NULL REFERENCES teams (id),
        user_id     TEXT NOT NULL,
        role_id     TEXT NOT NULL REFERENCES roles (id),
        created_at  TEXT NOT NULL,
        PRIMARY KEY (team_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS content_items (
        id                TEXT PRIMARY KEY,
        team_id           TEXT NOT NULL REFERENCES teams (id),
        space_id          TEXT NOT NULL REFERENCES spaces (id),
        title             TEXT NOT NULL,
        description       TEXT NOT NULL DEFAULT '',
        content_type      TEXT NOT NULL,
        status            TEXT NOT NULL,
        creator_id        TEXT NOT NULL,
        created_at        TEXT NOT NULL,
        updated_at        TEXT NOT NULL,
        version           INTEGER NOT NULL,
        activity_seq      INTEGER NOT NULL DEFAULT 0,
        last_activity_at  TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id            TEXT PRIMARY KEY,
        content_id    TEXT NOT NULL REFERENCES content_items (id),
        author_id     TEXT NOT NULL,
        comment_type  TEXT NOT NULL,
        body          TEXT NOT NULL,
        created_at    TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_events (
        id          TEXT PRIMARY KEY,
        content_id  TEXT NOT NULL REFERENCES content_items (id),
        actor_id    TEXT NOT NULL,
        event_type  TEXT NOT NULL,
        payload     TEXT NOT NULL,
        created_at  TEXT NOT NULL,
        sequence    INTEGER NOT NULL,
        UNIQUE (content_id, sequence)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_spaces_team ON spaces (team_id)",
    "CREATE INDEX IF NOT EXISTS ix_team_members_role ON team_members (role_id)",
    "CREATE INDEX IF NOT EXISTS ix_content_items_team_space ON content_items (team_id, space_id)",
    "CREATE INDEX IF NOT EXISTS ix_comments_content ON comments (content_id, created_at)",
    "CREATE INDEX IF NOT EXISTS ix_activity_events_cursor ON activity_events (content_id, created_at, sequence)",
)

TABLES: tuple[str, ...] = (
    "activity_events",
    "comments",
    "content_items",
    "team_members",
    "role_permissions",
    "roles",
    "spaces",
    "teams",
)


def create_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        for statement in DDL:
            conn.execute(text(statement))


def drop_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        for table in TABLES:
            conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
