"""Review core schema

- teams, spaces, team_members (collaborator bindings)
- roles, role_permissions
- content_items (status + optimistic version + activity counter)
- comments
- activity_events (append-only, unique per (content_id, sequence))

Idempotent.
"""

from __future__ import annotations

from alembic import op

from contentflow.schema import DDL, TABLES

revision = "20261019_0001_review_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    for statement in DDL:
        op.execute(statement)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
