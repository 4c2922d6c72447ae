from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

from contentflow.permissions import GrantSet

ContentStatus = Literal[
    "draft",
    "review",
    "revisions",
    "approval",
    "approved",
    "published",
    "archived",
]

CommentType = Literal["general", "revision", "approval", "rejection"]

ActivityType = Literal[
    "status_change",
    "comment_added",
    "comment_deleted",
    "content_created",
    "content_updated",
]

COMMENT_TYPES: tuple[str, ...] = ("general", "revision", "approval", "rejection")

ACTIVITY_TYPES: tuple[str, ...] = (
    "status_change",
    "comment_added",
    "comment_deleted",
    "content_created",
    "content_updated",
)


@dataclass(frozen=True)
class Role:
    id: str
    team_id: str
    name: str
    description: str
    grants: GrantSet
    is_system: bool
    is_default: bool
    version: int
    created_at: datetime


@dataclass(frozen=True)
class TeamMember:
    user_id: str
    team_id: str
    role_id: str


@dataclass(frozen=True)
class Content:
    id: str
    team_id: str
    space_id: str
    title: str
    description: str
    content_type: str
    status: str
    creator_id: str
    created_at: datetime
    updated_at: datetime
    version: int


@dataclass(frozen=True)
class Comment:
    id: str
    content_id: str
    author_id: str
    type: str
    text: str
    created_at: datetime


@dataclass(frozen=True)
class ActivityEvent:
    id: str
    content_id: str
    actor_id: str
    type: str
    payload: dict[str, Any]
    created_at: datetime
    sequence: int


@dataclass(frozen=True)
class ActivityPage:
    items: list[ActivityEvent]
    next_cursor: Optional[str]
