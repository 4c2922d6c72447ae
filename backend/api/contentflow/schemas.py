from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ContentStatus = Literal["draft", "review", "revisions", "approval", "approved", "published", "archived"]


class PermissionOut(BaseModel):
    id: str
    namespace: str
    action: str
    description: str


class RolePermissionOut(PermissionOut):
    granted: bool


class GroupStateOut(BaseModel):
    namespace: str
    fully_enabled: bool
    partially_enabled: bool


class RoleOut(BaseModel):
    id: str
    team_id: str
    name: str
    description: str
    grants: List[str]
    is_system: bool
    is_default: bool
    version: int
    created_at: datetime


class RolePermissionsOut(BaseModel):
    role: RoleOut
    permissions: List[RolePermissionOut]
    groups: List[GroupStateOut]


class RoleCreateIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    grants: List[str] = Field(default_factory=list)


class GrantToggleIn(BaseModel):
    granted: bool
    expected_version: Optional[int] = Field(None, ge=1)


class RoleDeleteOut(BaseModel):
    deleted_role_id: str
    promoted_default_role_id: Optional[str] = None


class MemberRoleIn(BaseModel):
    role_id: str


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    team_id: str
    role_id: str


class ContentCreateIn(BaseModel):
    space_id: str
    title: str = Field(..., min_length=1, max_length=400)
    description: str = Field("", max_length=10000)
    content_type: str = Field("post", min_length=1, max_length=50)


class ContentUpdateIn(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=400)
    description: Optional[str] = Field(None, max_length=10000)
    expected_version: Optional[int] = Field(None, ge=1)


class ContentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    team_id: str
    space_id: str
    title: str
    description: str
    content_type: str
    status: ContentStatus
    creator_id: str
    created_at: datetime
    updated_at: datetime
    version: int


class ContentListOut(BaseModel):
    items: List[ContentOut]
    limit: int
    offset: int
    total: int


class TransitionIn(BaseModel):
    to_status: str
    expected_version: Optional[int] = Field(None, ge=1)


class StepIn(BaseModel):
    expected_version: Optional[int] = Field(None, ge=1)


class AllowedTransitionsOut(BaseModel):
    content_id: str
    from_status: ContentStatus
    version: int
    allowed: List[ContentStatus]


class EdgeOut(BaseModel):
    from_status: ContentStatus
    to_status: ContentStatus
    permissions: List[str]


class WorkflowOut(BaseModel):
    states: List[ContentStatus]
    steps: List[ContentStatus]
    edges: List[EdgeOut]


class CommentCreateIn(BaseModel):
    type: str = "general"
    text: str


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content_id: str
    author_id: str
    type: str
    text: str
    created_at: datetime


class ActivityEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content_id: str
    actor_id: str
    type: str
    payload: Dict[str, Any]
    created_at: datetime
    sequence: int


class ActivityPageOut(BaseModel):
    items: List[ActivityEventOut]
    next_cursor: Optional[str] = None


class PermissionCheckOut(BaseModel):
    permission: str
    resource_type: str
    resource_id: str
    has_permission: bool
