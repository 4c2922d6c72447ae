from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from contentflow import activity, authz, comments, content, roles, teams, workflow
from contentflow.config import get_settings
from contentflow.db import db_ping, get_engine
from contentflow.errors import ContentFlowError
from contentflow.logging_setup import configure_logging
from contentflow.models import Role
from contentflow.permissions import (
    CONTENT_VIEW,
    TEAM_VIEW,
    Permission,
    list_permissions,
)
from contentflow.schemas import (
    ActivityPageOut,
    AllowedTransitionsOut,
    CommentCreateIn,
    CommentOut,
    ContentCreateIn,
    ContentListOut,
    ContentOut,
    ContentUpdateIn,
    GrantToggleIn,
    MemberOut,
    MemberRoleIn,
    PermissionCheckOut,
    PermissionOut,
    RoleCreateIn,
    RoleDeleteOut,
    RoleOut,
    RolePermissionsOut,
    StepIn,
    TransitionIn,
    WorkflowOut,
)

_settings = get_settings()
configure_logging(level=_settings.log_level, format_type=_settings.log_format)

logger = logging.getLogger(__name__)

app = FastAPI(title="Content Review API", version="1.0.0")


@app.exception_handler(ContentFlowError)
def contentflow_error_handler(request: Request, exc: ContentFlowError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "kind": exc.kind})


def require_actor(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> str:
    """
    Actor identity is authenticated upstream and forwarded in "X-Actor-Id".
    """
    actor = (x_actor_id or "").strip()
    if not actor:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    return actor


def _require_read(engine: Engine, actor_id: str, permission: Permission, resource_type: str, resource_id: str) -> None:
    if not authz.has_permission(engine, actor_id, permission, resource_type, resource_id):
        raise HTTPException(status_code=403, detail=f"Missing permission {permission}")


def _role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        team_id=role.team_id,
        name=role.name,
        description=role.description,
        grants=list(role.grants),
        is_system=role.is_system,
        is_default=role.is_default,
        version=role.version,
        created_at=role.created_at,
    )


# -----------------------------
# Health checks
# -----------------------------
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz(engine: Engine = Depends(get_engine)):
    db_ping(engine)
    return {"status": "ready", "db": "ok"}


# -----------------------------
# Permissions & roles
# -----------------------------
@app.get("/permissions", response_model=list[PermissionOut])
def permission_catalog():
    return [
        PermissionOut(id=p.id, namespace=p.namespace, action=p.action, description=p.description)
        for p in list_permissions()
    ]


@app.get("/permissions/check", response_model=PermissionCheckOut)
def permission_check(
    permission: str,
    resource_type: str,
    resource_id: str,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    # Advisory for UI affordances; every mutation re-checks on its own.
    return PermissionCheckOut(
        permission=permission,
        resource_type=resource_type,
        resource_id=resource_id,
        has_permission=authz.has_permission(engine, actor_id, permission, resource_type, resource_id),
    )


@app.get("/teams/{team_id}/roles", response_model=list[RoleOut])
def list_team_roles(team_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, TEAM_VIEW, "team", team_id)
    return [_role_out(r) for r in roles.list_roles(engine, team_id)]


@app.post("/teams/{team_id}/roles", response_model=RoleOut, status_code=201)
def create_team_role(
    team_id: str,
    body: RoleCreateIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    role = roles.create_role(
        engine, team_id, body.name, body.grants, actor_id, description=body.description
    )
    return _role_out(role)


@app.get("/roles/{role_id}/permissions", response_model=RolePermissionsOut)
def role_permissions(role_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, TEAM_VIEW, "role", role_id)
    view = roles.get_role_permissions(engine, role_id)
    return RolePermissionsOut(role=_role_out(view.role), permissions=view.permissions, groups=view.groups)


@app.put("/roles/{role_id}/permissions/{permission_id}", response_model=RoleOut)
def toggle_role_permission(
    role_id: str,
    permission_id: str,
    body: GrantToggleIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    role = roles.set_permission(
        engine, role_id, permission_id, body.granted, actor_id, expected_version=body.expected_version
    )
    return _role_out(role)


@app.put("/roles/{role_id}/groups/{namespace}", response_model=RoleOut)
def toggle_role_group(
    role_id: str,
    namespace: str,
    body: GrantToggleIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    role = roles.set_group_permissions(
        engine, role_id, namespace, body.granted, actor_id, expected_version=body.expected_version
    )
    return _role_out(role)


@app.post("/roles/{role_id}/default", response_model=RoleOut)
def make_default_role(role_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    return _role_out(roles.set_default_role(engine, role_id, actor_id))


@app.delete("/roles/{role_id}", response_model=RoleDeleteOut)
def remove_role(
    role_id: str,
    reassign_to: Optional[str] = None,
    expected_version: Optional[int] = Query(None, ge=1),
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    promoted = roles.delete_role(
        engine, role_id, actor_id, reassign_to=reassign_to, expected_version=expected_version
    )
    return RoleDeleteOut(deleted_role_id=role_id, promoted_default_role_id=promoted)


@app.get("/teams/{team_id}/members", response_model=list[MemberOut])
def team_members(team_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, TEAM_VIEW, "team", team_id)
    return teams.list_members(engine, team_id)


@app.put("/teams/{team_id}/members/{user_id}", response_model=MemberOut)
def assign_member_role(
    team_id: str,
    user_id: str,
    body: MemberRoleIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return teams.set_member_role(engine, team_id, user_id, body.role_id, actor_id)


# -----------------------------
# Workflow
# -----------------------------
@app.get("/workflow", response_model=WorkflowOut)
def workflow_definition():
    return {
        "states": workflow.list_states(),
        "steps": list(workflow.STEPS),
        "edges": [
            {
                "from_status": e.from_status,
                "to_status": e.to_status,
                "permissions": [p.id for p in e.permissions],
            }
            for e in workflow.TRANSITIONS.values()
        ],
    }


@app.get("/content/{content_id}/allowed", response_model=AllowedTransitionsOut)
def content_allowed(content_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, CONTENT_VIEW, "content", content_id)
    return content.allowed_transitions(engine, content_id, actor_id)


@app.post("/content/{content_id}/transition", response_model=ContentOut)
def transition(
    content_id: str,
    body: TransitionIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return content.transition_status(
        engine, content_id, body.to_status, actor_id, expected_version=body.expected_version
    )


@app.post("/content/{content_id}/next", response_model=ContentOut)
def next_step(
    content_id: str,
    body: StepIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return content.move_to_next_step(engine, content_id, actor_id, expected_version=body.expected_version)


@app.post("/content/{content_id}/previous", response_model=ContentOut)
def previous_step(
    content_id: str,
    body: StepIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return content.move_to_previous_step(engine, content_id, actor_id, expected_version=body.expected_version)


# -----------------------------
# Content endpoints
# -----------------------------
@app.get("/teams/{team_id}/content", response_model=ContentListOut)
def list_team_content(
    team_id: str,
    space_id: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort: str = "created_at_desc",
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    _require_read(engine, actor_id, CONTENT_VIEW, "team", team_id)
    items, total = content.list_content(
        engine, team_id, space_id=space_id, status=status, q=q, limit=limit, offset=offset, sort=sort
    )
    return {"items": items, "limit": limit, "offset": offset, "total": total}


@app.post("/content", response_model=ContentOut, status_code=201)
def create_content(body: ContentCreateIn, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    return content.create_content(
        engine,
        space_id=body.space_id,
        title=body.title,
        actor_id=actor_id,
        description=body.description,
        content_type=body.content_type,
    )


@app.get("/content/{content_id}", response_model=ContentOut)
def get_content(content_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, CONTENT_VIEW, "content", content_id)
    return content.get_content(engine, content_id)


@app.patch("/content/{content_id}", response_model=ContentOut)
def update_content(
    content_id: str,
    body: ContentUpdateIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return content.update_content(
        engine,
        content_id,
        actor_id,
        title=body.title,
        description=body.description,
        expected_version=body.expected_version,
    )


@app.delete("/content/{content_id}", response_model=ContentOut)
def archive_content(
    content_id: str,
    expected_version: Optional[int] = Query(None, ge=1),
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    # Content with history is archived, never removed.
    return content.archive_content(engine, content_id, actor_id, expected_version=expected_version)


# -----------------------------
# Comments & activity
# -----------------------------
@app.get("/content/{content_id}/comments", response_model=list[CommentOut])
def get_comments(content_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    _require_read(engine, actor_id, CONTENT_VIEW, "content", content_id)
    return comments.list_comments(engine, content_id)


@app.post("/content/{content_id}/comments", response_model=CommentOut, status_code=201)
def post_comment(
    content_id: str,
    body: CommentCreateIn,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    return comments.add_comment(engine, content_id, actor_id, body.type, body.text)


@app.delete("/comments/{comment_id}", status_code=204)
def remove_comment(comment_id: str, actor_id: str = Depends(require_actor), engine: Engine = Depends(get_engine)):
    comments.delete_comment(engine, comment_id, actor_id)


@app.get("/content/{content_id}/activity", response_model=ActivityPageOut)
def get_activity(
    content_id: str,
    limit: Optional[int] = Query(None, ge=1),
    cursor: Optional[str] = None,
    actor_id: str = Depends(require_actor),
    engine: Engine = Depends(get_engine),
):
    _require_read(engine, actor_id, CONTENT_VIEW, "content", content_id)
    page = activity.list_activity(engine, content_id, limit=limit, cursor=cursor)
    return {"items": page.items, "next_cursor": page.next_cursor}
