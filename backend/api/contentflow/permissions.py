"""Static permission catalog and the flat grant-set value object."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping

from contentflow.errors import ValidationError


@dataclass(frozen=True)
class Permission:
    """A namespaced capability. The namespace is fixed when the catalog is defined."""

    namespace: str
    action: str
    description: str

    @property
    def id(self) -> str:
        return f"{self.namespace}:{self.action}"

    def __str__(self) -> str:
        return self.id


def _group(namespace: str, actions: Iterable[tuple[str, str]]) -> tuple[Permission, ...]:
    return tuple(Permission(namespace, action, description) for action, description in actions)


PERMISSIONS: tuple[Permission, ...] = (
    *_group(
        "team",
        (
            ("view", "View team details and members"),
            ("edit", "Edit team details and settings"),
            ("delete", "Delete the team"),
            ("manage_members", "Add, remove, and manage team members"),
            ("manage_roles", "Manage role permissions"),
            ("manage_settings", "Manage team settings"),
            ("create_spaces", "Create collaboration spaces"),
            ("owner", "Full control over the team"),
            ("admin", "Administrative access to most team features"),
        ),
    ),
    *_group(
        "content",
        (
            ("view", "View content within collaboration spaces"),
            ("create", "Create new content and submit it for review"),
            ("edit", "Edit content"),
            ("delete", "Delete content"),
            ("approve", "Approve content for publishing"),
            ("publish", "Publish approved content"),
            ("comment", "Comment on content"),
        ),
    ),
    *_group(
        "space",
        (
            ("view", "View collaboration spaces"),
            ("create", "Create new collaboration spaces"),
            ("edit", "Edit collaboration space details"),
            ("delete", "Delete collaboration spaces"),
            ("manage", "Manage collaboration space settings"),
            ("invite", "Invite users to collaboration spaces"),
        ),
    ),
    *_group(
        "analytics",
        (
            ("view", "View analytics data"),
            ("export", "Export analytics data"),
            ("share", "Share analytics reports"),
        ),
    ),
    *_group(
        "message",
        (
            ("send", "Send messages within the team"),
            ("view", "View messages"),
        ),
    ),
    *_group(
        "file",
        (
            ("upload", "Upload files"),
            ("download", "Download files"),
            ("delete", "Delete files"),
        ),
    ),
)

PERMISSION_REGISTRY: Mapping[str, Permission] = {p.id: p for p in PERMISSIONS}

if len(PERMISSION_REGISTRY) != len(PERMISSIONS):
    raise RuntimeError("duplicate permission id in catalog")

NAMESPACES: tuple[str, ...] = tuple(dict.fromkeys(p.namespace for p in PERMISSIONS))


def _by_id(permission_id: str) -> Permission:
    return PERMISSION_REGISTRY[permission_id]


TEAM_VIEW = _by_id("team:view")
TEAM_DELETE = _by_id("team:delete")
TEAM_OWNER = _by_id("team:owner")
TEAM_MANAGE_MEMBERS = _by_id("team:manage_members")
TEAM_MANAGE_ROLES = _by_id("team:manage_roles")
CONTENT_VIEW = _by_id("content:view")
CONTENT_CREATE = _by_id("content:create")
CONTENT_EDIT = _by_id("content:edit")
CONTENT_DELETE = _by_id("content:delete")
CONTENT_APPROVE = _by_id("content:approve")
CONTENT_PUBLISH = _by_id("content:publish")
CONTENT_COMMENT = _by_id("content:comment")
SPACE_MANAGE = _by_id("space:manage")


def list_permissions() -> list[Permission]:
    return list(PERMISSIONS)


def get_permission(permission_id: str | Permission) -> Permission:
    """Resolve an id (or pass a Permission through); unknown ids are a ValidationError."""
    if isinstance(permission_id, Permission):
        return permission_id
    if not isinstance(permission_id, str):
        raise ValidationError(f"Permission id must be a string, got {type(permission_id).__name__}")
    permission = PERMISSION_REGISTRY.get(permission_id.strip())
    if permission is None:
        raise ValidationError(f"Permission '{permission_id}' is not registered")
    return permission


def permissions_in(namespace: str) -> tuple[Permission, ...]:
    if namespace not in NAMESPACES:
        raise ValidationError(f"Unknown permission namespace '{namespace}'")
    return tuple(p for p in PERMISSIONS if p.namespace == namespace)


class GrantSet:
    """
    Immutable set of granted permission ids.

    Group enable is a union with the namespace, group disable a difference,
    so a group operation always leaves the whole namespace on or off.
    """

    __slots__ = ("_ids",)

    def __init__(self, permissions: Iterable[str | Permission] = ()) -> None:
        self._ids = frozenset(get_permission(p).id for p in permissions)

    @classmethod
    def parse(cls, raw) -> "GrantSet":
        """Build from untrusted input; anything but a list of known ids is rejected."""
        if raw is None:
            return cls()
        if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple, set, frozenset)):
            raise ValidationError("Grants must be a list of permission ids")
        return cls(raw)

    def __contains__(self, permission: object) -> bool:
        if isinstance(permission, Permission):
            return permission.id in self._ids
        return permission in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GrantSet):
            return self._ids == other._ids
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._ids)

    def __repr__(self) -> str:
        return f"GrantSet({sorted(self._ids)!r})"

    @property
    def ids(self) -> frozenset[str]:
        return self._ids

    def with_permission(self, permission: str | Permission, granted: bool) -> "GrantSet":
        pid = get_permission(permission).id
        if granted:
            return GrantSet(self._ids | {pid})
        return GrantSet(self._ids - {pid})

    def with_group(self, namespace: str, granted: bool) -> "GrantSet":
        group = {p.id for p in permissions_in(namespace)}
        if granted:
            return GrantSet(self._ids | group)
        return GrantSet(self._ids - group)


# Derived read views over (catalog, grants). Never stored.

def is_group_fully_enabled(grants: GrantSet | Iterable[str], namespace: str) -> bool:
    granted = grants if isinstance(grants, GrantSet) else GrantSet(grants)
    return all(p in granted for p in permissions_in(namespace))


def is_group_partially_enabled(grants: GrantSet | Iterable[str], namespace: str) -> bool:
    granted = grants if isinstance(grants, GrantSet) else GrantSet(grants)
    enabled = sum(1 for p in permissions_in(namespace) if p in granted)
    return 0 < enabled < len(permissions_in(namespace))


def catalog_with_grants(grants: GrantSet) -> list[dict]:
    """Full catalog, each entry flagged with whether `grants` holds it."""
    return [
        {
            "id": p.id,
            "namespace": p.namespace,
            "action": p.action,
            "description": p.description,
            "granted": p in grants,
        }
        for p in PERMISSIONS
    ]


def group_states(grants: GrantSet) -> list[dict]:
    return [
        {
            "namespace": ns,
            "fully_enabled": is_group_fully_enabled(grants, ns),
            "partially_enabled": is_group_partially_enabled(grants, ns),
        }
        for ns in NAMESPACES
    ]
