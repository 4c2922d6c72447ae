from __future__ import annotations


class ContentFlowError(Exception):
    """Base class for every failure the review core reports to callers."""

    kind = "error"
    status_code = 400


class NotFound(ContentFlowError):
    """Unknown role/content/comment, or no declared edge for a status pair."""

    kind = "not_found"
    status_code = 404


class Forbidden(ContentFlowError):
    """Permission check failed, or a mutation targeted a system role."""

    kind = "forbidden"
    status_code = 403


class Conflict(ContentFlowError):
    """Stale version, or a role deletion without a valid reassignment."""

    kind = "conflict"
    status_code = 409


class InvalidState(ContentFlowError):
    """Requested target status is unreachable from the current status."""

    kind = "invalid_state"
    status_code = 409


class ValidationError(ContentFlowError):
    """Malformed grant list, comment payload or request parameter."""

    kind = "validation_error"
    status_code = 422
