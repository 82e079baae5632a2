"""Approval request state machine.

``pending -> approved`` and ``pending -> denied``; both targets are terminal.
The guards below decide who may move a request. Persisting a transition is the
repository's job and must re-check ``status == pending`` atomically.
"""

from __future__ import annotations

from typing import Any, Mapping

from rolevault.auth import permissions as perms
from rolevault.auth.gate import ensure_permissions, is_privileged
from rolevault.auth.models import Principal
from rolevault.errors import ConflictError, ValidationError

PENDING = "pending"
APPROVED = "approved"
DENIED = "denied"

TERMINAL_STATES: frozenset[str] = frozenset({APPROVED, DENIED})

TRANSITIONS: Mapping[str, frozenset[str]] = {
    PENDING: frozenset({APPROVED, DENIED}),
    APPROVED: frozenset(),
    DENIED: frozenset(),
}

# Approving and denying are separate grants.
REVIEW_PERMISSION: Mapping[str, str] = {
    APPROVED: perms.REQUESTS_APPROVE,
    DENIED: perms.REQUESTS_REJECT,
}

EDITABLE_FIELDS: frozenset[str] = frozenset({"title", "description", "priority", "metadata"})

# Extra permission a request type needs on top of rv.requests.create.
TYPE_PERMISSIONS: Mapping[str, str] = {
    "api_key": perms.API_KEYS_CREATE,
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def ensure_can_submit(principal: Principal, request_type: str) -> None:
    ensure_permissions(principal, [perms.REQUESTS_CREATE])
    extra = TYPE_PERMISSIONS.get(request_type)
    if extra is not None:
        ensure_permissions(principal, [extra])


def ensure_can_review(principal: Principal, target: str) -> None:
    required = REVIEW_PERMISSION.get(target)
    if required is None:
        raise ValidationError(
            "validation error",
            errors=[{"field": "status", "message": "status must be one of approved, denied"}],
        )
    ensure_permissions(principal, [required])


def ensure_reviewable(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise ConflictError("request not found or already reviewed")


def editable_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}


def delete_scope(principal: Principal) -> dict[str, Any]:
    """Filter a delete must match: any request for privileged roles, own pending otherwise."""
    if is_privileged(principal):
        return {}
    return {"requested_by": principal.user_id, "status": PENDING}


def edit_scope(principal: Principal) -> dict[str, Any]:
    return {"requested_by": principal.user_id, "status": PENDING}
