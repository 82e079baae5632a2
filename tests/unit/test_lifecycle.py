from __future__ import annotations

import pytest

from conftest import make_principal
from rolevault.auth import permissions as perms
from rolevault.domain import lifecycle
from rolevault.errors import ConflictError, ForbiddenError, ValidationError


def test_transitions() -> None:
    assert lifecycle.can_transition("pending", "approved")
    assert lifecycle.can_transition("pending", "denied")
    assert not lifecycle.can_transition("approved", "denied")
    assert not lifecycle.can_transition("denied", "approved")
    assert not lifecycle.can_transition("pending", "pending")
    assert lifecycle.is_terminal("approved") and lifecycle.is_terminal("denied")
    assert not lifecycle.is_terminal("pending")


def test_submit_needs_create_permission() -> None:
    with pytest.raises(ForbiddenError):
        lifecycle.ensure_can_submit(make_principal("u3", "admin"), "feature_access")
    lifecycle.ensure_can_submit(make_principal("u1", "viewer"), "feature_access")


def test_api_key_request_needs_api_key_permission() -> None:
    with pytest.raises(ForbiddenError) as exc:
        lifecycle.ensure_can_submit(make_principal("u1", "viewer"), "api_key")
    assert exc.value.required == [perms.API_KEYS_CREATE]
    lifecycle.ensure_can_submit(make_principal("u2", "contributor"), "api_key")


def test_approve_and_reject_are_separate_grants() -> None:
    approver = make_principal("u4", "viewer", permissions=[perms.REQUESTS_APPROVE])
    lifecycle.ensure_can_review(approver, "approved")
    with pytest.raises(ForbiddenError):
        lifecycle.ensure_can_review(approver, "denied")


def test_review_target_must_be_terminal() -> None:
    with pytest.raises(ValidationError):
        lifecycle.ensure_can_review(make_principal("u3", "admin"), "pending")


def test_ensure_reviewable() -> None:
    lifecycle.ensure_reviewable("pending", "approved")
    with pytest.raises(ConflictError):
        lifecycle.ensure_reviewable("approved", "denied")


def test_editable_changes_drops_workflow_fields() -> None:
    changes = {"title": "New title", "status": "approved", "reviewed_by": "u3", "priority": None}
    assert lifecycle.editable_changes(changes) == {"title": "New title"}


def test_scopes() -> None:
    viewer = make_principal("u1", "viewer")
    assert lifecycle.edit_scope(viewer) == {"requested_by": "u1", "status": "pending"}
    assert lifecycle.delete_scope(viewer) == {"requested_by": "u1", "status": "pending"}
    assert lifecycle.delete_scope(make_principal("u3", "admin")) == {}
