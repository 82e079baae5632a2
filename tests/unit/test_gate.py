from __future__ import annotations

import pytest

from conftest import make_principal
from rolevault.auth import gate
from rolevault.auth import permissions as perms
from rolevault.errors import ForbiddenError


def test_empty_requirements_allow_any_principal() -> None:
    p = make_principal("u1", "viewer", permissions=[])
    assert gate.allow_roles(p, [])
    assert gate.allow_permissions(p, [])


def test_permissions_are_or_semantics() -> None:
    p = make_principal("u1", "viewer", permissions=[perms.REQUESTS_REJECT])
    assert gate.allow_permissions(p, [perms.REQUESTS_APPROVE, perms.REQUESTS_REJECT])
    assert not gate.allow_permissions(p, [perms.REQUESTS_APPROVE])


def test_allow_roles() -> None:
    p = make_principal("u1", "contributor")
    assert gate.allow_roles(p, ["admin", "contributor"])
    assert not gate.allow_roles(p, ["admin"])


@pytest.mark.parametrize(
    "held, required",
    [
        ([], [perms.FILES_UPLOAD]),
        ([perms.FILES_UPLOAD], [perms.FILES_UPLOAD, perms.FILES_DOWNLOAD]),
        ([perms.USERS_MANAGE], [perms.REQUESTS_APPROVE]),
    ],
)
def test_granting_more_never_revokes(held, required) -> None:
    before = gate.allow_permissions(make_principal("u1", "viewer", permissions=held), required)
    more = [*held, perms.FILES_DOWNLOAD]
    after = gate.allow_permissions(make_principal("u1", "viewer", permissions=more), required)
    assert after or not before


def test_owner_or_privileged() -> None:
    owner = make_principal("u1", "viewer")
    other = make_principal("u2", "contributor")
    admin = make_principal("u3", "admin")
    assert gate.allow_owner_or_privileged(owner, "u1")
    assert not gate.allow_owner_or_privileged(other, "u1")
    assert gate.allow_owner_or_privileged(admin, "u1")
    assert not gate.allow_owner_or_privileged(owner, None)


def test_custom_privileged_roles() -> None:
    p = make_principal("u2", "contributor")
    assert gate.allow_owner_or_privileged(p, "u1", privileged_roles={"contributor"})


def test_ensure_permissions_reports_required() -> None:
    p = make_principal("u1", "viewer")
    with pytest.raises(ForbiddenError) as exc:
        gate.ensure_permissions(p, [perms.USERS_MANAGE])
    assert exc.value.http_status == 403
    assert exc.value.payload() == {"required": [perms.USERS_MANAGE]}


def test_owner_scope() -> None:
    assert gate.owner_scope(make_principal("u1", "viewer"), "user_id") == {"user_id": "u1"}
    assert gate.owner_scope(make_principal("u3", "admin"), "user_id") == {}
