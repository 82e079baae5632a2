"""Permission vocabulary and the static role -> default permission table.

Accounts snapshot ``permissions_for_role(role)`` once, when they are created.
After that the stored list is authoritative and is never recomputed from the
role, so administrative overrides survive role edits.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from rolevault.errors import ValidationError

ADMIN = "admin"
CONTRIBUTOR = "contributor"
VIEWER = "viewer"

ROLES: tuple[str, ...] = (ADMIN, CONTRIBUTOR, VIEWER)

REQUESTS_CREATE = "rv.requests.create"
REQUESTS_VIEW = "rv.requests.view"
REQUESTS_VIEW_ALL = "rv.requests.viewAll"
REQUESTS_APPROVE = "rv.requests.approve"
REQUESTS_REJECT = "rv.requests.reject"
FILES_UPLOAD = "rv.files.upload"
FILES_DOWNLOAD = "rv.files.download"
FILES_MAKE_PUBLIC = "rv.files.makePublic"
API_KEYS_CREATE = "rv.apiKeys.create"
API_KEYS_VIEW = "rv.apiKeys.view"
API_KEYS_MANAGE = "rv.apiKeys.manage"
API_KEYS_VIEW_ALL = "rv.apiKeys.viewAll"
API_KEYS_DELETE_ALL = "rv.apiKeys.deleteAll"
USERS_MANAGE = "rv.users.manage"

# Closed catalog. Anything outside it is rejected on write.
PERMISSIONS: tuple[str, ...] = (
    REQUESTS_CREATE,
    REQUESTS_VIEW,
    REQUESTS_VIEW_ALL,
    REQUESTS_APPROVE,
    REQUESTS_REJECT,
    FILES_UPLOAD,
    FILES_DOWNLOAD,
    FILES_MAKE_PUBLIC,
    API_KEYS_CREATE,
    API_KEYS_VIEW,
    API_KEYS_MANAGE,
    API_KEYS_VIEW_ALL,
    API_KEYS_DELETE_ALL,
    USERS_MANAGE,
)
PERMISSION_SET: frozenset[str] = frozenset(PERMISSIONS)

ROLE_PERMISSIONS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        ADMIN: (
            REQUESTS_VIEW_ALL,
            REQUESTS_APPROVE,
            REQUESTS_REJECT,
            FILES_UPLOAD,
            FILES_DOWNLOAD,
            FILES_MAKE_PUBLIC,
            API_KEYS_CREATE,
            API_KEYS_VIEW,
            API_KEYS_MANAGE,
            API_KEYS_VIEW_ALL,
            API_KEYS_DELETE_ALL,
            USERS_MANAGE,
        ),
        CONTRIBUTOR: (
            FILES_UPLOAD,
            FILES_DOWNLOAD,
            REQUESTS_CREATE,
            REQUESTS_VIEW,
            API_KEYS_CREATE,
            API_KEYS_VIEW,
            API_KEYS_MANAGE,
        ),
        VIEWER: (
            FILES_DOWNLOAD,
            REQUESTS_CREATE,
            REQUESTS_VIEW,
        ),
    }
)


def is_role(value: str) -> bool:
    return value in ROLE_PERMISSIONS


def permissions_for_role(role: str) -> list[str]:
    """Default permissions for ``role``; an unknown role yields an empty list."""
    return list(ROLE_PERMISSIONS.get(role, ()))


def all_role_permissions() -> dict[str, list[str]]:
    return {role: list(perms) for role, perms in ROLE_PERMISSIONS.items()}


def all_permissions() -> list[str]:
    seen: dict[str, None] = {}
    for perms in ROLE_PERMISSIONS.values():
        for p in perms:
            seen.setdefault(p, None)
    return list(seen)


def role_has_permission(role: str, permission: str) -> bool:
    return permission in ROLE_PERMISSIONS.get(role, ())


def normalize_permissions(values: Iterable[str]) -> list[str]:
    """
    Validate ``values`` against the catalog and drop duplicates.

    First-occurrence order is kept so that writing the same list twice stores
    the same document.
    """
    out: list[str] = []
    unknown: list[str] = []
    for raw in values:
        value = str(raw).strip()
        if value not in PERMISSION_SET:
            unknown.append(value)
            continue
        if value not in out:
            out.append(value)
    if unknown:
        raise ValidationError(
            "validation error",
            errors=[{"field": "permissions", "message": f"unknown permission '{p}'"} for p in unknown],
        )
    return out
