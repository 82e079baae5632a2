"""Authorization decisions.

Pure functions over a resolved :class:`Principal`. The ``allow_*`` predicates
return booleans; the ``ensure_*`` variants raise :class:`ForbiddenError` so that
callers can tell "you lack access" (403) apart from "log in" (401).
"""

from __future__ import annotations

from typing import Any, Iterable

from rolevault.auth.models import Principal
from rolevault.auth.permissions import ADMIN
from rolevault.errors import ForbiddenError

# Roles that see and modify every user's files, API keys and requests.
PRIVILEGED_ROLES: frozenset[str] = frozenset({ADMIN})


def allow_roles(principal: Principal, required_roles: Iterable[str]) -> bool:
    required = set(required_roles)
    if not required:
        return True
    return principal.role in required


def allow_permissions(principal: Principal, required_permissions: Iterable[str]) -> bool:
    """Any one of ``required_permissions`` is enough (OR, not AND)."""
    required = set(required_permissions)
    if not required:
        return True
    return not required.isdisjoint(principal.permissions)


def allow_owner_or_privileged(
    principal: Principal,
    resource_owner_id: str | None,
    privileged_roles: Iterable[str] = PRIVILEGED_ROLES,
) -> bool:
    if principal.role in set(privileged_roles):
        return True
    return resource_owner_id is not None and principal.user_id == str(resource_owner_id)


def is_privileged(principal: Principal, privileged_roles: Iterable[str] = PRIVILEGED_ROLES) -> bool:
    return principal.role in set(privileged_roles)


def ensure_roles(principal: Principal, required_roles: Iterable[str]) -> None:
    required = list(required_roles)
    if not allow_roles(principal, required):
        raise ForbiddenError("access denied. insufficient role", required=required)


def ensure_permissions(principal: Principal, required_permissions: Iterable[str]) -> None:
    required = list(required_permissions)
    if not allow_permissions(principal, required):
        raise ForbiddenError("access denied. insufficient permissions", required=required)


def owner_scope(
    principal: Principal,
    owner_field: str,
    privileged_roles: Iterable[str] = PRIVILEGED_ROLES,
) -> dict[str, Any]:
    """
    Query fragment restricting a lookup to what ``principal`` may see.

    Missing and out-of-scope documents then look the same to the caller.
    """
    if is_privileged(principal, privileged_roles):
        return {}
    return {owner_field: principal.user_id}
