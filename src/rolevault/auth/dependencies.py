from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Header, Request

from rolevault.auth.gate import ensure_permissions, ensure_roles
from rolevault.auth.models import Principal
from rolevault.auth.resolver import PrincipalResolver
from rolevault.errors import AuthError, ForbiddenError
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        log.info("auth.malformed_authorization_header scheme=%s", scheme)
        raise AuthError()
    return token.strip()


def _resolver(request: Request) -> PrincipalResolver:
    return request.app.state.principal_resolver


async def get_principal(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Principal:
    """Authenticated principal for the current request (401 otherwise)."""
    token = _bearer_token(authorization)
    return await _resolver(request).resolve(token)


def require_roles(*roles: str) -> Callable:
    """Role gate. No roles means any authenticated principal."""

    async def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        try:
            ensure_roles(principal, roles)
        except ForbiddenError:
            log.info(
                "auth.role_denied user_id=%s role=%s required=%s",
                principal.user_id,
                principal.role,
                roles,
            )
            raise
        return principal

    return _dep


def require_permissions(*permissions: str) -> Callable:
    """Permission gate. Holding any one of ``permissions`` is enough."""

    async def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        try:
            ensure_permissions(principal, permissions)
        except ForbiddenError:
            log.info(
                "auth.permission_denied user_id=%s role=%s required=%s",
                principal.user_id,
                principal.role,
                permissions,
            )
            raise
        return principal

    return _dep
