from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from rolevault.auth import permissions as perms
from rolevault.auth.dependencies import require_permissions
from rolevault.auth.models import Principal
from rolevault.domain.entities.user import UserCreateRequest, UserListQuery, UserUpdateRequest
from rolevault.services.user_service import UserService
from rolevault.utils.response import success
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

manage_users = require_permissions(perms.USERS_MANAGE)


def _service(request: Request) -> UserService:
    return request.app.state.user_service


@router.get("")
async def list_users(
    request: Request,
    q: Annotated[UserListQuery, Query()],
    principal: Principal = Depends(manage_users),
) -> dict:
    data = await _service(request).list(q)
    log.info(
        "users.list.done user_id=%s returned=%s total=%s",
        principal.user_id,
        len(data["users"]),
        data["pagination"]["total"],
    )
    return success(data)


@router.post("", status_code=201)
async def create_user(
    request: Request,
    body: UserCreateRequest,
    principal: Principal = Depends(manage_users),
) -> dict:
    data = await _service(request).create(principal, body)
    return success(data, message="User created successfully")


@router.get("/{user_id}")
async def get_user(
    request: Request,
    user_id: str,
    principal: Principal = Depends(manage_users),
) -> dict:
    return success(await _service(request).get(user_id))


@router.put("/{user_id}")
async def update_user(
    request: Request,
    user_id: str,
    body: UserUpdateRequest,
    principal: Principal = Depends(manage_users),
) -> dict:
    data = await _service(request).update(principal, user_id, body)
    return success(data, message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    request: Request,
    user_id: str,
    principal: Principal = Depends(manage_users),
) -> dict:
    await _service(request).delete(principal, user_id)
    return success(None, message="User deleted successfully")
