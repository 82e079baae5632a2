from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from rolevault.auth import permissions as perms
from rolevault.auth.dependencies import require_permissions
from rolevault.auth.models import Principal
from rolevault.domain.entities.api_key import ApiKeyCreate, ApiKeyListQuery, ApiKeyUpdate
from rolevault.services.api_key_service import ApiKeyService
from rolevault.utils.response import success

router = APIRouter(prefix="/api/apikeys", tags=["api-keys"])


def _service(request: Request) -> ApiKeyService:
    return request.app.state.api_key_service


@router.get("")
async def list_api_keys(
    request: Request,
    q: Annotated[ApiKeyListQuery, Query()],
    principal: Principal = Depends(require_permissions(perms.API_KEYS_VIEW)),
) -> dict:
    return success(await _service(request).list(principal, q))


@router.get("/stats/overview")
async def api_key_stats(
    request: Request,
    principal: Principal = Depends(require_permissions(perms.API_KEYS_VIEW_ALL)),
) -> dict:
    return success(await _service(request).stats())


@router.get("/{key_id}")
async def get_api_key(
    request: Request,
    key_id: str,
    principal: Principal = Depends(require_permissions(perms.API_KEYS_VIEW)),
) -> dict:
    return success(await _service(request).get(principal, key_id))


@router.post("", status_code=201)
async def create_api_key(
    request: Request,
    body: ApiKeyCreate,
    principal: Principal = Depends(require_permissions(perms.API_KEYS_CREATE)),
) -> dict:
    data = await _service(request).create(principal, body)
    return success(data, message="API key created successfully")


@router.put("/{key_id}")
async def update_api_key(
    request: Request,
    key_id: str,
    body: ApiKeyUpdate,
    principal: Principal = Depends(require_permissions(perms.API_KEYS_MANAGE)),
) -> dict:
    data = await _service(request).update(principal, key_id, body)
    return success(data, message="API key updated successfully")


@router.delete("/{key_id}")
async def delete_api_key(
    request: Request,
    key_id: str,
    principal: Principal = Depends(
        require_permissions(perms.API_KEYS_MANAGE, perms.API_KEYS_DELETE_ALL)
    ),
) -> dict:
    await _service(request).delete(principal, key_id)
    return success(None, message="API key deleted successfully")


@router.post("/{key_id}/regenerate")
async def regenerate_api_key(
    request: Request,
    key_id: str,
    principal: Principal = Depends(require_permissions(perms.API_KEYS_MANAGE)),
) -> dict:
    data = await _service(request).regenerate(principal, key_id)
    return success(data, message="API key regenerated successfully")
