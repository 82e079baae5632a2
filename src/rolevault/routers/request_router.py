from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from rolevault.auth import permissions as perms
from rolevault.auth.dependencies import get_principal, require_permissions, require_roles
from rolevault.auth.models import Principal
from rolevault.domain.entities.request import (
    ApprovalRequestCreate,
    ApprovalRequestUpdate,
    RequestListQuery,
    ReviewDecision,
)
from rolevault.services.request_service import RequestService
from rolevault.utils.response import success
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/requests", tags=["requests"])


def _service(request: Request) -> RequestService:
    return request.app.state.request_service


@router.get("")
async def list_own_requests(
    request: Request,
    q: Annotated[RequestListQuery, Query()],
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).list_own(principal, q)
    return success(data)


# Static paths are registered before "/{request_id}".
@router.get("/admin/review")
async def list_requests_for_review(
    request: Request,
    q: Annotated[RequestListQuery, Query()],
    principal: Principal = Depends(require_permissions(perms.REQUESTS_VIEW_ALL)),
) -> dict:
    data = await _service(request).list_for_review(principal, q)
    return success(data)


@router.get("/stats/pending")
async def pending_stats(
    request: Request,
    principal: Principal = Depends(require_roles(perms.ADMIN)),
) -> dict:
    return success(await _service(request).pending_stats())


@router.get("/stats/overview")
async def overview_stats(
    request: Request,
    principal: Principal = Depends(require_roles(perms.ADMIN)),
) -> dict:
    return success(await _service(request).overview_stats())


@router.get("/{request_id}")
async def get_request(
    request: Request,
    request_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).get(principal, request_id))


@router.post("", status_code=201)
async def submit_request(
    request: Request,
    body: ApprovalRequestCreate,
    principal: Principal = Depends(require_permissions(perms.REQUESTS_CREATE)),
) -> dict:
    log.info("requests.submit.start user_id=%s type=%s", principal.user_id, body.type)
    data = await _service(request).submit(principal, body)
    log.info("requests.submit.done user_id=%s request_id=%s", principal.user_id, data.get("id"))
    return success(data, message="Request submitted successfully")


@router.put("/{request_id}")
async def update_request(
    request: Request,
    request_id: str,
    body: ApprovalRequestUpdate,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update(principal, request_id, body)
    return success(data, message="Request updated successfully")


@router.patch("/{request_id}/review")
async def review_request(
    request: Request,
    request_id: str,
    body: ReviewDecision,
    principal: Principal = Depends(
        require_permissions(perms.REQUESTS_APPROVE, perms.REQUESTS_REJECT)
    ),
) -> dict:
    data = await _service(request).review(principal, request_id, body)
    return success(data, message=f"Request {body.status} successfully")


@router.delete("/{request_id}")
async def delete_request(
    request: Request,
    request_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    await _service(request).delete(principal, request_id)
    return success(None, message="Request deleted successfully")
