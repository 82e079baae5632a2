from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from rolevault.auth.dependencies import get_principal
from rolevault.auth.models import Principal
from rolevault.services.dashboard_service import DashboardService
from rolevault.utils.response import success

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _service(request: Request) -> DashboardService:
    return request.app.state.dashboard_service


@router.get("")
async def dashboard(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    return success(await _service(request).overview(principal))
