from __future__ import annotations

from fastapi import APIRouter

from rolevault.auth.permissions import all_role_permissions, is_role, permissions_for_role
from rolevault.errors import ValidationError
from rolevault.utils.response import success

router = APIRouter(prefix="/api/roles", tags=["roles"])


@router.get("/permissions")
async def list_role_permissions() -> dict:
    return success(all_role_permissions())


@router.get("/permissions/{role}")
async def get_role_permissions(role: str) -> dict:
    if not is_role(role):
        raise ValidationError("invalid role", errors=[{"field": "role", "message": f"unknown role {role}"}])
    return success({"role": role, "permissions": permissions_for_role(role)})
