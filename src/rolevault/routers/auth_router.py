from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from rolevault.auth.dependencies import get_principal
from rolevault.auth.models import Principal
from rolevault.domain.entities.user import (
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    TotpCodeRequest,
    TotpDisableRequest,
    TotpVerifyLoginRequest,
)
from rolevault.services.auth_service import AuthService
from rolevault.utils.response import success
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


@router.post("/register", status_code=201)
async def register(request: Request, body: RegisterRequest) -> dict:
    log.info("auth.register.start email=%s role=%s", body.email, body.role)
    data = await _service(request).register(body)
    log.info("auth.register.done user_id=%s", data["user"]["id"])
    return success(data, message="User registered successfully")


@router.post("/login")
async def login(request: Request, body: LoginRequest) -> dict:
    log.info("auth.login.start email=%s", body.email)
    data = await _service(request).login(body)
    if data.get("requires_totp"):
        return success(data, message="Two-factor authentication required")
    return success(data, message="Login successful")


@router.post("/totp/verify-login")
async def verify_totp_login(request: Request, body: TotpVerifyLoginRequest) -> dict:
    data = await _service(request).verify_totp_login(body)
    return success(data, message="Login successful")


@router.get("/me")
async def me(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    return success(await _service(request).me(principal))


@router.put("/me")
async def update_me(
    request: Request,
    body: ProfileUpdateRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update_profile(principal, body)
    return success(data, message="Profile updated successfully")


@router.post("/logout")
async def logout() -> dict:
    # Tokens are stateless; the client drops its copy.
    return success(None, message="Logged out successfully")


@router.post("/totp/setup")
async def totp_setup(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    data = await _service(request).totp_setup(principal)
    return success(data, message="Scan the provisioning URI with an authenticator app")


@router.post("/totp/verify-setup")
async def totp_verify_setup(
    request: Request,
    body: TotpCodeRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).totp_verify_setup(principal, body.code)
    return success(data, message="Two-factor authentication enabled")


@router.post("/totp/disable")
async def totp_disable(
    request: Request,
    body: TotpDisableRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).totp_disable(principal, body)
    return success(data, message="Two-factor authentication disabled")
