from __future__ import annotations

from typing import Any

from rolevault.auth import totp
from rolevault.auth.jwt import create_pending_token, create_session_token
from rolevault.auth.models import Principal
from rolevault.auth.passwords import verify_password
from rolevault.auth.resolver import PrincipalResolver
from rolevault.configs.settings import Settings
from rolevault.domain.entities.user import (
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    TotpDisableRequest,
    TotpVerifyLoginRequest,
)
from rolevault.errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialError,
    ValidationError,
)
from rolevault.repositories.user_repository import UserRepository
from rolevault.services.notification_service import Notifier, NotificationTypes
from rolevault.services.user_service import UserService, public_user
from rolevault.utils.time_utils import utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


def _invalid_code() -> ValidationError:
    return ValidationError(
        "invalid verification code", errors=[{"field": "code", "message": "invalid code"}]
    )


class AuthService:
    def __init__(
        self,
        repo: UserRepository,
        users: UserService,
        resolver: PrincipalResolver,
        notifier: Notifier,
        settings: Settings,
    ):
        self._repo = repo
        self._users = users
        self._resolver = resolver
        self._notifier = notifier
        self._settings = settings

    def _session(self, doc: dict[str, Any]) -> dict[str, Any]:
        token = create_session_token(str(doc["_id"]), doc["role"], self._settings)
        return {"user": public_user(doc), "token": token}

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self._notifier.dispatch(user_id, message)
        except Exception as exc:
            log.warning("svc.auth.notify_failed user_id=%s error=%s", user_id, exc)

    async def register(self, body: RegisterRequest) -> dict[str, Any]:
        log.info("svc.auth.register start email=%s role=%s", body.email, body.role)
        if body.role not in self._settings.registration_allowed_roles:
            log.info("svc.auth.register role_not_allowed role=%s", body.role)
            raise ForbiddenError(f"self-registration as {body.role} is not allowed")
        doc = await self._users.create_account(
            name=body.name, email=body.email, password=body.password, role=body.role
        )
        self._notify(str(doc["_id"]), NotificationTypes.account_created(body.name))
        return self._session(doc)

    async def login(self, body: LoginRequest) -> dict[str, Any]:
        doc = await self._repo.get_by_email(body.email)
        if not doc or not doc.get("is_active", False):
            log.info("svc.auth.login unavailable email=%s", body.email)
            raise AuthError("invalid credentials")
        if not verify_password(body.password, doc.get("password_hash")):
            log.info("svc.auth.login bad_password email=%s", body.email)
            raise AuthError("invalid credentials")

        user_id = str(doc["_id"])
        if doc.get("totp_enabled"):
            # First factor only; last_login_at waits for the second.
            log.info("svc.auth.login second_factor_required user_id=%s", user_id)
            return {"requires_totp": True, "temp_token": create_pending_token(user_id, self._settings)}

        return await self._complete_login(doc)

    async def verify_totp_login(self, body: TotpVerifyLoginRequest) -> dict[str, Any]:
        challenge = await self._resolver.resolve_pending(body.temp_token)
        doc = await self._repo.get(challenge.user_id)
        if not doc.get("totp_enabled") or not totp.verify_code(doc.get("totp_secret"), body.code):
            log.info("svc.auth.totp_login bad_code user_id=%s", challenge.user_id)
            raise AuthError("invalid totp code")
        if not await self._repo.consume_second_factor(challenge.user_id, challenge.issued_at_ms):
            log.info("svc.auth.totp_login token_replayed user_id=%s", challenge.user_id)
            raise InvalidCredentialError()
        return await self._complete_login(doc)

    async def _complete_login(self, doc: dict[str, Any]) -> dict[str, Any]:
        now = utc_now()
        await self._repo.set_last_login(str(doc["_id"]), now)
        doc["last_login_at"] = now
        log.info("svc.auth.login done user_id=%s", doc["_id"])
        self._notify(str(doc["_id"]), NotificationTypes.login_success(doc.get("name", "")))
        return self._session(doc)

    async def me(self, principal: Principal) -> dict[str, Any]:
        return public_user(await self._repo.get(principal.user_id))

    async def update_profile(self, principal: Principal, body: ProfileUpdateRequest) -> dict[str, Any]:
        updates = body.model_dump(exclude_none=True)
        updates["updated_at"] = utc_now()
        log.info("svc.auth.update_profile user_id=%s keys=%s", principal.user_id, sorted(updates))
        return public_user(await self._repo.update(principal.user_id, updates))

    async def totp_setup(self, principal: Principal) -> dict[str, Any]:
        doc = await self._repo.get(principal.user_id)
        if doc.get("totp_enabled"):
            raise ConflictError("two-factor authentication is already enabled")
        secret = totp.new_secret()
        await self._repo.update(principal.user_id, {"totp_secret": secret, "updated_at": utc_now()})
        log.info("svc.auth.totp_setup user_id=%s", principal.user_id)
        return {
            "secret": secret,
            "otpauth_url": totp.provisioning_uri(secret, doc["email"], self._settings.totp_issuer),
        }

    async def totp_verify_setup(self, principal: Principal, code: str) -> dict[str, Any]:
        doc = await self._repo.get(principal.user_id)
        if doc.get("totp_enabled"):
            raise ConflictError("two-factor authentication is already enabled")
        if not totp.verify_code(doc.get("totp_secret"), code):
            raise _invalid_code()
        doc = await self._repo.update(principal.user_id, {"totp_enabled": True, "updated_at": utc_now()})
        log.info("svc.auth.totp_enabled user_id=%s", principal.user_id)
        return public_user(doc)

    async def totp_disable(self, principal: Principal, body: TotpDisableRequest) -> dict[str, Any]:
        doc = await self._repo.get(principal.user_id)
        if not doc.get("totp_enabled"):
            raise ConflictError("two-factor authentication is not enabled")
        if not verify_password(body.password, doc.get("password_hash")):
            raise ValidationError(
                "invalid password", errors=[{"field": "password", "message": "invalid password"}]
            )
        if not totp.verify_code(doc.get("totp_secret"), body.code):
            raise _invalid_code()
        doc = await self._repo.update(
            principal.user_id,
            {"totp_enabled": False, "totp_secret": None, "updated_at": utc_now()},
        )
        log.info("svc.auth.totp_disabled user_id=%s", principal.user_id)
        return public_user(doc)
