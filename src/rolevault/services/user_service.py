from __future__ import annotations

import re
from typing import Any

from rolevault.auth.models import Principal
from rolevault.auth.passwords import hash_password
from rolevault.auth.permissions import ADMIN, normalize_permissions
from rolevault.configs.settings import Settings
from rolevault.domain.entities.user import (
    UserCreateRequest,
    UserListQuery,
    UserUpdateRequest,
    build_account_document,
)
from rolevault.errors import ConflictError, NotFoundError
from rolevault.repositories.mongo import serialize, to_object_id
from rolevault.repositories.user_repository import UserRepository
from rolevault.utils.response import paginated
from rolevault.utils.time_utils import utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

# Never leave the service layer.
SECRET_FIELDS = ("password_hash", "totp_secret", "second_factor_issued_at_ms")


def public_user(doc: dict[str, Any] | None) -> dict[str, Any] | None:
    return serialize(doc, hidden=SECRET_FIELDS)


class UserService:
    """Administrative account management."""

    def __init__(self, repo: UserRepository, settings: Settings):
        self._repo = repo
        self._settings = settings

    async def create_account(self, *, name: str, email: str, password: str, role: str) -> dict[str, Any]:
        if await self._repo.get_by_email(email):
            log.info("svc.user.create duplicate email=%s", email)
            raise ConflictError("user already exists with this email")
        doc = build_account_document(
            name=name,
            email=email,
            password_hash=hash_password(password, self._settings.bcrypt_rounds),
            role=role,
        )
        doc["_id"] = await self._repo.insert(doc)
        log.info("svc.user.create done user_id=%s role=%s", doc["_id"], role)
        return doc

    async def ensure_bootstrap_admin(self) -> dict[str, Any] | None:
        """Create the configured first admin unless an admin already exists."""
        email = (self._settings.bootstrap_admin_email or "").strip().lower()
        password = self._settings.bootstrap_admin_password
        if not email or not password:
            log.info("svc.user.bootstrap skipped reason=not_configured")
            return None
        if await self._repo.count({"role": ADMIN}):
            log.info("svc.user.bootstrap skipped reason=admin_exists")
            return None
        if await self._repo.get_by_email(email):
            log.warning("svc.user.bootstrap skipped reason=email_taken email=%s", email)
            return None
        doc = await self.create_account(
            name=self._settings.bootstrap_admin_name, email=email, password=password, role=ADMIN
        )
        log.info("svc.user.bootstrap done user_id=%s email=%s", doc["_id"], email)
        return public_user(doc)

    async def create(self, actor: Principal, body: UserCreateRequest) -> dict[str, Any]:
        log.info("svc.user.create start actor=%s email=%s role=%s", actor.user_id, body.email, body.role)
        doc = await self.create_account(
            name=body.name, email=body.email, password=body.password, role=body.role
        )
        return public_user(doc)

    async def list(self, q: UserListQuery) -> dict[str, Any]:
        query: dict[str, Any] = {}
        if q.search:
            pattern = {"$regex": re.escape(q.search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"email": pattern}]
        if q.role:
            query["role"] = q.role
        if q.is_active is not None:
            query["is_active"] = q.is_active
        items, total = await self._repo.list(query=query, skip=(q.page - 1) * q.limit, limit=q.limit)
        return paginated(
            [public_user(it) for it in items], key="users", page=q.page, limit=q.limit, total=total
        )

    async def get(self, user_id: str) -> dict[str, Any]:
        return public_user(await self._repo.get(user_id))

    async def update(self, actor: Principal, user_id: str, body: UserUpdateRequest) -> dict[str, Any]:
        updates = body.model_dump(exclude_none=True)
        if "permissions" in updates:
            updates["permissions"] = normalize_permissions(updates["permissions"])
        # A role change keeps the stored permission list as is.
        updates["updated_at"] = utc_now()
        log.info(
            "svc.user.update actor=%s user_id=%s keys=%s", actor.user_id, user_id, sorted(updates)
        )
        doc = await self._repo.update(user_id, updates)
        return public_user(doc)

    async def delete(self, actor: Principal, user_id: str) -> None:
        if str(to_object_id(user_id, what="user")) == actor.user_id:
            log.info("svc.user.delete self_delete_rejected user_id=%s", user_id)
            raise ConflictError("you cannot delete your own account")
        if not await self._repo.delete(user_id):
            raise NotFoundError("user not found")
        log.info("svc.user.delete done actor=%s user_id=%s", actor.user_id, user_id)
