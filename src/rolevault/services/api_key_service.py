from __future__ import annotations

import math
import re
import secrets
from datetime import datetime, timedelta
from typing import Any

from rolevault.auth import permissions as perms
from rolevault.auth.gate import owner_scope
from rolevault.auth.models import Principal
from rolevault.configs.settings import Settings
from rolevault.domain.entities.api_key import ApiKeyCreate, ApiKeyListQuery, ApiKeyUpdate
from rolevault.errors import NotFoundError
from rolevault.repositories.api_key_repository import ApiKeyRepository
from rolevault.repositories.mongo import serialize
from rolevault.services.notification_service import Notifier, NotificationTypes
from rolevault.utils.response import paginated
from rolevault.utils.time_utils import as_utc, days_from_now, utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

KEY_PREFIX = "ak_"


def generate_key() -> str:
    return KEY_PREFIX + secrets.token_hex(32)


def _read_scope(principal: Principal) -> dict[str, Any]:
    if principal.has_permission(perms.API_KEYS_VIEW_ALL):
        return {}
    return owner_scope(principal, "user_id")


def _delete_scope(principal: Principal) -> dict[str, Any]:
    if principal.has_permission(perms.API_KEYS_DELETE_ALL):
        return {}
    return owner_scope(principal, "user_id")


class ApiKeyService:
    def __init__(self, repo: ApiKeyRepository, notifier: Notifier, settings: Settings):
        self._repo = repo
        self._notifier = notifier
        self._settings = settings

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self._notifier.dispatch(user_id, message)
        except Exception as exc:
            log.warning("svc.api_key.notify_failed user_id=%s error=%s", user_id, exc)

    async def list(self, principal: Principal, q: ApiKeyListQuery) -> dict[str, Any]:
        query = dict(_read_scope(principal))
        if q.search:
            query["name"] = {"$regex": re.escape(q.search), "$options": "i"}
        items, total = await self._repo.list(query=query, skip=(q.page - 1) * q.limit, limit=q.limit)
        return paginated(
            [serialize(it) for it in items], key="api_keys", page=q.page, limit=q.limit, total=total
        )

    async def get(self, principal: Principal, key_id: str) -> dict[str, Any]:
        doc = await self._repo.find_one(key_id, _read_scope(principal))
        if not doc:
            raise NotFoundError("api key not found")
        return serialize(doc)

    async def create(self, principal: Principal, body: ApiKeyCreate) -> dict[str, Any]:
        log.info("svc.api_key.create start user_id=%s name=%s", principal.user_id, body.name)
        now = utc_now()
        doc: dict[str, Any] = {
            "name": body.name,
            "key": generate_key(),
            "user_id": principal.user_id,
            "permissions": list(dict.fromkeys(body.permissions)),
            "is_active": True,
            "expires_at": body.expires_at or days_from_now(self._settings.api_key_ttl_days),
            "usage": {"total_requests": 0, "last_request": None},
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = await self._repo.insert(doc)
        log.info("svc.api_key.create done key_id=%s user_id=%s", doc["_id"], principal.user_id)

        self._notify(principal.user_id, NotificationTypes.api_key_created(body.name))
        return serialize(doc)

    async def update(self, principal: Principal, key_id: str, body: ApiKeyUpdate) -> dict[str, Any]:
        changes = body.changes()
        if "permissions" in changes:
            changes["permissions"] = list(dict.fromkeys(changes["permissions"]))
        changes["updated_at"] = utc_now()
        log.info("svc.api_key.update key_id=%s user_id=%s keys=%s", key_id, principal.user_id, sorted(changes))
        doc = await self._repo.update(key_id, owner_scope(principal, "user_id"), changes)
        if not doc:
            raise NotFoundError("api key not found")
        return serialize(doc)

    async def regenerate(self, principal: Principal, key_id: str) -> dict[str, Any]:
        doc = await self._repo.update(
            key_id,
            owner_scope(principal, "user_id"),
            {"key": generate_key(), "updated_at": utc_now()},
        )
        if not doc:
            raise NotFoundError("api key not found")
        log.info("svc.api_key.regenerate done key_id=%s user_id=%s", key_id, principal.user_id)
        return serialize(doc)

    async def delete(self, principal: Principal, key_id: str) -> None:
        doc = await self._repo.delete(key_id, _delete_scope(principal))
        if not doc:
            raise NotFoundError("api key not found")
        log.info("svc.api_key.delete done key_id=%s user_id=%s", key_id, principal.user_id)
        self._notify(principal.user_id, NotificationTypes.api_key_deleted(doc.get("name", "")))

    async def stats(self) -> dict[str, Any]:
        counters = await self._repo.stats(utc_now())
        recent = await self._repo.recent(limit=5)
        return {
            "stats": counters,
            "recent_keys": [serialize(it, hidden=("key",)) for it in recent],
        }

    async def expire_keys(self, now: datetime | None = None) -> int:
        """Deactivate keys past their expiry and tell each owner once."""
        now = now or utc_now()
        expired = 0
        for doc in await self._repo.find_expired(now):
            key_id = str(doc["_id"])
            if not await self._repo.deactivate(key_id, now):
                continue
            expired += 1
            log.info("svc.api_key.expired key_id=%s user_id=%s", key_id, doc.get("user_id"))
            self._notify(doc["user_id"], NotificationTypes.api_key_expired(doc.get("name", "")))
        return expired

    async def warn_expiring(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        until = now + timedelta(days=self._settings.api_key_expiry_warning_days)
        warned = 0
        for doc in await self._repo.find_expiring(now, until):
            key_id = str(doc["_id"])
            if not await self._repo.mark_warned(key_id, now):
                continue
            remaining = (as_utc(doc["expires_at"]) - now).total_seconds() / 86400
            days = max(1, math.ceil(remaining))
            warned += 1
            log.info("svc.api_key.expiring key_id=%s user_id=%s days=%s", key_id, doc.get("user_id"), days)
            self._notify(doc["user_id"], NotificationTypes.api_key_expiring(doc.get("name", ""), days))
        return warned

    async def sweep_expiry(self) -> dict[str, int]:
        now = utc_now()
        return {"expired": await self.expire_keys(now), "warned": await self.warn_expiring(now)}
