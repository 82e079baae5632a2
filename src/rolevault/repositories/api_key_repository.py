from __future__ import annotations

from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from rolevault.configs.settings import Settings
from rolevault.errors import ConflictError
from rolevault.configs.logging_config import get_logger
from rolevault.repositories.mongo import to_object_id

log = get_logger(__name__)


class ApiKeyRepository:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db["api_keys"]

    async def ensure_indexes(self) -> None:
        log.info("repo.api_key.ensure_indexes start")
        await self._col.create_index([("key", 1)], unique=True)
        await self._col.create_index([("user_id", 1), ("created_at", -1)])
        await self._col.create_index([("is_active", 1), ("expires_at", 1)])
        log.info("repo.api_key.ensure_indexes done")

    async def insert(self, doc: dict[str, Any]) -> str:
        log.info("repo.api_key.insert user_id=%s name=%s", doc.get("user_id"), doc.get("name"))
        try:
            res = await self._col.insert_one(doc)
        except DuplicateKeyError as e:
            raise ConflictError("duplicate api key") from e
        return str(res.inserted_id)

    async def find_one(self, key_id: str, scope: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self._col.find_one({"_id": to_object_id(key_id, what="api key"), **(scope or {})})

    async def list(
        self, *, query: dict[str, Any], skip: int, limit: int
    ) -> tuple[list[dict[str, Any]], int]:
        log.info("repo.api_key.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(query))
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return items, total

    async def update(
        self, key_id: str, scope: dict[str, Any], updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        log.info("repo.api_key.update key_id=%s keys=%s", key_id, sorted(updates))
        try:
            return await self._col.find_one_and_update(
                {"_id": to_object_id(key_id, what="api key"), **scope},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("duplicate api key") from e

    async def delete(self, key_id: str, scope: dict[str, Any]) -> dict[str, Any] | None:
        log.info("repo.api_key.delete key_id=%s", key_id)
        return await self._col.find_one_and_delete({"_id": to_object_id(key_id, what="api key"), **scope})

    async def stats(self, now: datetime) -> dict[str, int]:
        cursor = self._col.aggregate(
            [
                {
                    "$group": {
                        "_id": None,
                        "total": {"$sum": 1},
                        "active": {"$sum": {"$cond": ["$is_active", 1, 0]}},
                        "expired": {"$sum": {"$cond": [{"$lt": ["$expires_at", now]}, 1, 0]}},
                        "total_requests": {"$sum": "$usage.total_requests"},
                    }
                }
            ]
        )
        rows = await cursor.to_list(length=1)
        if not rows:
            return {"total": 0, "active": 0, "expired": 0, "total_requests": 0}
        row = rows[0]
        row.pop("_id", None)
        return row

    async def recent(self, limit: int = 5) -> list[dict[str, Any]]:
        cursor = self._col.find({}).sort([("created_at", -1)]).limit(limit)
        return await cursor.to_list(length=limit)

    async def find_expired(self, now: datetime) -> list[dict[str, Any]]:
        cursor = self._col.find({"expires_at": {"$lte": now}, "is_active": True})
        return await cursor.to_list(length=None)

    async def find_expiring(self, now: datetime, until: datetime) -> list[dict[str, Any]]:
        cursor = self._col.find(
            {
                "expires_at": {"$gte": now, "$lte": until},
                "is_active": True,
                "expiration_warning_notified": {"$ne": True},
            }
        )
        return await cursor.to_list(length=None)

    async def deactivate(self, key_id: str, now: datetime) -> dict[str, Any] | None:
        """Flip an active key to inactive; None when another sweep got there first."""
        log.info("repo.api_key.deactivate key_id=%s", key_id)
        return await self._col.find_one_and_update(
            {"_id": to_object_id(key_id, what="api key"), "is_active": True},
            {"$set": {"is_active": False, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )

    async def mark_warned(self, key_id: str, now: datetime) -> dict[str, Any] | None:
        return await self._col.find_one_and_update(
            {"_id": to_object_id(key_id, what="api key"), "expiration_warning_notified": {"$ne": True}},
            {"$set": {"expiration_warning_notified": True, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
