from __future__ import annotations

from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from rolevault.configs.settings import Settings
from rolevault.configs.logging_config import get_logger
from rolevault.repositories.mongo import to_object_id

log = get_logger(__name__)


class NotificationRepository:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db["notifications"]

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("user_id", 1), ("unread", 1), ("time", -1)])

    async def insert(self, doc: dict[str, Any]) -> str:
        res = await self._col.insert_one(doc)
        return str(res.inserted_id)

    async def list_unread(self, user_id: str, limit: int = 5) -> list[dict[str, Any]]:
        cursor = (
            self._col.find({"user_id": user_id, "unread": True}).sort([("time", -1)]).limit(limit)
        )
        return await cursor.to_list(length=limit)

    async def mark_read(self, notification_id: str, user_id: str) -> dict[str, Any] | None:
        log.info("repo.notification.mark_read id=%s user_id=%s", notification_id, user_id)
        return await self._col.find_one_and_update(
            {"_id": to_object_id(notification_id, what="notification"), "user_id": user_id},
            {"$set": {"unread": False}},
            return_document=ReturnDocument.AFTER,
        )
