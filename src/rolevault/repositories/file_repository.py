from __future__ import annotations

from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from rolevault.configs.settings import Settings
from rolevault.configs.logging_config import get_logger
from rolevault.repositories.mongo import to_object_id

log = get_logger(__name__)


class FileRepository:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db["files"]

    async def ensure_indexes(self) -> None:
        log.info("repo.file.ensure_indexes start")
        await self._col.create_index([("uploaded_by", 1), ("created_at", -1)])
        await self._col.create_index([("original_name", "text"), ("description", "text")])
        log.info("repo.file.ensure_indexes done")

    async def insert(self, doc: dict[str, Any]) -> str:
        log.info(
            "repo.file.insert uploaded_by=%s filename=%s size=%s",
            doc.get("uploaded_by"),
            doc.get("filename"),
            doc.get("size"),
        )
        res = await self._col.insert_one(doc)
        return str(res.inserted_id)

    async def find_one(self, file_id: str, scope: dict[str, Any] | None = None) -> dict[str, Any] | None:
        return await self._col.find_one({"_id": to_object_id(file_id, what="file"), **(scope or {})})

    async def list(
        self, *, query: dict[str, Any], skip: int, limit: int
    ) -> tuple[list[dict[str, Any]], int]:
        log.info("repo.file.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(query))
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return items, total

    async def update(
        self, file_id: str, scope: dict[str, Any], updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        log.info("repo.file.update file_id=%s keys=%s", file_id, sorted(updates))
        return await self._col.find_one_and_update(
            {"_id": to_object_id(file_id, what="file"), **scope},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    async def increment_downloads(self, file_id: str) -> None:
        await self._col.update_one(
            {"_id": to_object_id(file_id, what="file")}, {"$inc": {"download_count": 1}}
        )

    async def delete(self, file_id: str, scope: dict[str, Any]) -> dict[str, Any] | None:
        log.info("repo.file.delete file_id=%s", file_id)
        return await self._col.find_one_and_delete({"_id": to_object_id(file_id, what="file"), **scope})

    async def stats_for_user(self, user_id: str) -> dict[str, int]:
        cursor = self._col.aggregate(
            [
                {"$match": {"uploaded_by": user_id}},
                {
                    "$group": {
                        "_id": None,
                        "total_files": {"$sum": 1},
                        "total_size": {"$sum": "$size"},
                        "total_downloads": {"$sum": "$download_count"},
                        "public_files": {"$sum": {"$cond": ["$is_public", 1, 0]}},
                    }
                },
            ]
        )
        rows = await cursor.to_list(length=1)
        if not rows:
            return {"total_files": 0, "total_size": 0, "total_downloads": 0, "public_files": 0}
        row = rows[0]
        row.pop("_id", None)
        return row

    async def recent_for_user(self, user_id: str, limit: int = 5) -> list[dict[str, Any]]:
        cursor = (
            self._col.find(
                {"uploaded_by": user_id},
                projection={"original_name": 1, "created_at": 1, "size": 1, "download_count": 1},
            )
            .sort([("created_at", -1)])
            .limit(limit)
        )
        return await cursor.to_list(length=limit)
