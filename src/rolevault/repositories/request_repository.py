from __future__ import annotations

from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from rolevault.configs.settings import Settings
from rolevault.configs.logging_config import get_logger
from rolevault.domain.lifecycle import PENDING
from rolevault.repositories.mongo import to_object_id

log = get_logger(__name__)


class RequestRepository:
    """
    Storage for approval requests.

    Every state-changing call carries ``status: pending`` in its filter so
    the update itself is the precondition check.
    """

    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db["requests"]

    async def ensure_indexes(self) -> None:
        log.info("repo.request.ensure_indexes start")
        await self._col.create_index([("requested_by", 1), ("status", 1)])
        await self._col.create_index([("created_at", -1)])
        log.info("repo.request.ensure_indexes done")

    async def insert(self, doc: dict[str, Any]) -> str:
        log.info(
            "repo.request.insert type=%s requested_by=%s", doc.get("type"), doc.get("requested_by")
        )
        res = await self._col.insert_one(doc)
        return str(res.inserted_id)

    async def find_one(self, request_id: str, scope: dict[str, Any] | None = None) -> dict[str, Any] | None:
        q = {"_id": to_object_id(request_id, what="request"), **(scope or {})}
        return await self._col.find_one(q)

    async def list(
        self,
        *,
        query: dict[str, Any],
        skip: int,
        limit: int,
    ) -> tuple[list[dict[str, Any]], int]:
        log.info(
            "repo.request.list skip=%s limit=%s query_keys=%s",
            skip,
            limit,
            sorted(list(query.keys())),
        )
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return items, total

    async def update_pending(
        self, request_id: str, scope: dict[str, Any], updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        q = {"_id": to_object_id(request_id, what="request"), **scope, "status": PENDING}
        log.info("repo.request.update_pending request_id=%s keys=%s", request_id, sorted(updates))
        return await self._col.find_one_and_update(
            q, {"$set": updates}, return_document=ReturnDocument.AFTER
        )

    async def review(
        self,
        request_id: str,
        *,
        status: str,
        reviewer_id: str,
        comment: str | None,
        now: datetime,
    ) -> dict[str, Any] | None:
        """Move a pending request to ``status``. Returns None if it was not pending."""
        updates: dict[str, Any] = {
            "status": status,
            "reviewed_by": reviewer_id,
            "reviewed_at": now,
            "updated_at": now,
        }
        if comment:
            updates["review_comment"] = comment
        log.info("repo.request.review request_id=%s status=%s", request_id, status)
        return await self._col.find_one_and_update(
            {"_id": to_object_id(request_id, what="request"), "status": PENDING},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    async def delete(self, request_id: str, scope: dict[str, Any]) -> dict[str, Any] | None:
        q = {"_id": to_object_id(request_id, what="request"), **scope}
        log.info("repo.request.delete request_id=%s scope_keys=%s", request_id, sorted(scope))
        return await self._col.find_one_and_delete(q)

    async def count(self, query: dict[str, Any]) -> int:
        return await self._col.count_documents(query)

    async def count_by(self, field: str) -> dict[str, int]:
        cursor = self._col.aggregate([{"$group": {"_id": f"${field}", "count": {"$sum": 1}}}])
        out: dict[str, int] = {}
        async for row in cursor:
            out[str(row["_id"])] = int(row["count"])
        return out
