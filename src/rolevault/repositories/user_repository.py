from __future__ import annotations

from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from rolevault.configs.settings import Settings
from rolevault.errors import ConflictError, NotFoundError
from rolevault.configs.logging_config import get_logger
from rolevault.repositories.mongo import to_object_id

log = get_logger(__name__)


class UserRepository:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db["users"]

    async def ensure_indexes(self) -> None:
        log.info("repo.user.ensure_indexes start")
        await self._col.create_index([("email", 1)], unique=True)
        await self._col.create_index([("role", 1), ("is_active", 1)])
        await self._col.create_index([("created_at", -1)])
        log.info("repo.user.ensure_indexes done")

    async def insert(self, doc: dict[str, Any]) -> str:
        log.info("repo.user.insert email=%s role=%s", doc.get("email"), doc.get("role"))
        try:
            res = await self._col.insert_one(doc)
        except DuplicateKeyError as e:
            log.info("repo.user.insert duplicate email=%s", doc.get("email"))
            raise ConflictError("user already exists with this email") from e
        return str(res.inserted_id)

    async def get_by_id(self, user_id: str) -> dict[str, Any] | None:
        try:
            oid = to_object_id(user_id, what="user")
        except NotFoundError:
            return None
        return await self._col.find_one({"_id": oid})

    async def get(self, user_id: str) -> dict[str, Any]:
        doc = await self.get_by_id(user_id)
        if not doc:
            log.info("repo.user.get not_found user_id=%s", user_id)
            raise NotFoundError("user not found")
        return doc

    async def get_by_email(self, email: str) -> dict[str, Any] | None:
        return await self._col.find_one({"email": email})

    async def list(
        self,
        *,
        query: dict[str, Any],
        skip: int,
        limit: int,
    ) -> tuple[list[dict[str, Any]], int]:
        log.info(
            "repo.user.list skip=%s limit=%s query_keys=%s", skip, limit, sorted(list(query.keys()))
        )
        cursor = self._col.find(query).sort([("created_at", -1)]).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        total = await self._col.count_documents(query)
        return items, total

    async def update(self, user_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        log.info("repo.user.update user_id=%s keys=%s", user_id, sorted(list(updates.keys())))
        try:
            doc = await self._col.find_one_and_update(
                {"_id": to_object_id(user_id, what="user")},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError("user already exists with this email") from e
        if not doc:
            log.info("repo.user.update not_found user_id=%s", user_id)
            raise NotFoundError("user not found")
        return doc

    async def set_last_login(self, user_id: str, when: datetime) -> None:
        await self._col.update_one(
            {"_id": to_object_id(user_id, what="user")},
            {"$set": {"last_login_at": when}},
        )

    async def count(self, query: dict[str, Any]) -> int:
        return await self._col.count_documents(query)

    async def consume_second_factor(self, user_id: str, issued_at: int) -> bool:
        """Record a pending token as spent. False when it, or a newer one, already was."""
        res = await self._col.update_one(
            {
                "_id": to_object_id(user_id, what="user"),
                "second_factor_issued_at_ms": {"$not": {"$gte": issued_at}},
            },
            {"$set": {"second_factor_issued_at_ms": issued_at}},
        )
        return res.modified_count == 1

    async def delete(self, user_id: str) -> bool:
        log.info("repo.user.delete user_id=%s", user_id)
        res = await self._col.delete_one({"_id": to_object_id(user_id, what="user")})
        return res.deleted_count == 1
