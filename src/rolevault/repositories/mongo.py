from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from rolevault.configs.settings import Settings
from rolevault.errors import NotFoundError
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


def get_mongo_client(settings: Settings) -> AsyncIOMotorClient:
    log.info("mongo.client.create uri=%s", settings.mongo_uri)
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)


def get_mongo_db(client: AsyncIOMotorClient, settings: Settings) -> AsyncIOMotorDatabase:
    log.info("mongo.db.select db=%s", settings.mongo_db)
    return client[settings.mongo_db]


def to_object_id(value: str, *, what: str = "resource") -> ObjectId:
    """Malformed ids are reported as not found rather than as a storage error."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as e:
        log.info("mongo.invalid_object_id what=%s value=%s", what, value)
        raise NotFoundError(f"{what} not found") from e


def oid_to_str(doc: dict[str, Any]) -> dict[str, Any]:
    if "_id" in doc and isinstance(doc["_id"], ObjectId):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc


def dt_to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="milliseconds")


def serialize(doc: dict[str, Any] | None, *, hidden: tuple[str, ...] = ()) -> dict[str, Any] | None:
    """Mongo document -> JSON-safe dict (string ids, ISO datetimes)."""
    if doc is None:
        return None
    out = oid_to_str(dict(doc))
    if "_id" in out:
        # freshly inserted docs may carry the id as a string already
        out["id"] = str(out.pop("_id"))
    for key in hidden:
        out.pop(key, None)
    for key, value in list(out.items()):
        if isinstance(value, datetime):
            out[key] = dt_to_iso(value)
        elif isinstance(value, ObjectId):
            out[key] = str(value)
    return out
