from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Protocol

import redis.asyncio as redis

from rolevault.configs.settings import Settings
from rolevault.errors import NotFoundError
from rolevault.repositories.mongo import serialize
from rolevault.repositories.notification_repository import NotificationRepository
from rolevault.utils.time_utils import utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


class Notifier(Protocol):
    def dispatch(self, user_id: str, message: str) -> Any: ...


class NotificationTypes:
    """Message templates for user-facing notifications."""

    @staticmethod
    def account_created(name: str) -> str:
        return f"Welcome to RoleVault, {name}! Your account has been created successfully."

    @staticmethod
    def login_success(name: str) -> str:
        return f"Welcome back, {name}!"

    @staticmethod
    def api_key_created(key_name: str) -> str:
        return f'New API key "{key_name}" has been created.'

    @staticmethod
    def api_key_deleted(key_name: str) -> str:
        return f'API key "{key_name}" has been deleted.'

    @staticmethod
    def api_key_expired(key_name: str) -> str:
        return f'API key "{key_name}" has expired.'

    @staticmethod
    def api_key_expiring(key_name: str, days: int) -> str:
        plural = "" if days == 1 else "s"
        return f'Your API key "{key_name}" will expire in {days} day{plural}.'

    @staticmethod
    def file_uploaded(file_name: str) -> str:
        return f'File "{file_name}" has been uploaded successfully.'

    @staticmethod
    def file_deleted(file_name: str) -> str:
        return f'File "{file_name}" has been deleted.'

    @staticmethod
    def request_submitted(request_type: str) -> str:
        return f"Your {request_type} request has been submitted."

    @staticmethod
    def request_approved(request_type: str) -> str:
        return f"Your {request_type} request has been approved."

    @staticmethod
    def request_rejected(request_type: str) -> str:
        return f"Your {request_type} request has been rejected."


class NotificationService:
    """
    Stores a notification and publishes it on ``<channel>:<user_id>``.

    Whatever listens on that channel (an SSE or websocket gateway) owns live
    delivery. Failures here are logged and never reach the caller.
    """

    def __init__(
        self,
        repo: NotificationRepository,
        redis_client: Optional[redis.Redis],
        settings: Settings,
    ):
        self._repo = repo
        self._redis = redis_client
        self._settings = settings
        self._pending: set[asyncio.Task] = set()

    def channel_for(self, user_id: str) -> str:
        return f"{self._settings.redis_notification_channel}:{user_id}"

    async def notify(self, user_id: str, message: str) -> bool:
        try:
            doc = {"user_id": user_id, "message": message, "time": utc_now(), "unread": True}
            notification_id = await self._repo.insert(doc)
            log.info("notify.stored user_id=%s id=%s", user_id, notification_id)
            if self._redis is not None:
                payload = serialize({**doc, "_id": notification_id})
                await self._redis.publish(self.channel_for(user_id), json.dumps(payload))
            return True
        except Exception as exc:
            log.warning("notify.failed user_id=%s error=%s", user_id, exc, exc_info=True)
            return False

    def dispatch(self, user_id: str, message: str) -> asyncio.Task:
        """Fire-and-forget ``notify``; the caller does not wait for delivery."""
        task = asyncio.create_task(self.notify(user_id, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def list_unread(self, user_id: str, limit: int = 5) -> list[dict[str, Any]]:
        items = await self._repo.list_unread(user_id, limit=limit)
        return [serialize(it) for it in items]

    async def mark_read(self, notification_id: str, user_id: str) -> dict[str, Any]:
        doc = await self._repo.mark_read(notification_id, user_id)
        if not doc:
            raise NotFoundError("notification not found")
        return serialize(doc)
