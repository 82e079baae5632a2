from __future__ import annotations

from typing import Any

from rolevault.auth import permissions as perms
from rolevault.auth.gate import owner_scope
from rolevault.auth.models import Principal
from rolevault.domain import lifecycle
from rolevault.domain.entities.request import (
    ApprovalRequestCreate,
    ApprovalRequestUpdate,
    RequestListQuery,
    ReviewDecision,
)
from rolevault.errors import ConflictError, NotFoundError
from rolevault.repositories.mongo import serialize
from rolevault.repositories.request_repository import RequestRepository
from rolevault.services.notification_service import Notifier, NotificationTypes
from rolevault.utils.response import paginated
from rolevault.utils.time_utils import utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)


class RequestService:
    def __init__(self, repo: RequestRepository, notifier: Notifier):
        self._repo = repo
        self._notifier = notifier

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self._notifier.dispatch(user_id, message)
        except Exception as exc:
            log.warning("svc.request.notify_failed user_id=%s error=%s", user_id, exc)

    async def submit(self, principal: Principal, body: ApprovalRequestCreate) -> dict[str, Any]:
        log.info(
            "svc.request.submit start user_id=%s role=%s type=%s",
            principal.user_id,
            principal.role,
            body.type,
        )
        lifecycle.ensure_can_submit(principal, body.type)

        now = utc_now()
        doc: dict[str, Any] = {
            "type": body.type,
            "title": body.title,
            "description": body.description,
            "priority": body.priority,
            "metadata": body.metadata,
            "requested_by": principal.user_id,
            "status": lifecycle.PENDING,
            "reviewed_by": None,
            "reviewed_at": None,
            "review_comment": None,
            "created_at": now,
            "updated_at": now,
        }
        _id = await self._repo.insert(doc)
        doc["_id"] = _id
        log.info("svc.request.submit done request_id=%s user_id=%s", _id, principal.user_id)

        self._notify(principal.user_id, NotificationTypes.request_submitted(body.type))
        return serialize(doc)

    async def list_own(self, principal: Principal, q: RequestListQuery) -> dict[str, Any]:
        query = {**q.filters(), "requested_by": principal.user_id}
        return await self._list(query, q)

    async def list_for_review(self, principal: Principal, q: RequestListQuery) -> dict[str, Any]:
        log.info("svc.request.list_for_review user_id=%s", principal.user_id)
        return await self._list(q.filters(), q)

    async def _list(self, query: dict[str, Any], q: RequestListQuery) -> dict[str, Any]:
        skip = (q.page - 1) * q.limit
        items, total = await self._repo.list(query=query, skip=skip, limit=q.limit)
        return paginated(
            [serialize(it) for it in items], key="requests", page=q.page, limit=q.limit, total=total
        )

    async def get(self, principal: Principal, request_id: str) -> dict[str, Any]:
        doc = await self._repo.find_one(request_id, owner_scope(principal, "requested_by"))
        if not doc:
            raise NotFoundError("request not found")
        return serialize(doc)

    async def update(
        self, principal: Principal, request_id: str, body: ApprovalRequestUpdate
    ) -> dict[str, Any]:
        changes = lifecycle.editable_changes(body.changes())
        log.info(
            "svc.request.update start request_id=%s user_id=%s keys=%s",
            request_id,
            principal.user_id,
            sorted(changes),
        )
        changes["updated_at"] = utc_now()
        doc = await self._repo.update_pending(request_id, lifecycle.edit_scope(principal), changes)
        if not doc:
            raise NotFoundError("request not found or cannot be modified")
        return serialize(doc)

    async def review(
        self, principal: Principal, request_id: str, body: ReviewDecision
    ) -> dict[str, Any]:
        log.info(
            "svc.request.review start request_id=%s reviewer=%s status=%s",
            request_id,
            principal.user_id,
            body.status,
        )
        lifecycle.ensure_can_review(principal, body.status)

        doc = await self._repo.review(
            request_id,
            status=body.status,
            reviewer_id=principal.user_id,
            comment=body.review_comment,
            now=utc_now(),
        )
        if not doc:
            current = await self._repo.find_one(request_id)
            if current is None:
                raise NotFoundError("request not found")
            log.info(
                "svc.request.review conflict request_id=%s current_status=%s",
                request_id,
                current.get("status"),
            )
            lifecycle.ensure_reviewable(current.get("status"), body.status)
            # pending again by the time we looked; the update still lost
            raise ConflictError("request not found or already reviewed")

        log.info("svc.request.review done request_id=%s status=%s", request_id, body.status)
        requester = str(doc.get("requested_by"))
        if body.status == lifecycle.APPROVED:
            self._notify(requester, NotificationTypes.request_approved(doc.get("type")))
        else:
            self._notify(requester, NotificationTypes.request_rejected(doc.get("type")))
        return serialize(doc)

    async def delete(self, principal: Principal, request_id: str) -> None:
        doc = await self._repo.delete(request_id, lifecycle.delete_scope(principal))
        if not doc:
            raise NotFoundError("request not found or cannot be deleted")
        log.info("svc.request.delete done request_id=%s user_id=%s", request_id, principal.user_id)

    async def pending_stats(self) -> dict[str, Any]:
        query = {"status": lifecycle.PENDING}
        count = await self._repo.count(query)
        recent, _ = await self._repo.list(query=query, skip=0, limit=5)
        return {"pending_count": count, "recent_requests": [serialize(it) for it in recent]}

    async def overview_stats(self) -> dict[str, Any]:
        by_status = await self._repo.count_by("status")
        status_stats = {s: by_status.get(s, 0) for s in (lifecycle.PENDING, *sorted(lifecycle.TERMINAL_STATES))}
        type_stats = await self._repo.count_by("type")
        return {"status_stats": status_stats, "type_stats": type_stats}

    async def dashboard_pending(self, principal: Principal, limit: int = 10) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"status": lifecycle.PENDING}
        if not principal.has_permission(perms.REQUESTS_VIEW_ALL):
            query["requested_by"] = principal.user_id
        items, _ = await self._repo.list(query=query, skip=0, limit=limit)
        return [serialize(it) for it in items]
