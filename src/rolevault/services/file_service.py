from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import Any, Protocol

from rolevault.auth import permissions as perms
from rolevault.auth.gate import allow_owner_or_privileged, ensure_permissions, is_privileged, owner_scope
from rolevault.auth.models import Principal
from rolevault.configs.settings import Settings
from rolevault.domain.entities.file import FileListQuery, FileUpdate
from rolevault.errors import NotFoundError, ValidationError
from rolevault.repositories.file_repository import FileRepository
from rolevault.repositories.mongo import serialize
from rolevault.services.notification_service import Notifier, NotificationTypes
from rolevault.utils.response import paginated
from rolevault.utils.time_utils import utc_now
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

CHUNK_SIZE = 1024 * 1024


class Upload(Protocol):
    """What the service needs from an incoming file (FastAPI's UploadFile fits)."""

    filename: str | None
    content_type: str | None

    async def read(self, size: int = -1) -> bytes: ...


def _file_error(message: str) -> ValidationError:
    return ValidationError(message, errors=[{"field": "file", "message": message}])


class FileService:
    def __init__(self, repo: FileRepository, notifier: Notifier, settings: Settings):
        self._repo = repo
        self._notifier = notifier
        self._settings = settings
        self._root = Path(settings.upload_dir)

    def _notify(self, user_id: str, message: str) -> None:
        try:
            self._notifier.dispatch(user_id, message)
        except Exception as exc:
            log.warning("svc.file.notify_failed user_id=%s error=%s", user_id, exc)

    def _visible(self, principal: Principal) -> dict[str, Any]:
        if is_privileged(principal):
            return {}
        return {"$or": [{"uploaded_by": principal.user_id}, {"is_public": True}]}

    def _for_reader(self, principal: Principal, doc: dict[str, Any]) -> dict[str, Any]:
        out = serialize(doc, hidden=("path",))
        # public files are readable by everyone but editable only by owner or admin
        out["can_manage"] = allow_owner_or_privileged(principal, doc.get("uploaded_by"))
        return out

    def _extension(self, filename: str) -> str:
        ext = Path(filename).suffix.lower().lstrip(".")
        allowed = {e.lower().lstrip(".") for e in self._settings.allowed_upload_extensions}
        if not ext or ext not in allowed:
            raise _file_error(f"file type not allowed: {filename}")
        return ext

    async def _store(self, upload: Upload, target: Path) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        with target.open("wb") as f:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > self._settings.max_file_size:
                    raise _file_error(
                        f"file too large, limit is {self._settings.max_file_size} bytes"
                    )
                f.write(chunk)
        return size

    async def upload(
        self,
        principal: Principal,
        upload: Upload,
        *,
        description: str | None = None,
        tags: list[str] | None = None,
        is_public: bool = False,
    ) -> dict[str, Any]:
        if not upload.filename:
            raise _file_error("no file uploaded")
        if is_public:
            ensure_permissions(principal, [perms.FILES_MAKE_PUBLIC])
        if description is not None and len(description) > 200:
            raise ValidationError(
                "description too long",
                errors=[{"field": "description", "message": "at most 200 characters"}],
            )

        ext = self._extension(upload.filename)
        stored_name = f"{uuid.uuid4().hex}.{ext}"
        target = self._root / stored_name
        log.info(
            "svc.file.upload start user_id=%s filename=%s public=%s",
            principal.user_id,
            upload.filename,
            is_public,
        )
        # the blob only survives if its metadata row does
        try:
            size = await self._store(upload, target)
            now = utc_now()
            doc: dict[str, Any] = {
                "filename": stored_name,
                "original_name": upload.filename,
                "mimetype": upload.content_type or "application/octet-stream",
                "size": size,
                "path": str(target),
                "uploaded_by": principal.user_id,
                "is_public": is_public,
                "download_count": 0,
                "description": description,
                "tags": tags or [],
                "created_at": now,
                "updated_at": now,
            }
            doc["_id"] = await self._repo.insert(doc)
        except Exception:
            target.unlink(missing_ok=True)
            log.warning("svc.file.upload aborted user_id=%s filename=%s", principal.user_id, upload.filename)
            raise
        log.info("svc.file.upload done file_id=%s size=%s", doc["_id"], size)

        self._notify(principal.user_id, NotificationTypes.file_uploaded(upload.filename))
        return serialize(doc, hidden=("path",))

    async def list(self, principal: Principal, q: FileListQuery) -> dict[str, Any]:
        query = dict(self._visible(principal))
        if q.search:
            query["original_name"] = {"$regex": re.escape(q.search), "$options": "i"}
        if q.type:
            query["mimetype"] = {"$regex": "^" + re.escape(q.type)}
        if q.is_public is not None:
            query["is_public"] = q.is_public
        items, total = await self._repo.list(query=query, skip=(q.page - 1) * q.limit, limit=q.limit)
        return paginated(
            [self._for_reader(principal, it) for it in items],
            key="files",
            page=q.page,
            limit=q.limit,
            total=total,
        )

    async def get(self, principal: Principal, file_id: str) -> dict[str, Any]:
        doc = await self._repo.find_one(file_id, self._visible(principal))
        if not doc:
            raise NotFoundError("file not found")
        return self._for_reader(principal, doc)

    async def download(self, principal: Principal, file_id: str) -> dict[str, Any]:
        """Resolve a stored blob for streaming and count the download."""
        doc = await self._repo.find_one(file_id, self._visible(principal))
        if not doc:
            raise NotFoundError("file not found")
        path = Path(doc["path"])
        if not path.is_file():
            log.warning("svc.file.download blob_missing file_id=%s path=%s", file_id, path)
            raise NotFoundError("file not found")
        await self._repo.increment_downloads(file_id)
        log.info("svc.file.download user_id=%s file_id=%s", principal.user_id, file_id)
        return {"path": path, "filename": doc["original_name"], "media_type": doc.get("mimetype")}

    async def update(self, principal: Principal, file_id: str, body: FileUpdate) -> dict[str, Any]:
        changes = body.changes()
        if changes.get("is_public"):
            ensure_permissions(principal, [perms.FILES_MAKE_PUBLIC])
        changes["updated_at"] = utc_now()
        log.info("svc.file.update file_id=%s user_id=%s keys=%s", file_id, principal.user_id, sorted(changes))
        doc = await self._repo.update(file_id, owner_scope(principal, "uploaded_by"), changes)
        if not doc:
            raise NotFoundError("file not found")
        return serialize(doc, hidden=("path",))

    async def delete(self, principal: Principal, file_id: str) -> None:
        doc = await self._repo.delete(file_id, owner_scope(principal, "uploaded_by"))
        if not doc:
            raise NotFoundError("file not found")
        Path(doc["path"]).unlink(missing_ok=True)
        log.info("svc.file.delete done file_id=%s user_id=%s", file_id, principal.user_id)
        self._notify(principal.user_id, NotificationTypes.file_deleted(doc.get("original_name", "")))

    async def stats_for_user(self, principal: Principal) -> dict[str, Any]:
        stats = await self._repo.stats_for_user(principal.user_id)
        recent = await self._repo.recent_for_user(principal.user_id, limit=5)
        return {"stats": stats, "recent_files": [serialize(it) for it in recent]}
