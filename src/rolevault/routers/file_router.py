from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import FileResponse

from rolevault.auth import permissions as perms
from rolevault.auth.dependencies import get_principal, require_permissions
from rolevault.auth.models import Principal
from rolevault.domain.entities.file import FileListQuery, FileUpdate, parse_tags
from rolevault.services.file_service import FileService
from rolevault.utils.response import success
from rolevault.configs.logging_config import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


def _service(request: Request) -> FileService:
    return request.app.state.file_service


@router.post("/upload", status_code=201)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    description: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None),
    is_public: bool = Form(default=False),
    principal: Principal = Depends(require_permissions(perms.FILES_UPLOAD)),
) -> dict:
    try:
        data = await _service(request).upload(
            principal,
            file,
            description=description,
            tags=parse_tags(tags),
            is_public=is_public,
        )
    finally:
        await file.close()
    return success(data, message="File uploaded successfully")


@router.get("")
async def list_files(
    request: Request,
    q: Annotated[FileListQuery, Query()],
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).list(principal, q))


@router.get("/stats/user")
async def user_file_stats(request: Request, principal: Principal = Depends(get_principal)) -> dict:
    return success(await _service(request).stats_for_user(principal))


@router.get("/{file_id}")
async def get_file(
    request: Request,
    file_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).get(principal, file_id))


@router.get("/{file_id}/download")
async def download_file(
    request: Request,
    file_id: str,
    principal: Principal = Depends(require_permissions(perms.FILES_DOWNLOAD)),
) -> FileResponse:
    blob = await _service(request).download(principal, file_id)
    return FileResponse(blob["path"], filename=blob["filename"], media_type=blob["media_type"])


@router.put("/{file_id}")
async def update_file(
    request: Request,
    file_id: str,
    body: FileUpdate,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update(principal, file_id, body)
    return success(data, message="File updated successfully")


@router.delete("/{file_id}")
async def delete_file(
    request: Request,
    file_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    await _service(request).delete(principal, file_id)
    return success(None, message="File deleted successfully")
