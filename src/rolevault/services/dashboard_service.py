from __future__ import annotations

from typing import Any

from rolevault.auth.models import Principal
from rolevault.services.file_service import FileService
from rolevault.services.request_service import RequestService


class DashboardService:
    """Landing page widgets for the signed-in user."""

    def __init__(self, requests: RequestService, files: FileService):
        self._requests = requests
        self._files = files

    async def overview(self, principal: Principal) -> dict[str, Any]:
        pending = await self._requests.dashboard_pending(principal)
        files = await self._files.stats_for_user(principal)
        return {
            "pending_requests": pending,
            "file_stats": files["stats"],
            "recent_files": files["recent_files"],
        }
