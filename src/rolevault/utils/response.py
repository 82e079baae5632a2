from __future__ import annotations

from typing import Any

from rolevault.utils.time_utils import now_ms


def success(data: Any, message: str = "request processed successfully") -> dict[str, Any]:
    return {"status": "success", "message": message, "data": data, "timestamp": now_ms()}


def failure(message: str, **extra: Any) -> dict[str, Any]:
    out = {"status": "failure", "message": message, "timestamp": now_ms()}
    out.update(extra)
    return out


def paginated(items: list[Any], *, key: str, page: int, limit: int, total: int) -> dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return {key: items, "pagination": {"current": page, "pages": pages, "total": total}}
