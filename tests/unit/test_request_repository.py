from __future__ import annotations

import pytest
from bson import ObjectId

from rolevault.errors import NotFoundError
from rolevault.repositories.request_repository import RequestRepository
from rolevault.utils.time_utils import utc_now

pytestmark = pytest.mark.asyncio


class CapturingCollection:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict, dict | None]] = []

    async def find_one_and_update(self, query, update, return_document=None):
        self.calls.append(("find_one_and_update", query, update))
        return None

    async def find_one_and_delete(self, query):
        self.calls.append(("find_one_and_delete", query, None))
        return None


class CapturingDb(dict):
    def __missing__(self, key):
        self[key] = CapturingCollection()
        return self[key]


@pytest.fixture
def db() -> CapturingDb:
    return CapturingDb()


async def test_review_filter_requires_pending(db, settings) -> None:
    repo = RequestRepository(db, settings)
    request_id = str(ObjectId())

    result = await repo.review(request_id, status="approved", reviewer_id="u3", comment=None, now=utc_now())

    assert result is None
    _, query, update = db["requests"].calls[0]
    assert query == {"_id": ObjectId(request_id), "status": "pending"}
    assert update["$set"]["status"] == "approved"
    assert update["$set"]["reviewed_by"] == "u3"
    assert "review_comment" not in update["$set"]


async def test_update_pending_cannot_widen_scope(db, settings) -> None:
    repo = RequestRepository(db, settings)
    request_id = str(ObjectId())

    await repo.update_pending(request_id, {"requested_by": "u1", "status": "approved"}, {"title": "x"})

    _, query, _ = db["requests"].calls[0]
    assert query["status"] == "pending"
    assert query["requested_by"] == "u1"


async def test_malformed_id_is_not_found(db, settings) -> None:
    repo = RequestRepository(db, settings)
    with pytest.raises(NotFoundError):
        await repo.delete("xyz", {})
    assert db["requests"].calls == []
