from __future__ import annotations

import asyncio

import pytest

from conftest import make_principal
from rolevault.auth import permissions as perms
from rolevault.domain.entities.request import (
    ApprovalRequestCreate,
    ApprovalRequestUpdate,
    RequestListQuery,
    ReviewDecision,
)
from rolevault.errors import ConflictError, ForbiddenError, NotFoundError

pytestmark = pytest.mark.asyncio


def _body(request_type: str = "feature_access", **overrides) -> ApprovalRequestCreate:
    data = {
        "type": request_type,
        "title": "Need reports access",
        "description": "Quarterly reporting needs the export feature.",
    }
    data.update(overrides)
    return ApprovalRequestCreate(**data)


async def test_viewer_submits_feature_access(request_service, request_repo, notifier, viewer) -> None:
    created = await request_service.submit(viewer, _body())

    assert created["status"] == "pending"
    assert created["requested_by"] == viewer.user_id
    assert created["priority"] == "medium"
    assert created["reviewed_by"] is None
    assert len(request_repo.docs) == 1
    assert notifier.messages_for(viewer.user_id) == ["Your feature_access request has been submitted."]


async def test_viewer_cannot_submit_api_key_request(request_service, request_repo, notifier, viewer) -> None:
    with pytest.raises(ForbiddenError):
        await request_service.submit(viewer, _body("api_key"))
    assert request_repo.docs == {}
    assert notifier.sent == []


async def test_contributor_submits_api_key_request(request_service, contributor) -> None:
    created = await request_service.submit(contributor, _body("api_key"))
    assert created["type"] == "api_key"


async def test_get_is_scoped_to_owner(request_service, viewer, contributor, admin) -> None:
    created = await request_service.submit(viewer, _body())

    assert (await request_service.get(viewer, created["id"]))["id"] == created["id"]
    assert (await request_service.get(admin, created["id"]))["id"] == created["id"]
    with pytest.raises(NotFoundError):
        await request_service.get(contributor, created["id"])


async def test_malformed_id_is_not_found(request_service, viewer) -> None:
    with pytest.raises(NotFoundError):
        await request_service.get(viewer, "not-an-object-id")


async def test_owner_edits_pending_request(request_service, viewer) -> None:
    created = await request_service.submit(viewer, _body())
    updated = await request_service.update(
        viewer, created["id"], ApprovalRequestUpdate(title="Need export access", priority="high")
    )
    assert updated["title"] == "Need export access"
    assert updated["priority"] == "high"
    assert updated["status"] == "pending"


async def test_non_owner_cannot_edit(request_service, viewer, contributor, admin) -> None:
    created = await request_service.submit(viewer, _body())
    for other in (contributor, admin):
        with pytest.raises(NotFoundError):
            await request_service.update(other, created["id"], ApprovalRequestUpdate(title="Taken over"))


async def test_reviewed_request_is_frozen_for_owner(request_service, viewer, admin) -> None:
    created = await request_service.submit(viewer, _body())
    await request_service.review(admin, created["id"], ReviewDecision(status="approved"))

    with pytest.raises(NotFoundError):
        await request_service.update(viewer, created["id"], ApprovalRequestUpdate(title="Changed my mind"))
    with pytest.raises(NotFoundError):
        await request_service.delete(viewer, created["id"])


async def test_approve_records_reviewer_and_notifies(request_service, notifier, viewer, admin) -> None:
    created = await request_service.submit(viewer, _body())
    reviewed = await request_service.review(
        admin, created["id"], ReviewDecision(status="approved", review_comment="ok")
    )

    assert reviewed["status"] == "approved"
    assert reviewed["reviewed_by"] == admin.user_id
    assert reviewed["review_comment"] == "ok"
    assert reviewed["reviewed_at"] is not None
    assert notifier.messages_for(viewer.user_id)[-1] == "Your feature_access request has been approved."


async def test_second_review_conflicts_and_keeps_first(request_service, request_repo, viewer, admin) -> None:
    created = await request_service.submit(viewer, _body())
    await request_service.review(admin, created["id"], ReviewDecision(status="denied"))

    other_admin = make_principal("65f0000000000000000000aa", "admin")
    with pytest.raises(ConflictError):
        await request_service.review(other_admin, created["id"], ReviewDecision(status="approved"))

    stored = await request_repo.find_one(created["id"])
    assert stored["status"] == "denied"
    assert stored["reviewed_by"] == admin.user_id


async def test_concurrent_reviews_exactly_one_wins(request_service, request_repo, viewer, admin) -> None:
    created = await request_service.submit(viewer, _body())
    second = make_principal("65f0000000000000000000aa", "admin")

    results = await asyncio.gather(
        request_service.review(admin, created["id"], ReviewDecision(status="approved")),
        request_service.review(second, created["id"], ReviewDecision(status="denied")),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, dict)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1 and isinstance(losers[0], ConflictError)

    stored = await request_repo.find_one(created["id"])
    assert stored["status"] == winners[0]["status"]
    assert stored["reviewed_by"] == winners[0]["reviewed_by"]


async def test_review_needs_matching_grant(request_service, viewer) -> None:
    created = await request_service.submit(viewer, _body())
    rejector = make_principal("u9", "viewer", permissions=[perms.REQUESTS_REJECT])
    with pytest.raises(ForbiddenError):
        await request_service.review(rejector, created["id"], ReviewDecision(status="approved"))
    reviewed = await request_service.review(rejector, created["id"], ReviewDecision(status="denied"))
    assert reviewed["status"] == "denied"


async def test_review_missing_request(request_service, admin) -> None:
    with pytest.raises(NotFoundError):
        await request_service.review(admin, "65f0000000000000000000ff", ReviewDecision(status="approved"))


async def test_delete_rules(request_service, request_repo, viewer, contributor, admin) -> None:
    mine = await request_service.submit(viewer, _body())
    with pytest.raises(NotFoundError):
        await request_service.delete(contributor, mine["id"])
    await request_service.delete(viewer, mine["id"])
    assert request_repo.docs == {}

    reviewed = await request_service.submit(viewer, _body())
    await request_service.review(admin, reviewed["id"], ReviewDecision(status="approved"))
    await request_service.delete(admin, reviewed["id"])
    assert request_repo.docs == {}


async def test_listing_and_stats(request_service, viewer, contributor, admin) -> None:
    await request_service.submit(viewer, _body())
    await request_service.submit(viewer, _body("role_upgrade"))
    other = await request_service.submit(contributor, _body())
    await request_service.review(admin, other["id"], ReviewDecision(status="approved"))

    own = await request_service.list_own(viewer, RequestListQuery())
    assert own["pagination"] == {"current": 1, "pages": 1, "total": 2}
    assert {r["requested_by"] for r in own["requests"]} == {viewer.user_id}

    approved = await request_service.list_for_review(admin, RequestListQuery(status="approved"))
    assert [r["id"] for r in approved["requests"]] == [other["id"]]

    pending = await request_service.pending_stats()
    assert pending["pending_count"] == 2

    overview = await request_service.overview_stats()
    assert overview["status_stats"] == {"pending": 2, "approved": 1, "denied": 0}
    assert overview["type_stats"] == {"feature_access": 2, "role_upgrade": 1}

    assert len(await request_service.dashboard_pending(viewer)) == 2
    assert len(await request_service.dashboard_pending(contributor)) == 0
    assert len(await request_service.dashboard_pending(admin)) == 2
