from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import make_principal
from rolevault.domain.entities.api_key import ApiKeyCreate, ApiKeyListQuery, ApiKeyUpdate
from rolevault.errors import NotFoundError
from rolevault.main import api_key_expiry_worker
from rolevault.utils.time_utils import as_utc, utc_now

pytestmark = pytest.mark.asyncio


async def test_create_issues_prefixed_key(api_key_service, api_key_repo, notifier, contributor, settings) -> None:
    created = await api_key_service.create(contributor, ApiKeyCreate(name="ci"))

    assert created["key"].startswith("ak_")
    assert len(created["key"]) == 3 + 64
    assert created["permissions"] == ["read"]
    assert created["usage"] == {"total_requests": 0, "last_request": None}
    stored = next(iter(api_key_repo.docs.values()))
    remaining = as_utc(stored["expires_at"]) - utc_now()
    assert timedelta(days=settings.api_key_ttl_days - 1) < remaining <= timedelta(days=settings.api_key_ttl_days)
    assert notifier.messages_for(contributor.user_id) == ['New API key "ci" has been created.']


async def test_keys_are_scoped_to_owner(api_key_service, contributor, admin) -> None:
    created = await api_key_service.create(contributor, ApiKeyCreate(name="ci"))
    other = make_principal("65f0000000000000000000bb", "contributor")

    with pytest.raises(NotFoundError):
        await api_key_service.get(other, created["id"])
    with pytest.raises(NotFoundError):
        await api_key_service.update(other, created["id"], ApiKeyUpdate(name="mine now"))
    with pytest.raises(NotFoundError):
        await api_key_service.delete(other, created["id"])

    assert (await api_key_service.list(other, ApiKeyListQuery()))["pagination"]["total"] == 0
    assert (await api_key_service.list(admin, ApiKeyListQuery()))["pagination"]["total"] == 1
    assert (await api_key_service.get(admin, created["id"]))["name"] == "ci"


async def test_regenerate_replaces_key(api_key_service, contributor) -> None:
    created = await api_key_service.create(contributor, ApiKeyCreate(name="ci"))
    fresh = await api_key_service.regenerate(contributor, created["id"])
    assert fresh["key"] != created["key"]
    assert fresh["key"].startswith("ak_")


async def test_update_and_delete(api_key_service, api_key_repo, notifier, contributor) -> None:
    created = await api_key_service.create(contributor, ApiKeyCreate(name="ci", permissions=["read", "write"]))
    updated = await api_key_service.update(
        contributor, created["id"], ApiKeyUpdate(is_active=False, permissions=["write", "write"])
    )
    assert updated["is_active"] is False
    assert updated["permissions"] == ["write"]

    await api_key_service.delete(contributor, created["id"])
    assert api_key_repo.docs == {}
    assert notifier.messages_for(contributor.user_id)[-1] == 'API key "ci" has been deleted.'


async def test_expiry_must_be_in_future() -> None:
    with pytest.raises(ValueError):
        ApiKeyCreate(name="ci", expires_at=utc_now() - timedelta(days=1))


async def test_stats(api_key_service, contributor) -> None:
    await api_key_service.create(contributor, ApiKeyCreate(name="one"))
    await api_key_service.create(contributor, ApiKeyCreate(name="two"))
    data = await api_key_service.stats()
    assert data["stats"]["total"] == 2
    assert data["stats"]["active"] == 2
    assert all("key" not in k for k in data["recent_keys"])


async def _stored_key(api_key_repo, user_id: str, name: str, expires_in: timedelta) -> str:
    now = utc_now()
    return await api_key_repo.insert(
        {
            "name": name,
            "key": f"ak_{name}",
            "user_id": user_id,
            "permissions": ["read"],
            "is_active": True,
            "expires_at": now + expires_in,
            "created_at": now,
            "updated_at": now,
        }
    )


async def test_expire_keys_deactivates_once(api_key_service, api_key_repo, notifier, contributor) -> None:
    old = await _stored_key(api_key_repo, contributor.user_id, "old", timedelta(days=-1))
    fresh = await _stored_key(api_key_repo, contributor.user_id, "fresh", timedelta(days=30))

    assert await api_key_service.expire_keys() == 1
    assert (await api_key_repo.find_one(old))["is_active"] is False
    assert (await api_key_repo.find_one(fresh))["is_active"] is True
    assert notifier.messages_for(contributor.user_id) == ['API key "old" has expired.']

    assert await api_key_service.expire_keys() == 0
    assert len(notifier.sent) == 1


async def test_warn_expiring_notifies_once(api_key_service, api_key_repo, notifier, contributor) -> None:
    soon = await _stored_key(api_key_repo, contributor.user_id, "soon", timedelta(days=2, hours=12))
    await _stored_key(api_key_repo, contributor.user_id, "tomorrow", timedelta(hours=20))
    await _stored_key(api_key_repo, contributor.user_id, "later", timedelta(days=30))

    assert await api_key_service.warn_expiring() == 2
    assert sorted(notifier.messages_for(contributor.user_id)) == [
        'Your API key "soon" will expire in 3 days.',
        'Your API key "tomorrow" will expire in 1 day.',
    ]
    assert (await api_key_repo.find_one(soon))["expiration_warning_notified"] is True

    assert await api_key_service.warn_expiring() == 0
    assert len(notifier.sent) == 2


async def test_sweep_expiry_runs_both(api_key_service, api_key_repo, contributor) -> None:
    await _stored_key(api_key_repo, contributor.user_id, "old", timedelta(days=-1))
    await _stored_key(api_key_repo, contributor.user_id, "soon", timedelta(days=1))

    assert await api_key_service.sweep_expiry() == {"expired": 1, "warned": 1}


async def test_expiry_worker_sweeps_until_cancelled(api_key_service, api_key_repo, notifier, contributor) -> None:
    await _stored_key(api_key_repo, contributor.user_id, "old", timedelta(days=-1))

    task = asyncio.create_task(api_key_expiry_worker(api_key_service, 3600))
    for _ in range(5):
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert notifier.messages_for(contributor.user_id) == ['API key "old" has expired.']
