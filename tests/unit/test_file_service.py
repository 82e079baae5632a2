from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_principal
from fakes import FakeUpload
from rolevault.domain.entities.file import FileListQuery, FileUpdate, parse_tags
from rolevault.errors import ForbiddenError, NotFoundError, ValidationError

pytestmark = pytest.mark.asyncio


async def test_upload_stores_blob(file_service, file_repo, notifier, contributor, settings) -> None:
    created = await file_service.upload(
        contributor, FakeUpload("notes.txt", b"hello"), description="notes", tags=["a", "b"]
    )

    assert created["original_name"] == "notes.txt"
    assert created["size"] == 5
    assert created["uploaded_by"] == contributor.user_id
    assert "path" not in created
    stored = next(iter(file_repo.docs.values()))
    assert Path(stored["path"]).read_bytes() == b"hello"
    assert Path(stored["path"]).parent == Path(settings.upload_dir)
    assert notifier.messages_for(contributor.user_id) == ['File "notes.txt" has been uploaded successfully.']


async def test_upload_rejects_extension_and_size(file_service, file_repo, contributor, settings) -> None:
    with pytest.raises(ValidationError):
        await file_service.upload(contributor, FakeUpload("run.exe", b"MZ"))
    with pytest.raises(ValidationError):
        await file_service.upload(contributor, FakeUpload("big.txt", b"x" * (settings.max_file_size + 1)))
    assert file_repo.docs == {}
    assert list(Path(settings.upload_dir).glob("*")) == []


async def test_failed_insert_leaves_no_blob(file_service, file_repo, contributor, settings, monkeypatch) -> None:
    async def broken_insert(doc):
        raise RuntimeError("db down")

    monkeypatch.setattr(file_repo, "insert", broken_insert)
    with pytest.raises(RuntimeError):
        await file_service.upload(contributor, FakeUpload("notes.txt", b"hello"))
    assert list(Path(settings.upload_dir).glob("*")) == []


async def test_public_upload_needs_make_public(file_service, contributor, admin) -> None:
    with pytest.raises(ForbiddenError):
        await file_service.upload(contributor, FakeUpload("a.txt", b"x"), is_public=True)
    created = await file_service.upload(admin, FakeUpload("a.txt", b"x"), is_public=True)
    assert created["is_public"] is True


async def test_visibility(file_service, contributor, admin) -> None:
    private = await file_service.upload(contributor, FakeUpload("private.txt", b"x"))
    public = await file_service.upload(admin, FakeUpload("public.txt", b"x"), is_public=True)
    stranger = make_principal("65f0000000000000000000cc", "viewer")

    listed = await file_service.list(stranger, FileListQuery())
    assert [f["id"] for f in listed["files"]] == [public["id"]]
    with pytest.raises(NotFoundError):
        await file_service.get(stranger, private["id"])

    assert (await file_service.list(admin, FileListQuery()))["pagination"]["total"] == 2


async def test_can_manage_flag(file_service, contributor, admin) -> None:
    own = await file_service.upload(contributor, FakeUpload("own.txt", b"x"))
    public = await file_service.upload(admin, FakeUpload("public.txt", b"x"), is_public=True)

    assert (await file_service.get(contributor, own["id"]))["can_manage"] is True
    assert (await file_service.get(contributor, public["id"]))["can_manage"] is False
    assert (await file_service.get(admin, own["id"]))["can_manage"] is True
    listed = await file_service.list(contributor, FileListQuery())
    assert {f["original_name"]: f["can_manage"] for f in listed["files"]} == {
        "own.txt": True,
        "public.txt": False,
    }


async def test_download_counts(file_service, file_repo, contributor) -> None:
    created = await file_service.upload(contributor, FakeUpload("a.txt", b"abc"))
    blob = await file_service.download(contributor, created["id"])
    assert blob["filename"] == "a.txt"
    assert blob["path"].read_bytes() == b"abc"
    assert (await file_repo.find_one(created["id"]))["download_count"] == 1


async def test_update_requires_ownership_and_publish_grant(file_service, contributor, admin) -> None:
    created = await file_service.upload(contributor, FakeUpload("a.txt", b"x"))
    other = make_principal("65f0000000000000000000cc", "contributor")

    with pytest.raises(NotFoundError):
        await file_service.update(other, created["id"], FileUpdate(description="mine"))
    with pytest.raises(ForbiddenError):
        await file_service.update(contributor, created["id"], FileUpdate(is_public=True))

    updated = await file_service.update(contributor, created["id"], FileUpdate(tags=[" x ", ""]))
    assert updated["tags"] == ["x"]
    published = await file_service.update(admin, created["id"], FileUpdate(is_public=True))
    assert published["is_public"] is True


async def test_delete_removes_blob(file_service, file_repo, contributor) -> None:
    created = await file_service.upload(contributor, FakeUpload("a.txt", b"x"))
    path = Path(next(iter(file_repo.docs.values()))["path"])
    await file_service.delete(contributor, created["id"])
    assert not path.exists()
    assert file_repo.docs == {}


async def test_stats_for_user(file_service, contributor) -> None:
    await file_service.upload(contributor, FakeUpload("a.txt", b"abc"))
    await file_service.upload(contributor, FakeUpload("b.csv", b"1,2"))
    data = await file_service.stats_for_user(contributor)
    assert data["stats"]["total_files"] == 2
    assert data["stats"]["total_size"] == 6
    assert len(data["recent_files"]) == 2


async def test_parse_tags() -> None:
    assert parse_tags(" a, b ,,c") == ["a", "b", "c"]
    assert parse_tags(None) == []
