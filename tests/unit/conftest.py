from __future__ import annotations

import pytest

from fakes import (
    FakeApiKeyRepository,
    FakeFileRepository,
    FakeNotifier,
    FakeNotificationRepository,
    FakeRequestRepository,
    FakeUserRepository,
)
from rolevault.auth.models import Principal
from rolevault.auth.permissions import permissions_for_role
from rolevault.auth.resolver import PrincipalResolver
from rolevault.configs.settings import Settings
from rolevault.services.api_key_service import ApiKeyService
from rolevault.services.auth_service import AuthService
from rolevault.services.file_service import FileService
from rolevault.services.request_service import RequestService
from rolevault.services.user_service import UserService


def make_principal(user_id: str, role: str, permissions=None, is_active: bool = True) -> Principal:
    if permissions is None:
        permissions = permissions_for_role(role)
    return Principal(user_id=user_id, role=role, permissions=frozenset(permissions), is_active=is_active)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        jwt_secret="test-secret",
        bcrypt_rounds=4,
        upload_dir=str(tmp_path / "uploads"),
        max_file_size=1024,
        _env_file=None,
    )


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def user_repo() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def request_repo() -> FakeRequestRepository:
    return FakeRequestRepository()


@pytest.fixture
def api_key_repo() -> FakeApiKeyRepository:
    return FakeApiKeyRepository()


@pytest.fixture
def file_repo() -> FakeFileRepository:
    return FakeFileRepository()


@pytest.fixture
def notification_repo() -> FakeNotificationRepository:
    return FakeNotificationRepository()


@pytest.fixture
def resolver(user_repo, settings) -> PrincipalResolver:
    return PrincipalResolver(user_repo, settings)


@pytest.fixture
def user_service(user_repo, settings) -> UserService:
    return UserService(user_repo, settings)


@pytest.fixture
def auth_service(user_repo, user_service, resolver, notifier, settings) -> AuthService:
    return AuthService(user_repo, user_service, resolver, notifier, settings)


@pytest.fixture
def request_service(request_repo, notifier) -> RequestService:
    return RequestService(request_repo, notifier)


@pytest.fixture
def api_key_service(api_key_repo, notifier, settings) -> ApiKeyService:
    return ApiKeyService(api_key_repo, notifier, settings)


@pytest.fixture
def file_service(file_repo, notifier, settings) -> FileService:
    return FileService(file_repo, notifier, settings)


@pytest.fixture
def viewer() -> Principal:
    return make_principal("65f000000000000000000001", "viewer")


@pytest.fixture
def contributor() -> Principal:
    return make_principal("65f000000000000000000002", "contributor")


@pytest.fixture
def admin() -> Principal:
    return make_principal("65f000000000000000000003", "admin")
