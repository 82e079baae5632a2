from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from rolevault.auth.permissions import permissions_for_role
from rolevault.utils.time_utils import utc_now

Role = Literal["admin", "contributor", "viewer"]

# Account-level priority allows "urgent"; request priority does not.
AccountPriority = Literal["low", "medium", "high", "urgent"]

EMAIL_PATTERN = r"^\w+([.+-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,})+$"


class Preferences(BaseModel):
    theme: Literal["light", "dark"] = "light"
    notifications: bool = True


class _EmailMixin(BaseModel):
    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class RegisterRequest(_EmailMixin):
    name: str = Field(min_length=2, max_length=50)
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)
    role: Role = "viewer"


class LoginRequest(_EmailMixin):
    email: str = Field(pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6)


class TotpVerifyLoginRequest(BaseModel):
    temp_token: str
    code: str = Field(min_length=6, max_length=8)


class TotpCodeRequest(BaseModel):
    code: str = Field(min_length=6, max_length=8)


class TotpDisableRequest(TotpCodeRequest):
    password: str = Field(min_length=6)


class ProfileUpdateRequest(BaseModel):
    """Self-service fields. Role, permissions and is_active are not editable here."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = None
    country: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)
    profile_image: Optional[str] = None
    priority: Optional[AccountPriority] = None
    preferences: Optional[Preferences] = None


class UserCreateRequest(RegisterRequest):
    pass


class UserUpdateRequest(_EmailMixin):
    """Administrative edit. Passwords are never changed through this model."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    role: Optional[Role] = None
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None
    preferences: Optional[Preferences] = None
    profile_image: Optional[str] = None


class UserListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    search: Optional[str] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


def build_account_document(
    *,
    name: str,
    email: str,
    password_hash: str,
    role: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    New account document.

    This is the only place default permissions are derived from the role.
    """
    now = now or utc_now()
    return {
        "name": name,
        "email": email,
        "password_hash": password_hash,
        "role": role,
        "permissions": permissions_for_role(role),
        "is_active": True,
        "last_login_at": None,
        "totp_enabled": False,
        "totp_secret": None,
        "first_name": "",
        "last_name": "",
        "phone": "",
        "country": "",
        "bio": "",
        "profile_image": None,
        "priority": "medium",
        "preferences": Preferences().model_dump(),
        "created_at": now,
        "updated_at": now,
    }
