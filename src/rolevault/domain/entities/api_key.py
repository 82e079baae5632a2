from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from rolevault.utils.time_utils import as_utc, utc_now

ApiKeyScope = Literal["read", "write", "delete", "admin"]


class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    permissions: List[ApiKeyScope] = Field(default_factory=lambda: ["read"])
    expires_at: Optional[datetime] = None

    @field_validator("expires_at")
    @classmethod
    def must_be_future(cls, v):
        if v is not None and as_utc(v) <= utc_now():
            raise ValueError("expires_at must be in the future")
        return v


class ApiKeyUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    permissions: Optional[List[ApiKeyScope]] = None
    is_active: Optional[bool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class ApiKeyListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    search: Optional[str] = None
