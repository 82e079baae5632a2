from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class FileUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=200)
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v):
        if v is None:
            return v
        return [t.strip() for t in v if t and t.strip()]

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class FileListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    search: Optional[str] = None
    type: Optional[str] = None
    is_public: Optional[bool] = None


def parse_tags(raw: str | None) -> list[str]:
    """Comma separated form field -> clean tag list."""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]
