from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

RequestType = Literal["api_key", "file_publish", "role_upgrade", "feature_access"]
RequestStatus = Literal["pending", "approved", "denied"]
ReviewStatus = Literal["approved", "denied"]
RequestPriority = Literal["low", "medium", "high"]


class ApprovalRequestCreate(BaseModel):
    type: RequestType
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=500)
    priority: RequestPriority = "medium"
    metadata: dict[str, Any] = Field(default_factory=dict)


class ApprovalRequestUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=500)
    priority: Optional[RequestPriority] = None
    metadata: Optional[dict[str, Any]] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ReviewDecision(BaseModel):
    status: ReviewStatus
    review_comment: Optional[str] = Field(default=None, max_length=300)


class RequestListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: Optional[RequestStatus] = None
    type: Optional[RequestType] = None

    def filters(self) -> dict[str, Any]:
        q: dict[str, Any] = {}
        if self.status:
            q["status"] = self.status
        if self.type:
            q["type"] = self.type
        return q
