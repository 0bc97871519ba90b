"""Report schemas for request/response validation.

Request fields are deliberately loose: admission normalizes them (clamping
thresholds, defaulting bad numbers, falling back to the balanced preset)
rather than rejecting the request.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ReportCreate(BaseModel):
    """Request body for creating a report."""

    url: str = Field(..., description="X post URL, e.g. https://x.com/user/status/123")
    goal: str = Field(..., description="What the user wants to learn from replies")
    persona: Optional[str] = None
    preset: Optional[str] = Field(default=None, description="Weight preset or 'custom'")
    weights: Union[dict[str, Any], str, None] = None
    reply_threshold: Union[int, str, None] = None
    min_length: Union[int, str, None] = None
    blue_only: bool = False
    min_followers: Union[int, str, None] = None


class ReportCreatedResponse(BaseModel):
    """Response body for a newly created report."""

    id: int


class RateLimitedDetail(BaseModel):
    """Error detail for a rate-limited creation."""

    message: str
    retry_after: datetime


class ReportResponse(BaseModel):
    """A report as shown to its owner."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source_url: str
    conversation_id: str
    status: str
    title: Optional[str] = None
    goal: str
    persona: Optional[str] = None
    preset: str
    weights: dict[str, Any]
    reply_threshold: int
    min_length: int
    blue_only: bool
    min_followers: Optional[int] = None
    useful_count: int
    qualified_count: int
    original_post_text: Optional[str] = None
    original_author_username: Optional[str] = None
    original_author_avatar: Optional[str] = None
    last_reply_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ActivityEntryResponse(BaseModel):
    """One activity feed entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    key: str
    message: str
    meta: Optional[dict[str, Any]] = None
    ts: datetime


class ActivityListResponse(BaseModel):
    """A report's activity feed, oldest first."""

    entries: list[ActivityEntryResponse]
