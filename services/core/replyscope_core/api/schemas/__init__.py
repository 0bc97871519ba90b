"""API schemas."""

from replyscope_core.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    UserInfo,
)
from replyscope_core.api.schemas.reports import (
    ActivityEntryResponse,
    ActivityListResponse,
    RateLimitedDetail,
    ReportCreate,
    ReportCreatedResponse,
    ReportResponse,
)

__all__ = [
    # Auth schemas
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "UserInfo",
    # Report schemas
    "ActivityEntryResponse",
    "ActivityListResponse",
    "RateLimitedDetail",
    "ReportCreate",
    "ReportCreatedResponse",
    "ReportResponse",
]
