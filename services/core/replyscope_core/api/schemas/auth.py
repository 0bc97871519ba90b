"""Authentication schemas for request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Request body for login endpoint."""

    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)


class UserInfo(BaseModel):
    """Public user information (no sensitive data)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    created_at: datetime
    last_login_at: Optional[datetime] = None


class LoginResponse(BaseModel):
    """Response body for successful login."""

    success: bool = True
    user: UserInfo


class LogoutResponse(BaseModel):
    """Response body for successful logout."""

    success: bool = True
    message: str = "Logged out successfully"
