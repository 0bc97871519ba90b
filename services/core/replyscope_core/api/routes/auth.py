"""Authentication API routes."""

import logging

from fastapi import APIRouter, HTTPException, Response, status

from replyscope_core.api.deps import (
    AuthServiceDep,
    CurrentUser,
    DBSession,
    SessionId,
    SettingsDep,
)
from replyscope_core.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    UserInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_COOKIE = "session"


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    auth_service: AuthServiceDep,
    db: DBSession,
    settings: SettingsDep,
) -> LoginResponse:
    """Authenticate user and create session.

    Sets a session cookie on successful authentication.
    """
    user = auth_service.authenticate_user(request.username, request.password)

    if user is None:
        logger.info("Failed login", extra={"username": request.username})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    session_id = auth_service.create_session(
        user.id,
        expire_hours=settings.session_expire_hours,
    )
    db.flush()

    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        httponly=True,
        secure=True,  # Requires HTTPS
        samesite="lax",
        max_age=settings.session_expire_hours * 3600,
    )

    return LoginResponse(success=True, user=UserInfo.model_validate(user))


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    session_id: SessionId,
    auth_service: AuthServiceDep,
    current_user: CurrentUser,
) -> LogoutResponse:
    """Invalidate current session and clear cookie."""
    if session_id:
        auth_service.invalidate_session(session_id)

    response.delete_cookie(
        key=SESSION_COOKIE,
        httponly=True,
        secure=True,
        samesite="lax",
    )

    return LogoutResponse()

