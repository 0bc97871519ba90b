"""Report API routes.

Provides endpoints for:
- Creating a report (admission: validation, rate limit, workflow start)
- Reading a report and its activity feed
"""

import math
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from replyscope_core.api.deps import (
    CurrentUser,
    CurrentUserOptional,
    DBSession,
    EventBusDep,
    SettingsDep,
)
from replyscope_core.api.schemas.reports import (
    ActivityEntryResponse,
    ActivityListResponse,
    ReportCreate,
    ReportCreatedResponse,
    ReportResponse,
)
from replyscope_core.domain.errors import RateLimited, Unauthenticated, ValidationError
from replyscope_core.domain.models import LocalUser, Report, utcnow
from replyscope_core.domain.services.activity import ActivityLogger
from replyscope_core.domain.services.admission import (
    CreateReportInput,
    ReportAdmissionService,
)

router = APIRouter(prefix="/reports", tags=["reports"])


def _get_owned_report(db, report_id: int, user: LocalUser) -> Report:
    report = db.get(Report, report_id)
    # Other users' reports are indistinguishable from missing ones
    if report is None or report.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Report {report_id} not found",
        )
    return report


def _retry_after_seconds(retry_after: datetime) -> int:
    return max(1, math.ceil((retry_after - utcnow()).total_seconds()))


@router.post("", response_model=ReportCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    request: ReportCreate,
    db: DBSession,
    event_bus: EventBusDep,
    settings: SettingsDep,
    current_user: CurrentUserOptional,
) -> ReportCreatedResponse:
    """Create a report and start scraping its conversation.

    Returns:
        The new report's ID.

    Raises:
        HTTPException: 400 for invalid input, 401 when not signed in,
            429 when the creation rate limit is hit.
    """
    service = ReportAdmissionService(db, event_bus, settings=settings)

    try:
        report_id = service.create_report(
            CreateReportInput(**request.model_dump()),
            current_user,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Unauthenticated as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Cookie"},
        )
    except RateLimited as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": str(e),
                "retry_after": e.retry_after.replace(tzinfo=timezone.utc).isoformat(),
            },
            headers={"Retry-After": str(_retry_after_seconds(e.retry_after))},
        )

    return ReportCreatedResponse(id=report_id)


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: int,
    db: DBSession,
    current_user: CurrentUser,
) -> ReportResponse:
    """Get a report owned by the current user."""
    report = _get_owned_report(db, report_id, current_user)
    return ReportResponse.model_validate(report)


@router.get("/{report_id}/activity", response_model=ActivityListResponse)
async def list_report_activity(
    report_id: int,
    db: DBSession,
    current_user: CurrentUser,
    since: Optional[datetime] = Query(default=None, description="Only newer entries"),
    limit: int = Query(default=100, ge=1, le=500),
) -> ActivityListResponse:
    """Get a report's activity feed, oldest first."""
    _get_owned_report(db, report_id, current_user)

    if since is not None and since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)

    entries = ActivityLogger(db).list_entries(report_id, since=since, limit=limit)
    return ActivityListResponse(
        entries=[ActivityEntryResponse.model_validate(entry) for entry in entries]
    )
