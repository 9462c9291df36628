"""Timeline and calendar endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from capacity.db.dependencies import get_db_session
from capacity.services.timeline_service import TimelineConflictDetector, TimelineFilter

router = APIRouter(prefix="/timeline", tags=["timeline"])


@router.get("")
def get_timeline(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    project_id: UUID | None = Query(default=None),
    team_member_id: UUID | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    detector = TimelineConflictDetector(db)
    items = detector.get_timeline(
        TimelineFilter(
            start_date=start_date,
            end_date=end_date,
            project_id=project_id,
            team_member_id=team_member_id,
        )
    )
    return {"items": items}


@router.get("/calendar/{year}/{month}")
def get_calendar_events(
    year: int,
    month: int,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": TimelineConflictDetector(db).get_calendar_events(year, month)}
