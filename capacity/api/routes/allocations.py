"""Capacity ledger endpoints."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from capacity.core.errors import NotFoundError, ValidationError
from capacity.db.dependencies import get_db_session
from capacity.services.allocation_ledger import AllocationLedger

router = APIRouter(tags=["allocations"])


@router.get("/team-members/{team_member_id}/allocation-check")
def check_team_member_allocation(
    team_member_id: UUID,
    working_percentage: int = Query(ge=0, le=100),
    exclude_assignment_id: UUID | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    """Preview the effect of an allocation without changing anything."""

    ledger = AllocationLedger(db)
    if ledger.repo.get_team_member(team_member_id) is None:
        raise NotFoundError("Team member not found.")
    check = ledger.check_allocation(
        team_member_id,
        working_percentage,
        exclude_assignment_id=exclude_assignment_id,
        window=(start_date, end_date),
    )
    return {"team_member_id": str(team_member_id), **asdict(check)}


@router.get("/team-allocation")
def get_team_allocation(
    project_id: UUID | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    if start_date and end_date and start_date > end_date:
        raise ValidationError("end_date must be greater than or equal to start_date.")
    return AllocationLedger(db).team_allocation_summary(
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
    )
