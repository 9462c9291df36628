"""Phase schedule endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext, get_actor_context
from capacity.db.dependencies import get_db_session
from capacity.models.entities import PhaseStatus
from capacity.services.phase_service import PhaseScheduleService, PhaseUpdateData
from capacity.services.version_guard import expected_version_for

router = APIRouter(tags=["phases"])


class PhaseUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: PhaseStatus | None = None
    start_date: date | None = None
    duration: int | None = Field(default=None, ge=0)
    estimated_end_date: date | None = None
    actual_end_date: date | None = None
    version: int | None = Field(default=None, ge=1)


@router.patch("/phases/{phase_id}")
def update_phase(
    phase_id: UUID,
    payload: PhaseUpdatePayload,
    request: Request,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = PhaseScheduleService(db)
    phase = service.update_phase(
        phase_id=phase_id,
        data=PhaseUpdateData(
            name=payload.name,
            status=payload.status,
            start_date=payload.start_date,
            duration=payload.duration,
            estimated_end_date=payload.estimated_end_date,
            actual_end_date=payload.actual_end_date,
        ),
        actor=actor,
        expected_version=expected_version_for(request.method, payload.version),
    )
    return service.serialize_phase(phase)
