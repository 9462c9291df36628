"""Assignment endpoints: allocate team members to project phases."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext, get_actor_context
from capacity.core.errors import ValidationError
from capacity.db.dependencies import get_db_session
from capacity.models.entities import AssignmentRole
from capacity.services.assignment_manager import (
    AssignmentCreateData,
    AssignmentManager,
    AssignmentUpdateData,
)
from capacity.services.version_guard import expected_version_for

router = APIRouter(tags=["assignments"])


class AssignmentCreatePayload(BaseModel):
    team_member_id: UUID
    working_percentage: int = Field(ge=0, le=100)
    start_date: date
    end_date: date | None = None
    role: AssignmentRole = AssignmentRole.TEAM_MEMBER


class AssignmentUpdatePayload(BaseModel):
    role: AssignmentRole | None = None
    working_percentage: int | None = Field(default=None, ge=0, le=100)
    start_date: date | None = None
    end_date: date | None = None
    version: int | None = Field(default=None, ge=1)


def _assignment_manager(db: Session) -> AssignmentManager:
    return AssignmentManager(db)


def _version_from_if_match(if_match: str | None) -> int | None:
    """Parse ``If-Match: "3"`` (weak validators accepted) into a version."""

    if if_match is None:
        return None
    raw = if_match.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError("If-Match must carry an integer version.") from exc


@router.get("/phases/{phase_id}/assignments")
def list_phase_assignments(
    phase_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    manager = _assignment_manager(db)
    rows = manager.list_for_phase(phase_id)
    return {"items": [manager.serialize_detail(row) for row in rows]}


@router.post("/phases/{phase_id}/assignments", status_code=status.HTTP_201_CREATED)
def create_phase_assignment(
    phase_id: UUID,
    payload: AssignmentCreatePayload,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    manager = _assignment_manager(db)
    detail = manager.assign(
        phase_id=phase_id,
        data=AssignmentCreateData(
            team_member_id=payload.team_member_id,
            working_percentage=payload.working_percentage,
            start_date=payload.start_date,
            end_date=payload.end_date,
            role=payload.role,
        ),
        actor=actor,
    )
    return manager.serialize_detail(detail)


@router.get("/assignments/{assignment_id}")
def get_assignment(
    assignment_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    manager = _assignment_manager(db)
    return manager.serialize_detail(manager.get(assignment_id))


@router.patch("/assignments/{assignment_id}")
def update_assignment(
    assignment_id: UUID,
    payload: AssignmentUpdatePayload,
    request: Request,
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    manager = _assignment_manager(db)
    detail = manager.update(
        assignment_id=assignment_id,
        data=AssignmentUpdateData(
            role=payload.role,
            working_percentage=payload.working_percentage,
            start_date=payload.start_date,
            end_date=payload.end_date,
            clear_end_date="end_date" in payload.model_fields_set and payload.end_date is None,
        ),
        actor=actor,
        expected_version=expected_version_for(request.method, payload.version),
    )
    return manager.serialize_detail(detail)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: UUID,
    request: Request,
    version: int | None = Query(default=None, ge=1),
    if_match: str | None = Header(default=None, alias="If-Match"),
    actor: ActorContext = Depends(get_actor_context),
    db: Session = Depends(get_db_session),
) -> Response:
    submitted = version if version is not None else _version_from_if_match(if_match)
    _assignment_manager(db).remove(
        assignment_id=assignment_id,
        actor=actor,
        expected_version=expected_version_for(request.method, submitted),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/team-members/{team_member_id}/assignments")
def list_team_member_assignments(
    team_member_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    manager = _assignment_manager(db)
    rows = manager.list_for_team_member(team_member_id)
    return {"items": [manager.serialize_detail(row) for row in rows]}
