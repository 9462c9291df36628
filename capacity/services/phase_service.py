"""Versioned edits of phase schedule and status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext
from capacity.core.errors import CapacityError, NotFoundError, StoreError, ValidationError
from capacity.models.entities import Phase, PhaseStatus
from capacity.repositories.scheduling_repository import SchedulingRepository
from capacity.services.audit_trail import AuditTrail
from capacity.services.version_guard import EntityKind, VersionGuard

logger = logging.getLogger(__name__)

AUDIT_ENTITY_TYPE = "Phase"


@dataclass(slots=True)
class PhaseUpdateData:
    name: str | None = None
    status: PhaseStatus | None = None
    start_date: date | None = None
    duration: int | None = None
    estimated_end_date: date | None = None
    actual_end_date: date | None = None


class PhaseScheduleService:
    """Applies phase edits through the version guard and audits them."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = SchedulingRepository(db)
        self.guard = VersionGuard(db)
        self.audit = AuditTrail(db)

    @staticmethod
    def serialize_phase(phase: Phase) -> dict[str, object]:
        return {
            "id": str(phase.id),
            "project_id": str(phase.project_id),
            "name": phase.name,
            "phase_order": phase.phase_order,
            "status": phase.status.value,
            "start_date": phase.start_date.isoformat(),
            "duration": phase.duration,
            "estimated_end_date": phase.estimated_end_date.isoformat() if phase.estimated_end_date else None,
            "actual_end_date": phase.actual_end_date.isoformat() if phase.actual_end_date else None,
            "version": phase.version,
        }

    def update_phase(
        self,
        *,
        phase_id: UUID,
        data: PhaseUpdateData,
        actor: ActorContext,
        expected_version: int | None = None,
    ) -> Phase:
        phase = self.repo.get_phase(phase_id)
        if phase is None:
            raise NotFoundError("Phase not found.")
        before = self.serialize_phase(phase)

        if data.duration is not None and data.duration < 0:
            raise ValidationError("duration must be greater than or equal to 0.")
        target_start = data.start_date or phase.start_date
        for label, end in (
            ("estimated_end_date", data.estimated_end_date or phase.estimated_end_date),
            ("actual_end_date", data.actual_end_date or phase.actual_end_date),
        ):
            if end is not None and end < target_start:
                raise ValidationError(f"{label} must be greater than or equal to start_date.")

        changes: dict[str, object] = {}
        if data.name is not None:
            changes["name"] = data.name.strip()
        if data.start_date is not None:
            changes["start_date"] = data.start_date
        if data.duration is not None:
            changes["duration"] = data.duration
        if data.estimated_end_date is not None:
            changes["estimated_end_date"] = data.estimated_end_date
        if data.actual_end_date is not None:
            changes["actual_end_date"] = data.actual_end_date
        status_only = not changes and data.status is not None and data.status is not phase.status
        if data.status is not None:
            changes["status"] = data.status
        changes["updated_at"] = datetime.utcnow()

        try:
            updated = self.guard.write(
                EntityKind.PHASE,
                phase.id,
                expected_version=expected_version,
                changes=changes,
            )
            if updated is None:
                raise NotFoundError("Phase not found.")
            if status_only:
                self.audit.log_status_change(
                    AUDIT_ENTITY_TYPE, updated.id, actor, before["status"], updated.status.value
                )
            else:
                self.audit.log_update(AUDIT_ENTITY_TYPE, updated.id, actor, before, self.serialize_phase(updated))
            self.db.commit()
        except CapacityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to update phase %s", phase_id)
            raise StoreError("Failed to update phase.") from exc

        self.db.refresh(updated)
        logger.info("Phase %s updated to version %s", updated.id, updated.version)
        return updated
