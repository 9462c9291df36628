"""Application service for team member assignments to project phases."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext
from capacity.core.errors import (
    CapacityError,
    DuplicateAssignmentError,
    NotFoundError,
    OverallocationError,
    StoreError,
    ValidationError,
)
from capacity.models.entities import Assignment, AssignmentRole, Phase, Project, TeamMember
from capacity.repositories.scheduling_repository import SchedulingRepository
from capacity.services.allocation_ledger import AllocationCheck, AllocationLedger
from capacity.services.audit_trail import AuditTrail
from capacity.services.version_guard import EntityKind, VersionGuard

logger = logging.getLogger(__name__)

AUDIT_ENTITY_TYPE = "Assignment"


@dataclass(slots=True)
class AssignmentCreateData:
    team_member_id: UUID
    working_percentage: int
    start_date: date
    end_date: date | None = None
    role: AssignmentRole = AssignmentRole.TEAM_MEMBER


@dataclass(slots=True)
class AssignmentUpdateData:
    role: AssignmentRole | None = None
    working_percentage: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    # Explicitly turn the assignment into an open-ended one.
    clear_end_date: bool = False


@dataclass(slots=True)
class AssignmentDetail:
    assignment: Assignment
    phase: Phase
    project: Project
    team_member: TeamMember


def validate_working_percentage(value: int) -> None:
    if value < 0 or value > 100:
        raise ValidationError("working_percentage must be between 0 and 100.")


def validate_date_range(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date must be greater than or equal to start_date.")


class AssignmentManager:
    """Creates, updates and removes assignments under the allocation cap.

    Each mutation runs as one transaction: the team member row is locked,
    the ledger is consulted, the write goes through the version guard and
    the audit entry is flushed before the single commit.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = SchedulingRepository(db)
        self.ledger = AllocationLedger(db)
        self.guard = VersionGuard(db)
        self.audit = AuditTrail(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_assignment(assignment: Assignment) -> dict[str, object]:
        return {
            "id": str(assignment.id),
            "phase_id": str(assignment.phase_id),
            "team_member_id": str(assignment.team_member_id),
            "role": assignment.role.value,
            "working_percentage": assignment.working_percentage,
            "start_date": assignment.start_date.isoformat(),
            "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
            "version": assignment.version,
        }

    @classmethod
    def serialize_detail(cls, detail: AssignmentDetail) -> dict[str, object]:
        return {
            **cls.serialize_assignment(detail.assignment),
            "phase": {
                "id": str(detail.phase.id),
                "name": detail.phase.name,
                "status": detail.phase.status.value,
            },
            "project": {
                "id": str(detail.project.id),
                "code": detail.project.code,
                "name": detail.project.name,
            },
            "team_member": {
                "id": str(detail.team_member.id),
                "name": detail.team_member.name,
                "email": detail.team_member.email,
                "role": detail.team_member.role.value,
            },
        }

    # ---------- Internals ----------
    @contextmanager
    def _transaction(self, operation: str, **identifiers: object) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except CapacityError:
            self.db.rollback()
            raise
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateAssignmentError(
                "Assignment already exists for this team member, phase and role."
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to %s %s", operation, identifiers)
            raise StoreError(f"Failed to {operation}.") from exc

    @staticmethod
    def _reject(check: AllocationCheck) -> OverallocationError:
        return OverallocationError(
            current_allocation=check.current_allocation,
            proposed_allocation=check.proposed_allocation,
            warning=check.warning or "",
        )

    def _require_assignment(self, assignment_id: UUID) -> Assignment:
        assignment = self.repo.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found.")
        return assignment

    def _details(self, assignments: list[Assignment]) -> list[AssignmentDetail]:
        phases = {row.id: row for row in self.repo.list_phases_by_ids(a.phase_id for a in assignments)}
        projects = {row.id: row for row in self.repo.list_projects_by_ids(p.project_id for p in phases.values())}
        members = {row.id: row for row in self.repo.list_team_members(a.team_member_id for a in assignments)}
        details: list[AssignmentDetail] = []
        for assignment in assignments:
            phase = phases[assignment.phase_id]
            details.append(
                AssignmentDetail(
                    assignment=assignment,
                    phase=phase,
                    project=projects[phase.project_id],
                    team_member=members[assignment.team_member_id],
                )
            )
        return details

    # ---------- Reads ----------
    def get(self, assignment_id: UUID) -> AssignmentDetail:
        return self._details([self._require_assignment(assignment_id)])[0]

    def list_for_phase(self, phase_id: UUID) -> list[AssignmentDetail]:
        if self.repo.get_phase(phase_id) is None:
            raise NotFoundError("Phase not found.")
        return self._details(self.repo.list_assignments_for_phase(phase_id))

    def list_for_team_member(self, team_member_id: UUID) -> list[AssignmentDetail]:
        if self.repo.get_team_member(team_member_id) is None:
            raise NotFoundError("Team member not found.")
        return self._details(self.repo.list_assignments_for_team_member(team_member_id))

    # ---------- Mutations ----------
    def assign(self, *, phase_id: UUID, data: AssignmentCreateData, actor: ActorContext) -> AssignmentDetail:
        validate_working_percentage(data.working_percentage)
        validate_date_range(data.start_date, data.end_date)

        with self._transaction("create assignment", phase_id=phase_id, team_member_id=data.team_member_id):
            phase = self.repo.get_phase(phase_id)
            if phase is None:
                raise NotFoundError("Phase not found.")
            member = self.repo.lock_team_member(data.team_member_id)
            if member is None:
                raise NotFoundError("Team member not found.")

            check = self.ledger.check_allocation(
                member.id,
                data.working_percentage,
                window=(data.start_date, data.end_date),
            )
            if check.is_overallocated:
                raise self._reject(check)

            now = datetime.utcnow()
            assignment = Assignment(
                phase_id=phase.id,
                team_member_id=member.id,
                role=data.role,
                working_percentage=data.working_percentage,
                start_date=data.start_date,
                end_date=data.end_date,
                version=1,
                created_at=now,
                updated_at=now,
            )
            self.repo.add_assignment(assignment)
            self.audit.log_create(AUDIT_ENTITY_TYPE, assignment.id, actor, self.serialize_assignment(assignment))

        self.db.refresh(assignment)
        logger.info(
            "Assignment %s created for team member %s on phase %s (%s%%)",
            assignment.id,
            assignment.team_member_id,
            assignment.phase_id,
            assignment.working_percentage,
        )
        return self.get(assignment.id)

    def update(
        self,
        *,
        assignment_id: UUID,
        data: AssignmentUpdateData,
        actor: ActorContext,
        expected_version: int | None = None,
    ) -> AssignmentDetail:
        existing = self._require_assignment(assignment_id)
        before = self.serialize_assignment(existing)

        if data.working_percentage is not None:
            validate_working_percentage(data.working_percentage)
        target_start = data.start_date or existing.start_date
        target_end = None if data.clear_end_date else (data.end_date or existing.end_date)
        validate_date_range(target_start, target_end)

        changes: dict[str, object] = {}
        if data.role is not None:
            changes["role"] = data.role
        if data.working_percentage is not None:
            changes["working_percentage"] = data.working_percentage
        if data.start_date is not None:
            changes["start_date"] = data.start_date
        if data.end_date is not None or data.clear_end_date:
            changes["end_date"] = target_end
        changes["updated_at"] = datetime.utcnow()

        # Moving dates matters too once the ledger is windowed.
        allocation_changed = (
            data.working_percentage is not None
            or data.start_date is not None
            or data.end_date is not None
            or data.clear_end_date
        )
        target_percentage = (
            data.working_percentage if data.working_percentage is not None else existing.working_percentage
        )

        with self._transaction("update assignment", assignment_id=assignment_id):
            self.repo.lock_team_member(existing.team_member_id)
            self.guard.ensure_version(EntityKind.ASSIGNMENT, existing.id, expected_version=expected_version)
            if allocation_changed:
                check = self.ledger.check_allocation(
                    existing.team_member_id,
                    target_percentage,
                    exclude_assignment_id=existing.id,
                    window=(target_start, target_end),
                )
                if check.is_overallocated:
                    raise self._reject(check)

            updated = self.guard.write(
                EntityKind.ASSIGNMENT,
                existing.id,
                expected_version=expected_version,
                changes=changes,
            )
            if updated is None:
                raise NotFoundError("Assignment not found.")
            self.audit.log_update(AUDIT_ENTITY_TYPE, updated.id, actor, before, self.serialize_assignment(updated))

        logger.info("Assignment %s updated to version %s", updated.id, updated.version)
        return self.get(assignment_id)

    def remove(
        self,
        *,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int | None = None,
    ) -> None:
        existing = self._require_assignment(assignment_id)
        before = self.serialize_assignment(existing)

        with self._transaction("delete assignment", assignment_id=assignment_id):
            if not self.guard.delete(EntityKind.ASSIGNMENT, existing.id, expected_version=expected_version):
                raise NotFoundError("Assignment not found.")
            self.audit.log_delete(AUDIT_ENTITY_TYPE, assignment_id, actor, before)

        logger.info("Assignment %s deleted", assignment_id)
