"""Repository helpers for the allocation, timeline and audit domain."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import ColumnElement, and_, or_, select, true
from sqlalchemy.orm import Session

from capacity.models.entities import (
    Assignment,
    AuditLogEntry,
    Phase,
    Project,
    Task,
    TeamMember,
)


def assignment_window_condition(start_date: date | None, end_date: date | None) -> ColumnElement[bool]:
    """Assignments whose [start, end] range intersects the given window.

    Open-ended assignments (``end_date IS NULL``) extend indefinitely.
    """

    conditions: list[ColumnElement[bool]] = []
    if end_date is not None:
        conditions.append(Assignment.start_date <= end_date)
    if start_date is not None:
        conditions.append(or_(Assignment.end_date.is_(None), Assignment.end_date >= start_date))
    return and_(*conditions) if conditions else true()


class SchedulingRepository:
    """Persistence operations used by allocation, assignment and timeline services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Team members ----------
    def get_team_member(self, team_member_id: UUID) -> TeamMember | None:
        return self.db.scalar(select(TeamMember).where(TeamMember.id == team_member_id))

    def lock_team_member(self, team_member_id: UUID) -> TeamMember | None:
        """Load a team member holding a row lock until the transaction ends.

        Serializes concurrent allocation changes for the same person on
        backends supporting ``SELECT ... FOR UPDATE``.
        """

        return self.db.scalar(
            select(TeamMember).where(TeamMember.id == team_member_id).with_for_update()
        )

    def list_active_team_members(self) -> list[TeamMember]:
        return self.db.scalars(
            select(TeamMember).where(TeamMember.active.is_(True)).order_by(TeamMember.name.asc())
        ).all()

    def list_team_members(self, team_member_ids: Iterable[UUID]) -> list[TeamMember]:
        ids = set(team_member_ids)
        if not ids:
            return []
        return self.db.scalars(select(TeamMember).where(TeamMember.id.in_(ids))).all()

    # ---------- Projects ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def list_projects_by_ids(self, project_ids: Iterable[UUID]) -> list[Project]:
        ids = set(project_ids)
        if not ids:
            return []
        return self.db.scalars(select(Project).where(Project.id.in_(ids))).all()

    def list_projects(self, conditions: list[ColumnElement[bool]]) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .where(and_(true(), *conditions))
            .order_by(Project.start_date.asc(), Project.code.asc())
        ).all()

    # ---------- Phases ----------
    def get_phase(self, phase_id: UUID) -> Phase | None:
        return self.db.scalar(select(Phase).where(Phase.id == phase_id))

    def list_phases_by_ids(self, phase_ids: Iterable[UUID]) -> list[Phase]:
        ids = set(phase_ids)
        if not ids:
            return []
        return self.db.scalars(select(Phase).where(Phase.id.in_(ids))).all()

    def list_phases_for_projects(self, project_ids: Iterable[UUID]) -> list[Phase]:
        ids = set(project_ids)
        if not ids:
            return []
        return self.db.scalars(
            select(Phase)
            .where(Phase.project_id.in_(ids))
            .order_by(Phase.start_date.asc(), Phase.phase_order.asc(), Phase.name.asc())
        ).all()

    # ---------- Tasks ----------
    def list_tasks_for_phases(self, phase_ids: Iterable[UUID]) -> list[Task]:
        ids = set(phase_ids)
        if not ids:
            return []
        return self.db.scalars(
            select(Task).where(Task.phase_id.in_(ids)).order_by(Task.description.asc(), Task.id.asc())
        ).all()

    # ---------- Assignments ----------
    def get_assignment(self, assignment_id: UUID) -> Assignment | None:
        return self.db.scalar(select(Assignment).where(Assignment.id == assignment_id))

    def list_assignments_for_phase(self, phase_id: UUID) -> list[Assignment]:
        return self.db.scalars(
            select(Assignment)
            .where(Assignment.phase_id == phase_id)
            .order_by(Assignment.start_date.asc(), Assignment.id.asc())
        ).all()

    def list_assignments_for_team_member(self, team_member_id: UUID) -> list[Assignment]:
        return self.db.scalars(
            select(Assignment)
            .where(Assignment.team_member_id == team_member_id)
            .order_by(Assignment.start_date.asc(), Assignment.id.asc())
        ).all()

    def list_assignments_for_phases(self, phase_ids: Iterable[UUID]) -> list[Assignment]:
        ids = set(phase_ids)
        if not ids:
            return []
        return self.db.scalars(
            select(Assignment)
            .where(Assignment.phase_id.in_(ids))
            .order_by(Assignment.start_date.asc(), Assignment.id.asc())
        ).all()

    def list_allocation_rows(
        self,
        team_member_id: UUID,
        *,
        exclude_assignment_id: UUID | None = None,
        window: tuple[date | None, date | None] | None = None,
    ) -> list[tuple[UUID, int]]:
        conditions: list[ColumnElement[bool]] = [Assignment.team_member_id == team_member_id]
        if exclude_assignment_id is not None:
            conditions.append(Assignment.id != exclude_assignment_id)
        if window is not None:
            conditions.append(assignment_window_condition(*window))

        rows = self.db.execute(
            select(Assignment.team_member_id, Assignment.working_percentage).where(and_(*conditions))
        ).all()
        return [(member_id, percentage) for member_id, percentage in rows]

    def list_assignments_in_scope(
        self,
        *,
        project_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[tuple[Assignment, Phase, Project]]:
        conditions: list[ColumnElement[bool]] = [assignment_window_condition(start_date, end_date)]
        if project_id is not None:
            conditions.append(Phase.project_id == project_id)

        rows = self.db.execute(
            select(Assignment, Phase, Project)
            .join(Phase, Phase.id == Assignment.phase_id)
            .join(Project, Project.id == Phase.project_id)
            .where(and_(*conditions))
            .order_by(Assignment.start_date.asc(), Assignment.id.asc())
        ).all()
        return [(assignment, phase, project) for assignment, phase, project in rows]

    def add_assignment(self, assignment: Assignment) -> Assignment:
        self.db.add(assignment)
        self.db.flush()
        return assignment

    # ---------- Audit log ----------
    def add_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_audit_entries_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLogEntry]:
        return self.db.scalars(
            select(AuditLogEntry)
            .where(
                and_(
                    AuditLogEntry.entity_type == entity_type,
                    AuditLogEntry.entity_id == entity_id,
                )
            )
            .order_by(AuditLogEntry.created_at.desc())
        ).all()

    def list_audit_entries_for_actor(self, actor_id: str, *, limit: int) -> list[AuditLogEntry]:
        return self.db.scalars(
            select(AuditLogEntry)
            .where(AuditLogEntry.actor_id == actor_id)
            .order_by(AuditLogEntry.created_at.desc())
            .limit(limit)
        ).all()

    def list_recent_audit_entries(self, *, limit: int) -> list[AuditLogEntry]:
        return self.db.scalars(
            select(AuditLogEntry).order_by(AuditLogEntry.created_at.desc()).limit(limit)
        ).all()
