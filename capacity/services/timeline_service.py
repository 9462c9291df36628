"""Portfolio timeline views, conflict detection and calendar projection."""

from __future__ import annotations

import calendar
import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.orm import Session

from capacity.core.errors import ValidationError
from capacity.models.entities import Assignment, Phase, Project, Task, TeamMember
from capacity.repositories.scheduling_repository import SchedulingRepository
from capacity.services.allocation_ledger import AllocationLedger, accumulate

logger = logging.getLogger(__name__)

TASK_TITLE_LIMIT = 50


class ConflictType(str, enum.Enum):
    PHASE_OVERLAP = "PHASE_OVERLAP"
    RESOURCE_OVERALLOC = "RESOURCE_OVERALLOC"


class CalendarResourceType(str, enum.Enum):
    PROJECT = "PROJECT"
    PHASE = "PHASE"
    TASK = "TASK"


@dataclass(frozen=True, slots=True)
class TimelineFilter:
    start_date: date | None = None
    end_date: date | None = None
    project_id: UUID | None = None
    team_member_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class Conflict:
    conflict_type: ConflictType
    project_id: UUID
    project_name: str
    description: str
    phase_ids: tuple[UUID, ...] = ()
    team_member_id: UUID | None = None
    total_allocation: int | None = None
    project_count: int | None = None


@dataclass(slots=True)
class TeamAllocationRow:
    team_member_id: UUID
    team_member_name: str
    role: str
    allocation: int
    phase_ids: list[UUID] = field(default_factory=list)


@dataclass(slots=True)
class PhaseTimeline:
    phase: Phase
    effective_end: date
    tasks: list[Task] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)


@dataclass(slots=True)
class ProjectTimeline:
    project: Project
    phases: list[PhaseTimeline] = field(default_factory=list)
    team_allocations: list[TeamAllocationRow] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CalendarEvent:
    id: str
    title: str
    start: date
    end: date
    resource_id: UUID
    resource_type: CalendarResourceType


def phase_effective_end(phase: Phase) -> date:
    """Recorded end of a phase, else its start plus planned duration."""

    end = phase.actual_end_date or phase.estimated_end_date
    if end is not None:
        return end
    return phase.start_date + timedelta(days=phase.duration)


def timeline_conditions(filters: TimelineFilter) -> list[ColumnElement[bool]]:
    """Map a timeline filter onto project-level query conditions."""

    project_end = func.coalesce(Project.actual_end_date, Project.estimated_end_date)
    conditions: list[ColumnElement[bool]] = []
    if filters.project_id is not None:
        conditions.append(Project.id == filters.project_id)
    if filters.start_date is not None:
        conditions.append(project_end >= filters.start_date)
    if filters.end_date is not None:
        conditions.append(Project.start_date <= filters.end_date)
    if filters.team_member_id is not None:
        conditions.append(
            Project.id.in_(
                select(Phase.project_id)
                .join(Assignment, Assignment.phase_id == Phase.id)
                .where(Assignment.team_member_id == filters.team_member_id)
            )
        )
    return conditions


def detect_phase_overlaps(project: Project, phases: Sequence[PhaseTimeline]) -> list[Conflict]:
    """Pairwise strict-overlap check; touching ranges do not conflict."""

    ordered = sorted(phases, key=lambda row: (row.phase.start_date, row.effective_end))
    conflicts: list[Conflict] = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1 :]:
            if first.phase.start_date < second.effective_end and first.effective_end > second.phase.start_date:
                conflicts.append(
                    Conflict(
                        conflict_type=ConflictType.PHASE_OVERLAP,
                        project_id=project.id,
                        project_name=project.name,
                        phase_ids=(first.phase.id, second.phase.id),
                        description=(
                            f"Phases overlap between {first.phase.name} "
                            f"({first.phase.start_date.isoformat()} - {first.effective_end.isoformat()}) and "
                            f"{second.phase.name} "
                            f"({second.phase.start_date.isoformat()} - {second.effective_end.isoformat()})"
                        ),
                    )
                )
    return conflicts


def _overallocation_conflict(
    project: Project, member_id: UUID, name: str, total: int, project_count: int
) -> Conflict:
    return Conflict(
        conflict_type=ConflictType.RESOURCE_OVERALLOC,
        project_id=project.id,
        project_name=project.name,
        team_member_id=member_id,
        total_allocation=total,
        project_count=project_count,
        description=f"Team member {name} is over-allocated ({total}%) across {project_count} projects",
    )


def detect_resource_overallocation(
    timelines: Sequence[ProjectTimeline],
    *,
    cap: int,
    scope: str = "global",
    window: tuple[date | None, date | None] = (None, None),
) -> dict[UUID, Conflict]:
    """Cross-project allocation totals, reported once per overallocated member.

    The conflict belongs to the project whose allocation pushed the member
    over the cap. In "global" scope the total is the member's sum over the
    whole filtered scope; in "overlapping" scope it is the peak load on any
    single day inside ``window``.
    """

    if scope == "overlapping":
        return _detect_peak_overallocation(timelines, cap=cap, window=window)

    running: dict[UUID, int] = {}
    contributing: dict[UUID, set[UUID]] = {}
    names: dict[UUID, str] = {}
    crossed_in: dict[UUID, Project] = {}

    for timeline in timelines:
        for row in timeline.team_allocations:
            member_id = row.team_member_id
            previous = running.get(member_id, 0)
            running[member_id] = previous + row.allocation
            contributing.setdefault(member_id, set()).add(timeline.project.id)
            names[member_id] = row.team_member_name
            if member_id not in crossed_in and previous <= cap < running[member_id]:
                crossed_in[member_id] = timeline.project

    return {
        member_id: _overallocation_conflict(
            project, member_id, names[member_id], running[member_id], len(contributing[member_id])
        )
        for member_id, project in crossed_in.items()
    }


def _detect_peak_overallocation(
    timelines: Sequence[ProjectTimeline],
    *,
    cap: int,
    window: tuple[date | None, date | None],
) -> dict[UUID, Conflict]:
    window_start, window_end = window
    names: dict[UUID, str] = {}
    # member -> [(start, inclusive end or None, percentage, project)]
    spans: dict[UUID, list[tuple[date, date | None, int, Project]]] = {}

    for timeline in timelines:
        for row in timeline.team_allocations:
            names[row.team_member_id] = row.team_member_name
        for phase_row in timeline.phases:
            for assignment in phase_row.assignments:
                start, end = assignment.start_date, assignment.end_date
                if window_end is not None and start > window_end:
                    continue
                if window_start is not None and end is not None and end < window_start:
                    continue
                if window_start is not None:
                    start = max(start, window_start)
                if window_end is not None:
                    end = window_end if end is None else min(end, window_end)
                spans.setdefault(assignment.team_member_id, []).append(
                    (start, end, assignment.working_percentage, timeline.project)
                )

    conflicts: dict[UUID, Conflict] = {}
    for member_id, member_spans in spans.items():
        # (day, 0 = release / 1 = take, span index); releases sort first on a shared day.
        events: list[tuple[date, int, int]] = []
        for index, (start, end, _, _) in enumerate(member_spans):
            events.append((start, 1, index))
            if end is not None:
                events.append((end + timedelta(days=1), 0, index))
        events.sort()

        load = 0
        peak = 0
        active: set[int] = set()
        peak_projects: set[UUID] = set()
        crossed_in: Project | None = None
        for _, taking, index in events:
            percentage, project = member_spans[index][2], member_spans[index][3]
            if taking:
                load += percentage
                active.add(index)
                if crossed_in is None and load > cap:
                    crossed_in = project
            else:
                load -= percentage
                active.discard(index)
            if load > peak:
                peak = load
                peak_projects = {member_spans[i][3].id for i in active}

        if crossed_in is not None:
            conflicts[member_id] = _overallocation_conflict(
                crossed_in, member_id, names[member_id], peak, len(peak_projects)
            )
    return conflicts


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if year < 2000 or year > 2100:
        raise ValidationError("Invalid year.")
    if month < 1 or month > 12:
        raise ValidationError("Invalid month.")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class TimelineConflictDetector:
    """Read-side timeline projection with phase and resource conflict detection."""

    def __init__(self, db: Session) -> None:
        self.repo = SchedulingRepository(db)
        self.ledger = AllocationLedger(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_conflict(conflict: Conflict) -> dict[str, object]:
        return {
            "conflict_type": conflict.conflict_type.value,
            "project_id": str(conflict.project_id),
            "project_name": conflict.project_name,
            "phase_ids": [str(phase_id) for phase_id in conflict.phase_ids],
            "team_member_id": str(conflict.team_member_id) if conflict.team_member_id else None,
            "total_allocation": conflict.total_allocation,
            "project_count": conflict.project_count,
            "description": conflict.description,
        }

    @classmethod
    def serialize_timeline(cls, timeline: ProjectTimeline, members: dict[UUID, TeamMember]) -> dict[str, object]:
        project = timeline.project
        return {
            "project_id": str(project.id),
            "project_name": project.name,
            "status": project.status.value,
            "start_date": project.start_date.isoformat(),
            "estimated_end_date": project.estimated_end_date.isoformat(),
            "phases": [
                {
                    "phase_id": str(row.phase.id),
                    "phase_name": row.phase.name,
                    "status": row.phase.status.value,
                    "start_date": row.phase.start_date.isoformat(),
                    "end_date": row.effective_end.isoformat(),
                    "duration": row.phase.duration,
                    "version": row.phase.version,
                    "tasks": [
                        {
                            "task_id": str(task.id),
                            "description": task.description,
                            "status": task.status.value,
                            "start_date": task.start_date.isoformat() if task.start_date else None,
                            "end_date": task.end_date.isoformat() if task.end_date else None,
                            "assigned_to": (
                                members[task.assigned_to_id].name
                                if task.assigned_to_id in members
                                else "Unassigned"
                            ),
                        }
                        for task in row.tasks
                    ],
                    "assignments": [
                        {
                            "id": str(assignment.id),
                            "team_member_id": str(assignment.team_member_id),
                            "team_member_name": members[assignment.team_member_id].name,
                            "role": assignment.role.value,
                            "working_percentage": assignment.working_percentage,
                            "start_date": assignment.start_date.isoformat(),
                            "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
                        }
                        for assignment in row.assignments
                    ],
                }
                for row in timeline.phases
            ],
            "team_allocations": [
                {
                    "team_member_id": str(row.team_member_id),
                    "team_member_name": row.team_member_name,
                    "role": row.role,
                    "allocation": row.allocation,
                    "phase_ids": [str(phase_id) for phase_id in row.phase_ids],
                }
                for row in timeline.team_allocations
            ],
            "conflicts": [cls.serialize_conflict(conflict) for conflict in timeline.conflicts],
        }

    @staticmethod
    def serialize_event(event: CalendarEvent) -> dict[str, object]:
        return {
            "id": event.id,
            "title": event.title,
            "start": event.start.isoformat(),
            "end": event.end.isoformat(),
            "resource_id": str(event.resource_id),
            "resource_type": event.resource_type.value,
        }

    # ---------- Timeline ----------
    def _team_allocations(
        self, phases: Sequence[PhaseTimeline], members: dict[UUID, TeamMember]
    ) -> list[TeamAllocationRow]:
        assignments = [assignment for row in phases for assignment in row.assignments]
        totals = accumulate((assignment.team_member_id, assignment.working_percentage) for assignment in assignments)

        rows: dict[UUID, TeamAllocationRow] = {}
        for assignment in assignments:
            member = members[assignment.team_member_id]
            row = rows.get(member.id)
            if row is None:
                row = TeamAllocationRow(
                    team_member_id=member.id,
                    team_member_name=member.name,
                    role=member.role.value,
                    allocation=totals[member.id],
                )
                rows[member.id] = row
            if assignment.phase_id not in row.phase_ids:
                row.phase_ids.append(assignment.phase_id)
        return list(rows.values())

    def build_timeline(self, filters: TimelineFilter) -> tuple[list[ProjectTimeline], dict[UUID, TeamMember]]:
        if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
            raise ValidationError("end_date must be greater than or equal to start_date.")

        projects = self.repo.list_projects(timeline_conditions(filters))
        phases = self.repo.list_phases_for_projects(project.id for project in projects)
        phase_ids = [phase.id for phase in phases]
        tasks = self.repo.list_tasks_for_phases(phase_ids)
        assignments = self.repo.list_assignments_for_phases(phase_ids)
        member_ids = {assignment.team_member_id for assignment in assignments}
        member_ids.update(task.assigned_to_id for task in tasks if task.assigned_to_id is not None)
        members = {member.id: member for member in self.repo.list_team_members(member_ids)}

        phase_rows: dict[UUID, PhaseTimeline] = {
            phase.id: PhaseTimeline(phase=phase, effective_end=phase_effective_end(phase)) for phase in phases
        }
        for task in tasks:
            phase_rows[task.phase_id].tasks.append(task)
        for assignment in assignments:
            phase_rows[assignment.phase_id].assignments.append(assignment)

        timelines: list[ProjectTimeline] = []
        by_project: dict[UUID, ProjectTimeline] = {}
        for project in projects:
            timeline = ProjectTimeline(project=project)
            by_project[project.id] = timeline
            timelines.append(timeline)
        for phase in phases:
            by_project[phase.project_id].phases.append(phase_rows[phase.id])

        for timeline in timelines:
            timeline.team_allocations = self._team_allocations(timeline.phases, members)
            timeline.conflicts.extend(detect_phase_overlaps(timeline.project, timeline.phases))

        overallocations = detect_resource_overallocation(
            timelines,
            cap=self.ledger.cap,
            scope=self.ledger.settings.allocation_scope,
            window=(filters.start_date, filters.end_date),
        )
        for conflict in overallocations.values():
            by_project[conflict.project_id].conflicts.append(conflict)

        logger.info(
            "Timeline built for %s projects with %s conflicts",
            len(timelines),
            sum(len(timeline.conflicts) for timeline in timelines),
        )
        return timelines, members

    def get_timeline(self, filters: TimelineFilter) -> list[dict[str, object]]:
        timelines, members = self.build_timeline(filters)
        return [self.serialize_timeline(timeline, members) for timeline in timelines]

    # ---------- Calendar ----------
    def list_calendar_events(self, year: int, month: int) -> list[CalendarEvent]:
        month_start, month_end = month_bounds(year, month)

        project_end = func.coalesce(Project.actual_end_date, Project.estimated_end_date)
        projects = self.repo.list_projects([Project.start_date <= month_end, project_end >= month_start])
        phases = self.repo.list_phases_for_projects(project.id for project in projects)
        tasks = self.repo.list_tasks_for_phases(phase.id for phase in phases)

        events: list[CalendarEvent] = [
            CalendarEvent(
                id=f"proj-{project.id}",
                title=project.name,
                start=project.start_date,
                end=project.effective_end_date,
                resource_id=project.id,
                resource_type=CalendarResourceType.PROJECT,
            )
            for project in projects
        ]

        for phase in phases:
            phase_end = phase_effective_end(phase)
            if phase.start_date > month_end or phase_end < month_start:
                continue
            events.append(
                CalendarEvent(
                    id=f"phase-{phase.id}",
                    title=f"{phase.name} Phase",
                    start=phase.start_date,
                    end=phase_end,
                    resource_id=phase.id,
                    resource_type=CalendarResourceType.PHASE,
                )
            )

        dated_tasks = sorted(
            (task for task in tasks if task.start_date is not None),
            key=lambda task: (task.start_date, task.description),
        )
        for task in dated_tasks:
            task_end = task.end_date or task.start_date
            if task.start_date > month_end or task_end < month_start:
                continue
            title = task.description[:TASK_TITLE_LIMIT]
            if len(task.description) > TASK_TITLE_LIMIT:
                title += "..."
            events.append(
                CalendarEvent(
                    id=f"task-{task.id}",
                    title=title,
                    start=task.start_date,
                    end=task_end,
                    resource_id=task.id,
                    resource_type=CalendarResourceType.TASK,
                )
            )

        logger.info("Calendar events built for %04d-%02d: %s events", year, month, len(events))
        return events

    def get_calendar_events(self, year: int, month: int) -> list[dict[str, object]]:
        return [self.serialize_event(event) for event in self.list_calendar_events(year, month)]
