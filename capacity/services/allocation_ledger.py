"""Team member capacity ledger and the 100% allocation cap."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from capacity.core.config import get_settings
from capacity.repositories.scheduling_repository import SchedulingRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationCheck:
    is_overallocated: bool
    current_allocation: int
    proposed_allocation: int
    warning: str | None


@dataclass(slots=True)
class MemberAllocation:
    team_member_id: UUID
    name: str
    total_allocation: int = 0
    is_overallocated: bool = False
    assignments: list[dict[str, object]] = field(default_factory=list)


def accumulate(rows: Iterable[tuple[UUID, int]]) -> dict[UUID, int]:
    """Fold (team member, working percentage) rows into per-member totals."""

    totals: dict[UUID, int] = {}
    for team_member_id, percentage in rows:
        totals[team_member_id] = totals.get(team_member_id, 0) + int(percentage)
    return totals


def overallocation_warning(proposed_allocation: int) -> str:
    return f"Team member will be over-allocated ({proposed_allocation}%)."


class AllocationLedger:
    """Read-only view over committed working percentages."""

    def __init__(self, db: Session) -> None:
        self.repo = SchedulingRepository(db)
        self.settings = get_settings()

    @property
    def cap(self) -> int:
        return self.settings.allocation_cap

    def is_over_cap(self, total: int) -> bool:
        return total > self.cap

    def current_allocation(
        self,
        team_member_id: UUID,
        *,
        exclude_assignment_id: UUID | None = None,
        window: tuple[date | None, date | None] | None = None,
    ) -> int:
        # The date window only narrows the sum in "overlapping" scope.
        scoped_window = window if self.settings.allocation_scope == "overlapping" else None
        rows = self.repo.list_allocation_rows(
            team_member_id,
            exclude_assignment_id=exclude_assignment_id,
            window=scoped_window,
        )
        return accumulate(rows).get(team_member_id, 0)

    def check_allocation(
        self,
        team_member_id: UUID,
        proposed_percentage: int,
        *,
        exclude_assignment_id: UUID | None = None,
        window: tuple[date | None, date | None] | None = None,
    ) -> AllocationCheck:
        current = self.current_allocation(
            team_member_id,
            exclude_assignment_id=exclude_assignment_id,
            window=window,
        )
        proposed = current + proposed_percentage
        over = self.is_over_cap(proposed)
        if over:
            logger.warning(
                "Allocation check failed for team member %s: current %s%%, proposed %s%%",
                team_member_id,
                current,
                proposed,
            )
        return AllocationCheck(
            is_overallocated=over,
            current_allocation=current,
            proposed_allocation=proposed,
            warning=overallocation_warning(proposed) if over else None,
        )

    def team_allocation_summary(
        self,
        *,
        project_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> dict[str, object]:
        members = self.repo.list_active_team_members()
        allocations: dict[UUID, MemberAllocation] = {
            member.id: MemberAllocation(team_member_id=member.id, name=member.name) for member in members
        }

        scoped = self.repo.list_assignments_in_scope(
            project_id=project_id,
            start_date=start_date,
            end_date=end_date,
        )
        totals = accumulate((assignment.team_member_id, assignment.working_percentage) for assignment, _, _ in scoped)
        for assignment, phase, project in scoped:
            row = allocations.get(assignment.team_member_id)
            if row is None:
                continue
            row.assignments.append(
                {
                    "id": str(assignment.id),
                    "phase_id": str(phase.id),
                    "project_name": project.name,
                    "role": assignment.role.value,
                    "working_percentage": assignment.working_percentage,
                    "start_date": assignment.start_date.isoformat(),
                    "end_date": assignment.end_date.isoformat() if assignment.end_date else None,
                }
            )

        for member_id, row in allocations.items():
            row.total_allocation = totals.get(member_id, 0)
            row.is_overallocated = self.is_over_cap(row.total_allocation)

        rows = list(allocations.values())
        return {
            "total_team_members": len(rows),
            "allocated_members": sum(1 for row in rows if row.total_allocation > 0),
            "overallocated_members": sum(1 for row in rows if row.is_overallocated),
            "allocations": [
                {
                    "team_member_id": str(row.team_member_id),
                    "name": row.name,
                    "total_allocation": row.total_allocation,
                    "is_overallocated": row.is_overallocated,
                    "assignments": row.assignments,
                }
                for row in rows
            ],
        }
