from __future__ import annotations

import warnings
from datetime import date
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.orm import Session

from capacity.core.config import Settings
from capacity.core.errors import ValidationError
from capacity.repositories.scheduling_repository import SchedulingRepository
from capacity.services.timeline_service import (
    CalendarResourceType,
    ConflictType,
    TimelineConflictDetector,
    TimelineFilter,
    month_bounds,
    phase_effective_end,
)

if TYPE_CHECKING:
    from conftest import Seed


def _conflicts(timeline, conflict_type: ConflictType):
    return [conflict for conflict in timeline.conflicts if conflict.conflict_type == conflict_type]


def test_overlapping_phases_produce_one_conflict(db_session: Session, seed: Seed) -> None:
    project = seed.project("Apollo")
    design = seed.phase(project, "Design", start=date(2026, 1, 1), end=date(2026, 3, 15))
    build = seed.phase(project, "Build", start=date(2026, 2, 1), end=date(2026, 4, 1))

    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())

    overlaps = _conflicts(timelines[0], ConflictType.PHASE_OVERLAP)
    assert len(overlaps) == 1
    assert overlaps[0].phase_ids == (design.id, build.id)
    assert "Design (2026-01-01 - 2026-03-15)" in overlaps[0].description
    assert "Build (2026-02-01 - 2026-04-01)" in overlaps[0].description


def test_adjacent_phases_do_not_conflict(db_session: Session, seed: Seed) -> None:
    project = seed.project()
    seed.phase(project, "Design", start=date(2026, 1, 1), end=date(2026, 3, 15))
    seed.phase(project, "Build", start=date(2026, 3, 16), end=date(2026, 6, 1))

    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())

    assert _conflicts(timelines[0], ConflictType.PHASE_OVERLAP) == []


def test_phase_end_falls_back_to_duration(db_session: Session, seed: Seed) -> None:
    project = seed.project()
    design = seed.phase(project, "Design", start=date(2026, 1, 1), duration=30)
    seed.phase(project, "Build", start=date(2026, 1, 20), end=date(2026, 2, 28))

    assert phase_effective_end(design) == date(2026, 1, 31)
    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())
    assert len(_conflicts(timelines[0], ConflictType.PHASE_OVERLAP)) == 1


def test_cross_project_overallocation_is_reported(db_session: Session, seed: Seed) -> None:
    member = seed.member("Fox Mulder")
    project_a = seed.project("A", start=date(2026, 1, 1))
    project_b = seed.project("B", start=date(2026, 2, 1))
    seed.assignment(seed.phase(project_a, start=date(2026, 1, 1)), member, 60)
    seed.assignment(seed.phase(project_b, start=date(2026, 2, 1)), member, 50)

    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())

    assert [timeline.project.name for timeline in timelines] == ["A", "B"]
    assert _conflicts(timelines[0], ConflictType.RESOURCE_OVERALLOC) == []
    [conflict] = _conflicts(timelines[1], ConflictType.RESOURCE_OVERALLOC)
    assert conflict.team_member_id == member.id
    assert conflict.total_allocation == 110
    assert conflict.project_count == 2
    assert "Fox Mulder" in conflict.description


def test_full_capacity_is_not_reported(db_session: Session, seed: Seed) -> None:
    member = seed.member()
    seed.assignment(seed.phase(seed.project("A")), member, 60)
    seed.assignment(seed.phase(seed.project("B")), member, 40)

    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())

    assert all(_conflicts(timeline, ConflictType.RESOURCE_OVERALLOC) == [] for timeline in timelines)


def test_overallocation_reported_once_per_member(db_session: Session, seed: Seed) -> None:
    member = seed.member()
    for name, start, percentage in (
        ("A", date(2026, 1, 1), 60),
        ("B", date(2026, 2, 1), 50),
        ("C", date(2026, 3, 1), 20),
    ):
        project = seed.project(name, start=start)
        seed.assignment(seed.phase(project, start=start), member, percentage, start=start)

    timelines, _ = TimelineConflictDetector(db_session).build_timeline(TimelineFilter())

    records = [
        (timeline.project.name, conflict)
        for timeline in timelines
        for conflict in _conflicts(timeline, ConflictType.RESOURCE_OVERALLOC)
    ]
    assert len(records) == 1
    project_name, conflict = records[0]
    assert project_name == "B"
    assert conflict.total_allocation == 130
    assert conflict.project_count == 3


def test_team_allocations_sum_across_project_phases(db_session: Session, seed: Seed) -> None:
    member = seed.member("Walter Skinner")
    project = seed.project()
    design = seed.phase(project, "Design", start=date(2026, 1, 1), end=date(2026, 1, 31))
    build = seed.phase(project, "Build", start=date(2026, 2, 1), end=date(2026, 2, 28))
    seed.assignment(design, member, 30, start=date(2026, 1, 1))
    seed.assignment(build, member, 20, start=date(2026, 2, 1))
    seed.task(design, "Wireframes", start=date(2026, 1, 5), assigned_to=member)
    seed.task(build, "Backend")

    [view] = TimelineConflictDetector(db_session).get_timeline(TimelineFilter())

    assert [phase["phase_name"] for phase in view["phases"]] == ["Design", "Build"]
    [allocation] = view["team_allocations"]
    assert allocation["team_member_name"] == "Walter Skinner"
    assert allocation["allocation"] == 50
    assert allocation["phase_ids"] == [str(design.id), str(build.id)]
    assert view["phases"][0]["tasks"][0]["assigned_to"] == "Walter Skinner"
    assert view["phases"][1]["tasks"][0]["assigned_to"] == "Unassigned"
    assert view["phases"][0]["assignments"][0]["working_percentage"] == 30
    assert view["conflicts"] == []


def test_filters_narrow_project_scope(db_session: Session, seed: Seed) -> None:
    member = seed.member()
    early = seed.project("Early", start=date(2026, 1, 1), end=date(2026, 12, 31), actual_end=date(2026, 3, 31))
    late = seed.project("Late", start=date(2026, 5, 1), end=date(2026, 9, 30))
    seed.assignment(seed.phase(early, start=date(2026, 1, 1)), member, 60)
    seed.assignment(seed.phase(late, start=date(2026, 5, 1)), member, 50)
    detector = TimelineConflictDetector(db_session)

    def names(filters: TimelineFilter) -> list[str]:
        timelines, _ = detector.build_timeline(filters)
        return [timeline.project.name for timeline in timelines]

    assert names(TimelineFilter(project_id=late.id)) == ["Late"]
    assert names(TimelineFilter(start_date=date(2026, 6, 1), end_date=date(2026, 6, 30))) == ["Late"]
    assert names(TimelineFilter(end_date=date(2026, 2, 1))) == ["Early"]
    assert names(TimelineFilter(team_member_id=member.id)) == ["Early", "Late"]
    assert names(TimelineFilter(team_member_id=seed.member().id)) == []

    # Conflicts only cover the filtered scope.
    timelines, _ = detector.build_timeline(TimelineFilter(project_id=late.id))
    assert _conflicts(timelines[0], ConflictType.RESOURCE_OVERALLOC) == []


def test_inverted_filter_window_is_rejected(db_session: Session) -> None:
    with pytest.raises(ValidationError):
        TimelineConflictDetector(db_session).build_timeline(
            TimelineFilter(start_date=date(2026, 6, 1), end_date=date(2026, 5, 1))
        )


def test_calendar_events_for_month(db_session: Session, seed: Seed) -> None:
    project = seed.project("Apollo", start=date(2026, 1, 1), end=date(2026, 12, 31))
    seed.project("Zeus", start=date(2026, 7, 1), end=date(2026, 12, 31))
    design = seed.phase(project, "Design", start=date(2026, 3, 1), end=date(2026, 3, 31))
    seed.phase(project, "Build", start=date(2026, 6, 1), end=date(2026, 6, 30))
    long_description = "Prepare the detailed architecture review for the steering committee"
    task = seed.task(design, long_description, start=date(2026, 3, 10), end=date(2026, 3, 12))
    seed.task(design, "Undated follow-up")

    events = TimelineConflictDetector(db_session).list_calendar_events(2026, 3)

    assert [event.resource_type for event in events] == [
        CalendarResourceType.PROJECT,
        CalendarResourceType.PHASE,
        CalendarResourceType.TASK,
    ]
    project_event, phase_event, task_event = events
    assert project_event.id == f"proj-{project.id}"
    assert project_event.title == "Apollo"
    assert phase_event.id == f"phase-{design.id}"
    assert phase_event.title == "Design Phase"
    assert phase_event.end == date(2026, 3, 31)
    assert task_event.id == f"task-{task.id}"
    assert task_event.title == long_description[:50] + "..."
    assert task_event.resource_id == task.id

    serialized = TimelineConflictDetector(db_session).get_calendar_events(2026, 3)
    assert serialized[1]["resource_type"] == "PHASE"
    assert serialized[2]["start"] == "2026-03-10"


@pytest.mark.parametrize(("year", "month"), [(1999, 5), (2101, 1), (2026, 0), (2026, 13)])
def test_calendar_rejects_out_of_range_month(year: int, month: int) -> None:
    with pytest.raises(ValidationError):
        month_bounds(year, month)


def test_month_bounds_cover_whole_month() -> None:
    assert month_bounds(2028, 2) == (date(2028, 2, 1), date(2028, 2, 29))


def _overlapping_detector(db_session: Session) -> TimelineConflictDetector:
    detector = TimelineConflictDetector(db_session)
    detector.ledger.settings = Settings(allocation_scope="overlapping")
    return detector


def test_overlapping_scope_ignores_disjoint_assignments(db_session: Session, seed: Seed) -> None:
    member = seed.member()
    project_a = seed.project("A", start=date(2026, 1, 1))
    project_b = seed.project("B", start=date(2026, 2, 1))
    seed.assignment(seed.phase(project_a), member, 60, start=date(2026, 1, 1), end=date(2026, 1, 31))
    seed.assignment(seed.phase(project_b), member, 60, start=date(2026, 7, 1), end=date(2026, 7, 31))

    timelines, _ = _overlapping_detector(db_session).build_timeline(TimelineFilter())

    assert all(_conflicts(timeline, ConflictType.RESOURCE_OVERALLOC) == [] for timeline in timelines)


def test_overlapping_scope_reports_peak_daily_load(db_session: Session, seed: Seed) -> None:
    member = seed.member()
    project_a = seed.project("A", start=date(2026, 1, 1))
    project_b = seed.project("B", start=date(2026, 2, 1))
    project_c = seed.project("C", start=date(2026, 3, 1))
    seed.assignment(seed.phase(project_a), member, 60, start=date(2026, 1, 1), end=date(2026, 3, 31))
    seed.assignment(seed.phase(project_b), member, 50, start=date(2026, 3, 15), end=date(2026, 4, 30))
    seed.assignment(seed.phase(project_c), member, 40, start=date(2026, 5, 1))
    detector = _overlapping_detector(db_session)

    timelines, _ = detector.build_timeline(TimelineFilter())

    records = [
        (timeline.project.name, conflict)
        for timeline in timelines
        for conflict in _conflicts(timeline, ConflictType.RESOURCE_OVERALLOC)
    ]
    assert len(records) == 1
    project_name, conflict = records[0]
    assert project_name == "B"
    assert conflict.total_allocation == 110
    assert conflict.project_count == 2

    # A window past the shared fortnight sees no clash.
    timelines, _ = detector.build_timeline(TimelineFilter(start_date=date(2026, 4, 1), end_date=date(2026, 6, 30)))
    assert all(_conflicts(timeline, ConflictType.RESOURCE_OVERALLOC) == [] for timeline in timelines)


def test_unfiltered_project_listing_emits_no_warnings(db_session: Session, seed: Seed) -> None:
    seed.project("A")

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        projects = SchedulingRepository(db_session).list_projects([])

    assert [project.name for project in projects] == ["A"]
