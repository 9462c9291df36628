from __future__ import annotations

import uuid
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext
from capacity.core.errors import NotFoundError, ValidationError, VersionConflictError
from capacity.models.entities import AuditAction, PhaseStatus, UserRole
from capacity.services.audit_trail import AuditTrail
from capacity.services.phase_service import PhaseScheduleService, PhaseUpdateData

if TYPE_CHECKING:
    from conftest import Seed


def _ticking_clock(start: datetime):
    moments = (start + timedelta(minutes=offset) for offset in range(1000))
    return lambda: next(moments)


def test_status_only_edit_records_status_change(db_session: Session, seed: Seed, actor: ActorContext) -> None:
    phase = seed.phase(seed.project())

    updated = PhaseScheduleService(db_session).update_phase(
        phase_id=phase.id,
        data=PhaseUpdateData(status=PhaseStatus.IN_PROGRESS),
        actor=actor,
        expected_version=1,
    )

    assert updated.status == PhaseStatus.IN_PROGRESS
    assert updated.version == 2
    [entry] = AuditTrail(db_session).list_for_entity("Phase", phase.id)
    assert entry.action == AuditAction.STATUS_CHANGE
    assert entry.payload == {"oldStatus": "planned", "newStatus": "in_progress"}


def test_schedule_edit_records_update(db_session: Session, seed: Seed, actor: ActorContext) -> None:
    phase = seed.phase(seed.project(), "Design", start=date(2026, 1, 1), end=date(2026, 2, 1))

    updated = PhaseScheduleService(db_session).update_phase(
        phase_id=phase.id,
        data=PhaseUpdateData(name="  Discovery ", estimated_end_date=date(2026, 3, 1), status=PhaseStatus.ON_HOLD),
        actor=actor,
    )

    assert updated.name == "Discovery"
    [entry] = AuditTrail(db_session).list_for_entity("Phase", phase.id)
    assert entry.action == AuditAction.UPDATE
    assert entry.payload["before"]["estimated_end_date"] == "2026-02-01"
    assert entry.payload["after"]["estimated_end_date"] == "2026-03-01"
    assert entry.payload["after"]["status"] == "on_hold"


def test_phase_edit_rejects_stale_version(db_session: Session, seed: Seed, actor: ActorContext) -> None:
    phase = seed.phase(seed.project())
    service = PhaseScheduleService(db_session)
    service.update_phase(phase_id=phase.id, data=PhaseUpdateData(duration=10), actor=actor, expected_version=1)

    with pytest.raises(VersionConflictError):
        service.update_phase(phase_id=phase.id, data=PhaseUpdateData(duration=20), actor=actor, expected_version=1)

    assert len(AuditTrail(db_session).list_for_entity("Phase", phase.id)) == 1


def test_phase_edit_validation(db_session: Session, seed: Seed, actor: ActorContext) -> None:
    phase = seed.phase(seed.project(), start=date(2026, 4, 1))
    service = PhaseScheduleService(db_session)

    with pytest.raises(ValidationError):
        service.update_phase(phase_id=phase.id, data=PhaseUpdateData(duration=-1), actor=actor)
    with pytest.raises(ValidationError):
        service.update_phase(
            phase_id=phase.id, data=PhaseUpdateData(actual_end_date=date(2026, 3, 1)), actor=actor
        )
    with pytest.raises(NotFoundError):
        service.update_phase(phase_id=uuid.uuid4(), data=PhaseUpdateData(duration=1), actor=actor)


def test_audit_reads_are_newest_first(db_session: Session) -> None:
    trail = AuditTrail(db_session, clock=_ticking_clock(datetime(2026, 1, 1, 9, 0)))
    manager = ActorContext(actor_id="manager-1", actor_role=UserRole.MANAGER)
    leader = ActorContext(actor_id="leader-1", actor_role=UserRole.TEAM_LEADER)
    entity_id = uuid.uuid4()

    trail.log_create("Assignment", entity_id, manager, {"working_percentage": 10})
    trail.log_update("Assignment", entity_id, leader, {"working_percentage": 10}, {"working_percentage": 20})
    trail.log_delete("Assignment", entity_id, manager, {"working_percentage": 20})
    trail.log_status_change("Phase", uuid.uuid4(), leader, "planned", "complete")
    db_session.commit()

    recent = trail.list_recent()
    assert [entry.action for entry in recent] == [
        AuditAction.STATUS_CHANGE,
        AuditAction.DELETE,
        AuditAction.UPDATE,
        AuditAction.CREATE,
    ]
    assert len(trail.list_recent(limit=2)) == 2

    for_entity = trail.list_for_entity("Assignment", entity_id)
    assert [entry.action for entry in for_entity] == [AuditAction.DELETE, AuditAction.UPDATE, AuditAction.CREATE]

    for_leader = trail.list_for_actor("leader-1")
    assert [entry.action for entry in for_leader] == [AuditAction.STATUS_CHANGE, AuditAction.UPDATE]
    assert for_leader[0].actor_role == "team_leader"

    serialized = trail.serialize_entry(for_entity[0])
    assert serialized["action"] == "DELETE"
    assert serialized["payload"] == {"before": {"working_percentage": 20}}
    assert serialized["timestamp"].startswith("2026-01-01T09:02")
