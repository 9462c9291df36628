"""Append-only audit trail for scheduling mutations."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from capacity.core.auth import ActorContext
from capacity.core.config import get_settings
from capacity.models.entities import AuditAction, AuditLogEntry
from capacity.repositories.scheduling_repository import SchedulingRepository


class AuditTrail:
    """Writes and reads audit entries inside the caller's transaction.

    Entries are flushed, never committed here: the owning service commits
    the business write and its audit entry together, so a committed
    mutation always has exactly one entry and a failed one has none.
    """

    def __init__(self, db: Session, *, clock: Callable[[], datetime] = datetime.utcnow) -> None:
        self.repo = SchedulingRepository(db)
        self.settings = get_settings()
        self._clock = clock

    @staticmethod
    def serialize_entry(entry: AuditLogEntry) -> dict[str, object]:
        return {
            "id": str(entry.id),
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "action": entry.action.value,
            "actor_id": entry.actor_id,
            "actor_role": entry.actor_role,
            "payload": entry.payload,
            "timestamp": entry.created_at.isoformat(),
        }

    def _append(
        self,
        *,
        entity_type: str,
        entity_id: object,
        action: AuditAction,
        actor: ActorContext,
        payload: dict[str, Any],
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            actor_id=actor.actor_id,
            actor_role=actor.actor_role.value,
            payload=payload,
            created_at=self._clock(),
        )
        return self.repo.add_audit_entry(entry)

    def log_create(
        self, entity_type: str, entity_id: object, actor: ActorContext, after: dict[str, Any]
    ) -> AuditLogEntry:
        return self._append(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.CREATE,
            actor=actor,
            payload={"after": after},
        )

    def log_update(
        self,
        entity_type: str,
        entity_id: object,
        actor: ActorContext,
        before: dict[str, Any],
        after: dict[str, Any],
    ) -> AuditLogEntry:
        return self._append(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.UPDATE,
            actor=actor,
            payload={"before": before, "after": after},
        )

    def log_delete(
        self, entity_type: str, entity_id: object, actor: ActorContext, before: dict[str, Any]
    ) -> AuditLogEntry:
        return self._append(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.DELETE,
            actor=actor,
            payload={"before": before},
        )

    def log_status_change(
        self,
        entity_type: str,
        entity_id: object,
        actor: ActorContext,
        old_status: str,
        new_status: str,
    ) -> AuditLogEntry:
        return self._append(
            entity_type=entity_type,
            entity_id=entity_id,
            action=AuditAction.STATUS_CHANGE,
            actor=actor,
            payload={"oldStatus": old_status, "newStatus": new_status},
        )

    # ---------- Reads ----------
    def list_for_entity(self, entity_type: str, entity_id: object) -> list[AuditLogEntry]:
        return self.repo.list_audit_entries_for_entity(entity_type, str(entity_id))

    def list_for_actor(self, actor_id: str, *, limit: int | None = None) -> list[AuditLogEntry]:
        return self.repo.list_audit_entries_for_actor(actor_id, limit=limit or self.settings.audit_actor_limit)

    def list_recent(self, *, limit: int | None = None) -> list[AuditLogEntry]:
        return self.repo.list_recent_audit_entries(limit=limit or self.settings.audit_recent_limit)
