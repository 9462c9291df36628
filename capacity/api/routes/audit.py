"""Audit log read endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from capacity.core.errors import ValidationError
from capacity.db.dependencies import get_db_session
from capacity.services.audit_trail import AuditTrail

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("")
def list_audit_logs(
    entity_type: str | None = Query(default=None, min_length=1),
    entity_id: str | None = Query(default=None, min_length=1),
    actor_id: str | None = Query(default=None, min_length=1),
    limit: int | None = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    """Entries for one entity, one actor, or the most recent ones."""

    trail = AuditTrail(db)
    if (entity_type is None) != (entity_id is None):
        raise ValidationError("entity_type and entity_id must be provided together.")
    if entity_type is not None and actor_id is not None:
        raise ValidationError("Filter by entity or by actor, not both.")

    if entity_type is not None:
        rows = trail.list_for_entity(entity_type, entity_id)
    elif actor_id is not None:
        rows = trail.list_for_actor(actor_id, limit=limit)
    else:
        rows = trail.list_recent(limit=limit)
    return {"items": [trail.serialize_entry(row) for row in rows]}
