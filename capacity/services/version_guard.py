"""Optimistic concurrency control for versioned scheduling records.

Every guarded write is one conditional statement::

    UPDATE <table> SET <changes>, version = version + 1
    WHERE id = :id AND version = :expected

Zero affected rows means the record either vanished or was changed by
another writer since the caller read it. The compare and the increment
never happen in separate round trips, so of two writers holding the same
version exactly one commits.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from capacity.core.errors import VersionConflictError
from capacity.db.base import Base
from capacity.models.entities import Assignment, Phase, Project, Task

logger = logging.getLogger(__name__)

VERSIONED_METHODS = frozenset({"PUT", "PATCH", "DELETE"})


class EntityKind(str, enum.Enum):
    ASSIGNMENT = "assignment"
    PHASE = "phase"
    TASK = "task"
    PROJECT = "project"


@dataclass(frozen=True)
class VersionedEntity:
    """Storage capabilities the guard needs for one versioned table."""

    load: Callable[[Session, UUID], Any]
    compare_and_increment: Callable[[Session, UUID, int | None, dict[str, Any]], int]
    compare_and_delete: Callable[[Session, UUID, int | None], int]


def _versioned(model: type[Base]) -> VersionedEntity:
    def load(db: Session, entity_id: UUID) -> Any:
        return db.get(model, entity_id, populate_existing=True)

    def compare_and_increment(
        db: Session, entity_id: UUID, expected_version: int | None, changes: dict[str, Any]
    ) -> int:
        stmt = update(model).where(model.id == entity_id)
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
        stmt = stmt.values(**changes, version=model.version + 1).execution_options(synchronize_session=False)
        return db.execute(stmt).rowcount

    def compare_and_delete(db: Session, entity_id: UUID, expected_version: int | None) -> int:
        stmt = delete(model).where(model.id == entity_id)
        if expected_version is not None:
            stmt = stmt.where(model.version == expected_version)
        return db.execute(stmt.execution_options(synchronize_session=False)).rowcount

    return VersionedEntity(
        load=load,
        compare_and_increment=compare_and_increment,
        compare_and_delete=compare_and_delete,
    )


VERSIONED_ENTITIES: dict[EntityKind, VersionedEntity] = {
    EntityKind.ASSIGNMENT: _versioned(Assignment),
    EntityKind.PHASE: _versioned(Phase),
    EntityKind.TASK: _versioned(Task),
    EntityKind.PROJECT: _versioned(Project),
}


def expected_version_for(method: str, version: int | None) -> int | None:
    """Version precondition carried by a request, keyed by HTTP verb.

    Only mutating verbs carry a precondition; reads and creates never do.
    """

    if method.upper() not in VERSIONED_METHODS:
        return None
    return version


class VersionGuard:
    """Applies compare-and-increment writes through the entity dispatch table."""

    def __init__(self, db: Session, entities: dict[EntityKind, VersionedEntity] | None = None) -> None:
        self.db = db
        self.entities = entities or VERSIONED_ENTITIES

    def _entity(self, kind: EntityKind) -> VersionedEntity:
        return self.entities[kind]

    def write(
        self,
        kind: EntityKind,
        entity_id: UUID,
        *,
        expected_version: int | None,
        changes: dict[str, Any],
    ) -> Any:
        """Apply ``changes`` and bump the version in one conditional write.

        Returns the refreshed row, or ``None`` when the target does not
        exist so the calling handler can report not-found itself. Without
        an ``expected_version`` the write is unconditional but still bumps
        the version exactly once.
        """

        entity = self._entity(kind)
        affected = entity.compare_and_increment(self.db, entity_id, expected_version, changes)
        if affected == 0:
            self._raise_if_present(kind, entity, entity_id, expected_version)
            return None
        return entity.load(self.db, entity_id)

    def ensure_version(self, kind: EntityKind, entity_id: UUID, *, expected_version: int | None) -> None:
        """Reject a stale precondition before other business checks run.

        The conditional write still decides the final outcome; this only
        makes a stale caller see the version conflict first.
        """

        if expected_version is None:
            return
        current = self._entity(kind).load(self.db, entity_id)
        if current is not None and current.version != expected_version:
            self._log_conflict(kind, entity_id, expected_version, current.version)
            raise VersionConflictError()

    def delete(self, kind: EntityKind, entity_id: UUID, *, expected_version: int | None) -> bool:
        entity = self._entity(kind)
        affected = entity.compare_and_delete(self.db, entity_id, expected_version)
        if affected == 0:
            self._raise_if_present(kind, entity, entity_id, expected_version)
            return False
        return True

    def _raise_if_present(
        self,
        kind: EntityKind,
        entity: VersionedEntity,
        entity_id: UUID,
        expected_version: int | None,
    ) -> None:
        current = entity.load(self.db, entity_id)
        if current is None:
            return
        self._log_conflict(kind, entity_id, expected_version, current.version)
        raise VersionConflictError()

    @staticmethod
    def _log_conflict(kind: EntityKind, entity_id: UUID, expected_version: int | None, stored_version: int) -> None:
        logger.warning(
            "Version conflict on %s %s: submitted version %s, stored version %s",
            kind.value,
            entity_id,
            expected_version,
            stored_version,
        )
