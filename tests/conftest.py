from __future__ import annotations

import itertools
from collections.abc import Generator
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from capacity.core.auth import ActorContext
from capacity.db.base import Base
from capacity.db.dependencies import get_db_session
import capacity.models.entities  # noqa: F401
from capacity.main import create_app
from capacity.models.entities import (
    Assignment,
    AssignmentRole,
    Phase,
    PhaseStatus,
    Project,
    Task,
    TeamMember,
    UserRole,
)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def actor() -> ActorContext:
    return ActorContext(actor_id="manager-1", actor_role=UserRole.MANAGER)


class Seed:
    """Inserts fixture rows directly, bypassing service rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self._sequence = itertools.count(1)

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def member(self, name: str = "Alex Doe", *, role: UserRole = UserRole.TEAM_MEMBER) -> TeamMember:
        n = next(self._sequence)
        return self._save(TeamMember(name=name, email=f"member{n}@test.local", role=role, active=True))

    def project(
        self,
        name: str = "Project",
        *,
        start: date = date(2026, 1, 1),
        end: date = date(2026, 12, 31),
        actual_end: date | None = None,
    ) -> Project:
        n = next(self._sequence)
        return self._save(
            Project(
                code=f"PRJ-{n}",
                name=name,
                start_date=start,
                estimated_end_date=end,
                actual_end_date=actual_end,
            )
        )

    def phase(
        self,
        project: Project,
        name: str = "Design",
        *,
        start: date = date(2026, 1, 1),
        end: date | None = None,
        duration: int = 0,
        order: int = 0,
        status: PhaseStatus = PhaseStatus.PLANNED,
    ) -> Phase:
        return self._save(
            Phase(
                project_id=project.id,
                name=name,
                phase_order=order,
                status=status,
                start_date=start,
                duration=duration,
                estimated_end_date=end,
            )
        )

    def task(
        self,
        phase: Phase,
        description: str,
        *,
        start: date | None = None,
        end: date | None = None,
        assigned_to: TeamMember | None = None,
    ) -> Task:
        return self._save(
            Task(
                phase_id=phase.id,
                description=description,
                start_date=start,
                end_date=end,
                assigned_to_id=assigned_to.id if assigned_to else None,
            )
        )

    def assignment(
        self,
        phase: Phase,
        member: TeamMember,
        working_percentage: int,
        *,
        start: date = date(2026, 1, 1),
        end: date | None = None,
        role: AssignmentRole = AssignmentRole.TEAM_MEMBER,
        version: int = 1,
    ) -> Assignment:
        return self._save(
            Assignment(
                phase_id=phase.id,
                team_member_id=member.id,
                role=role,
                working_percentage=working_percentage,
                start_date=start,
                end_date=end,
                version=version,
            )
        )


@pytest.fixture()
def seed(db_session: Session) -> Seed:
    return Seed(db_session)
