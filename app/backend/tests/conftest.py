from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from donation_reports.core.clock import FixedClock
from donation_reports.db.base import Base
from donation_reports.db.dependencies import get_db_session
from donation_reports.main import create_app
from donation_reports.models.entities import (
    Donation,
    Organization,
    OrganizationMember,
    OrganizationStatistic,
    Project,
    ProjectStage,
    Report,
    ReportRun,
    User,
)
from donation_reports.services.report_generator import ReportGenerator

TEST_TABLES = [
    Organization.__table__,
    User.__table__,
    Project.__table__,
    ProjectStage.__table__,
    Donation.__table__,
    OrganizationMember.__table__,
    OrganizationStatistic.__table__,
    Report.__table__,
    ReportRun.__table__,
]

FIXED_NOW = datetime(2024, 3, 15, 12, 30, 45)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine, tables=TEST_TABLES)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=TEST_TABLES)


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
def clock() -> FixedClock:
    return FixedClock(FIXED_NOW)


@pytest.fixture()
def generator(db_session: Session, clock: FixedClock) -> ReportGenerator:
    return ReportGenerator(db_session, clock=clock)


def _save(db: Session, row):
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture()
def make_organization(db_session: Session) -> Callable[..., Organization]:
    def _make(*, name: str = "Helping Hands") -> Organization:
        return _save(
            db_session,
            Organization(name=name, slug=f"org-{uuid.uuid4().hex[:10]}", created_at=FIXED_NOW),
        )

    return _make


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def _make(*, display_name: str = "Report Owner") -> User:
        token = uuid.uuid4().hex[:10]
        return _save(
            db_session,
            User(
                external_id=f"ext-{token}",
                email=f"{token}@test.local",
                display_name=display_name,
                created_at=FIXED_NOW,
                updated_at=FIXED_NOW,
            ),
        )

    return _make


@pytest.fixture()
def make_project(db_session: Session) -> Callable[..., Project]:
    def _make(
        organization: Organization,
        *,
        title: str = "Clean Water",
        status: str = "active",
        target_amount: int = 0,
        collected_amount: int = 0,
        created_at: datetime = datetime(2024, 3, 1, 9, 0),
        updated_at: datetime | None = None,
    ) -> Project:
        return _save(
            db_session,
            Project(
                organization_id=organization.id,
                title=title,
                status=status,
                target_amount=target_amount,
                collected_amount=collected_amount,
                created_at=created_at,
                updated_at=updated_at or created_at,
            ),
        )

    return _make


@pytest.fixture()
def make_stage(db_session: Session) -> Callable[..., ProjectStage]:
    def _make(
        project: Project,
        *,
        title: str = "Phase 1",
        start_date: date | None = None,
        end_date: date | None = None,
        target_amount: int = 0,
        collected_amount: int = 0,
        order: int = 1,
    ) -> ProjectStage:
        return _save(
            db_session,
            ProjectStage(
                project_id=project.id,
                title=title,
                status="active",
                order=order,
                start_date=start_date,
                end_date=end_date,
                target_amount=target_amount,
                collected_amount=collected_amount,
            ),
        )

    return _make


@pytest.fixture()
def make_donation(db_session: Session) -> Callable[..., Donation]:
    def _make(
        organization: Organization,
        *,
        amount: int,
        created_at: datetime,
        status: str = "completed",
        project: Project | None = None,
        payment_method: str | None = "card",
    ) -> Donation:
        return _save(
            db_session,
            Donation(
                organization_id=organization.id,
                project_id=project.id if project is not None else None,
                amount=amount,
                status=status,
                payment_method=payment_method,
                created_at=created_at,
            ),
        )

    return _make


@pytest.fixture()
def make_member(db_session: Session) -> Callable[..., OrganizationMember]:
    def _make(
        organization: Organization,
        *,
        created_at: datetime,
        is_active: bool = True,
        source: str | None = None,
        last_active_at: datetime | None = None,
    ) -> OrganizationMember:
        return _save(
            db_session,
            OrganizationMember(
                organization_id=organization.id,
                source=source,
                is_active=is_active,
                last_active_at=last_active_at,
                created_at=created_at,
            ),
        )

    return _make


@pytest.fixture()
def make_statistic(db_session: Session) -> Callable[..., OrganizationStatistic]:
    def _make(organization: Organization, *, unique_visitors: int, created_at: datetime) -> OrganizationStatistic:
        return _save(
            db_session,
            OrganizationStatistic(
                organization_id=organization.id,
                unique_visitors=unique_visitors,
                created_at=created_at,
            ),
        )

    return _make
