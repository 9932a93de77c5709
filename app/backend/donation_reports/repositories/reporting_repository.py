"""Read-only aggregate queries backing report generation."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from donation_reports.core.errors import DataStoreError
from donation_reports.models.entities import (
    Donation,
    OrganizationMember,
    OrganizationStatistic,
    Project,
)

logger = logging.getLogger(__name__)

COMPLETED_DONATION_STATUS = "completed"
COMPLETED_PROJECT_STATUS = "completed"
UNKNOWN_SOURCE = "unknown"


def _as_date(value: Any) -> date:
    # SQLite returns DATE() as text, PostgreSQL as a date.
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class ReportingRepository:
    """Aggregate reads over donations, members, projects and visit statistics."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _rows(self, statement, *, query_name: str) -> list[Any]:
        try:
            return list(self.db.execute(statement).all())
        except SQLAlchemyError as exc:
            logger.exception("Aggregate query %s failed", query_name)
            raise DataStoreError(f"Failed to load {query_name.replace('_', ' ')}.") from exc

    def _scalar(self, statement, *, query_name: str) -> Any:
        try:
            return self.db.scalar(statement)
        except SQLAlchemyError as exc:
            logger.exception("Aggregate query %s failed", query_name)
            raise DataStoreError(f"Failed to load {query_name.replace('_', ' ')}.") from exc

    def _scalars(self, statement, *, query_name: str) -> list[Any]:
        try:
            return list(self.db.scalars(statement).all())
        except SQLAlchemyError as exc:
            logger.exception("Aggregate query %s failed", query_name)
            raise DataStoreError(f"Failed to load {query_name.replace('_', ' ')}.") from exc

    # ---------- Donations ----------
    def _completed_donation_conditions(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
        within: tuple[datetime, datetime] | None = None,
    ) -> list[Any]:
        conditions = [
            Donation.organization_id == organization_id,
            Donation.status == COMPLETED_DONATION_STATUS,
            Donation.created_at >= start,
            Donation.created_at <= end,
        ]
        if project_id is not None:
            conditions.append(Donation.project_id == project_id)
        if within is not None:
            conditions.extend([Donation.created_at >= within[0], Donation.created_at <= within[1]])
        return conditions

    def daily_donation_totals(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
        within: tuple[datetime, datetime] | None = None,
    ) -> list[tuple[date, int, int]]:
        day = func.date(Donation.created_at)
        rows = self._rows(
            select(
                day.label("day"),
                func.coalesce(func.sum(Donation.amount), 0),
                func.count(Donation.id),
            )
            .where(and_(*self._completed_donation_conditions(
                organization_id, start, end, project_id=project_id, within=within
            )))
            .group_by(day)
            .order_by(day.asc()),
            query_name="daily_donation_totals",
        )
        return [(_as_date(day_value), int(total), int(count)) for day_value, total, count in rows]

    def donation_totals_by_project(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
        within: tuple[datetime, datetime] | None = None,
    ) -> list[tuple[str, int, int]]:
        total = func.coalesce(func.sum(Donation.amount), 0).label("total")
        rows = self._rows(
            select(Project.title, total, func.count(Donation.id))
            .select_from(Donation)
            .join(Project, Donation.project_id == Project.id)
            .where(and_(*self._completed_donation_conditions(
                organization_id, start, end, project_id=project_id, within=within
            )))
            .group_by(Project.id, Project.title)
            .order_by(total.desc(), Project.title.asc()),
            query_name="donation_totals_by_project",
        )
        return [(title, int(amount), int(count)) for title, amount, count in rows]

    def donation_totals_by_payment_method(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
        within: tuple[datetime, datetime] | None = None,
    ) -> list[tuple[str, int, int]]:
        method = func.coalesce(Donation.payment_method, UNKNOWN_SOURCE)
        total = func.coalesce(func.sum(Donation.amount), 0).label("total")
        rows = self._rows(
            select(method.label("payment_method"), total, func.count(Donation.id))
            .where(and_(*self._completed_donation_conditions(
                organization_id, start, end, project_id=project_id, within=within
            )))
            .group_by(Donation.payment_method)
            .order_by(total.desc(), method.asc()),
            query_name="donation_totals_by_payment_method",
        )
        return [(str(name), int(amount), int(count)) for name, amount, count in rows]

    def completed_donation_stats(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
    ) -> tuple[int, int, float | None]:
        """Return ``(sum, count, average)`` of completed donations in the window."""

        rows = self._rows(
            select(
                func.coalesce(func.sum(Donation.amount), 0),
                func.count(Donation.id),
                func.avg(Donation.amount),
            ).where(and_(*self._completed_donation_conditions(
                organization_id, start, end, project_id=project_id
            ))),
            query_name="completed_donation_stats",
        )
        total, count, average = rows[0]
        return int(total), int(count), float(average) if average is not None else None

    # ---------- Members ----------
    def _member_conditions(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        include_inactive: bool,
    ) -> list[Any]:
        conditions = [
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.created_at >= start,
            OrganizationMember.created_at <= end,
        ]
        if not include_inactive:
            conditions.append(OrganizationMember.is_active.is_(True))
        return conditions

    def daily_member_registrations(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        include_inactive: bool,
    ) -> list[tuple[date, int]]:
        day = func.date(OrganizationMember.created_at)
        rows = self._rows(
            select(day.label("day"), func.count(OrganizationMember.id))
            .where(and_(*self._member_conditions(
                organization_id, start, end, include_inactive=include_inactive
            )))
            .group_by(day)
            .order_by(day.asc()),
            query_name="daily_member_registrations",
        )
        return [(_as_date(day_value), int(count)) for day_value, count in rows]

    def members_by_source(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        include_inactive: bool,
    ) -> list[tuple[str, int]]:
        source = func.coalesce(OrganizationMember.source, UNKNOWN_SOURCE)
        member_count = func.count(OrganizationMember.id).label("member_count")
        rows = self._rows(
            select(source.label("source"), member_count)
            .where(and_(*self._member_conditions(
                organization_id, start, end, include_inactive=include_inactive
            )))
            .group_by(OrganizationMember.source)
            .order_by(member_count.desc(), source.asc()),
            query_name="members_by_source",
        )
        return [(str(name), int(count)) for name, count in rows]

    def count_members_active_since(self, organization_id: UUID, since: datetime) -> int:
        # Open-ended: active since ``since``, not within a window.
        return int(
            self._scalar(
                select(func.count(OrganizationMember.id)).where(
                    OrganizationMember.organization_id == organization_id,
                    OrganizationMember.last_active_at >= since,
                ),
                query_name="active_members",
            )
            or 0
        )

    def count_members(self, organization_id: UUID) -> int:
        return int(
            self._scalar(
                select(func.count(OrganizationMember.id)).where(
                    OrganizationMember.organization_id == organization_id
                ),
                query_name="member_count",
            )
            or 0
        )

    # ---------- Projects ----------
    def list_projects(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Project]:
        statement = (
            select(Project)
            .options(selectinload(Project.stages))
            .where(
                Project.organization_id == organization_id,
                Project.created_at >= start,
                Project.created_at <= end,
            )
            .order_by(Project.created_at.asc(), Project.title.asc())
        )
        if project_id is not None:
            statement = statement.where(Project.id == project_id)
        if status is not None:
            statement = statement.where(Project.status == status)
        return self._scalars(statement, query_name="projects")

    def list_completed_projects(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        *,
        project_id: UUID | None = None,
    ) -> list[Project]:
        return self.list_projects(
            organization_id,
            start,
            end,
            project_id=project_id,
            status=COMPLETED_PROJECT_STATUS,
        )

    # ---------- Visit statistics ----------
    def sum_unique_visitors(self, organization_id: UUID, start: datetime, end: datetime) -> int:
        return int(
            self._scalar(
                select(func.coalesce(func.sum(OrganizationStatistic.unique_visitors), 0)).where(
                    OrganizationStatistic.organization_id == organization_id,
                    OrganizationStatistic.created_at >= start,
                    OrganizationStatistic.created_at <= end,
                ),
                query_name="unique_visitors",
            )
            or 0
        )
