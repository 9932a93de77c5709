"""Persistence helpers for report definitions and report runs."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from donation_reports.models.entities import (
    Organization,
    Project,
    ProjectStage,
    Report,
    ReportRun,
    ReportStatus,
    ReportType,
)


class ReportRepository:
    """Persistence operations used by the report facade."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Lookups ----------
    def get_organization(self, organization_id: UUID) -> Organization | None:
        return self.db.scalar(select(Organization).where(Organization.id == organization_id))

    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def get_stage(self, stage_id: UUID) -> ProjectStage | None:
        return self.db.scalar(
            select(ProjectStage)
            .options(selectinload(ProjectStage.project))
            .where(ProjectStage.id == stage_id)
        )

    # ---------- Reports ----------
    def _report_options(self):
        return (
            selectinload(Report.project),
            selectinload(Report.project_stage),
            selectinload(Report.creator),
            selectinload(Report.updater),
        )

    def get_report(self, report_id: UUID) -> Report | None:
        return self.db.scalar(select(Report).options(*self._report_options()).where(Report.id == report_id))

    def _report_conditions(
        self,
        organization_id: UUID,
        *,
        report_type: ReportType | None,
        status: ReportStatus | None,
        search: str | None,
    ) -> list:
        conditions = [Report.organization_id == organization_id]
        if report_type is not None:
            conditions.append(Report.report_type == report_type)
        if status is not None:
            conditions.append(Report.status == status)
        if search:
            pattern = f"%{search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(Report.title).like(pattern),
                    func.lower(func.coalesce(Report.description, "")).like(pattern),
                )
            )
        return conditions

    def list_reports(
        self,
        organization_id: UUID,
        *,
        report_type: ReportType | None = None,
        status: ReportStatus | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> list[Report]:
        return self.db.scalars(
            select(Report)
            .options(*self._report_options())
            .where(*self._report_conditions(organization_id, report_type=report_type, status=status, search=search))
            .order_by(Report.created_at.desc(), Report.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()

    def count_reports(
        self,
        organization_id: UUID,
        *,
        report_type: ReportType | None = None,
        status: ReportStatus | None = None,
        search: str | None = None,
    ) -> int:
        return (
            self.db.scalar(
                select(func.count(Report.id)).where(
                    *self._report_conditions(organization_id, report_type=report_type, status=status, search=search)
                )
            )
            or 0
        )

    def add_report(self, report: Report) -> Report:
        self.db.add(report)
        self.db.flush()
        return report

    def delete_report(self, report: Report) -> None:
        # Runs outlive their definition.
        self.db.execute(
            update(ReportRun)
            .where(ReportRun.report_id == report.id)
            .values(report_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.delete(report)
        self.db.flush()

    # ---------- Runs ----------
    def add_run(self, run: ReportRun) -> ReportRun:
        self.db.add(run)
        self.db.flush()
        return run

    def get_latest_run(self, report_id: UUID) -> ReportRun | None:
        return self.db.scalar(
            select(ReportRun)
            .where(ReportRun.report_id == report_id)
            .order_by(ReportRun.generated_at.desc(), ReportRun.id.desc())
            .limit(1)
        )

    def count_runs_for_reports(self, report_ids: list[UUID]) -> dict[UUID, int]:
        if not report_ids:
            return {}
        rows = self.db.execute(
            select(ReportRun.report_id, func.count(ReportRun.id))
            .where(ReportRun.report_id.in_(report_ids))
            .group_by(ReportRun.report_id)
        ).all()
        return {report_id: int(count) for report_id, count in rows}

    def list_runs_for_report(self, report_id: UUID, *, offset: int = 0, limit: int = 10) -> list[ReportRun]:
        return self.db.scalars(
            select(ReportRun)
            .options(selectinload(ReportRun.generator))
            .where(ReportRun.report_id == report_id)
            .order_by(ReportRun.generated_at.desc(), ReportRun.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()

    def count_runs_for_report(self, report_id: UUID) -> int:
        return self.db.scalar(select(func.count(ReportRun.id)).where(ReportRun.report_id == report_id)) or 0

    def list_recent_runs(self, organization_id: UUID, *, limit: int) -> list[ReportRun]:
        return self.db.scalars(
            select(ReportRun)
            .options(selectinload(ReportRun.report), selectinload(ReportRun.generator))
            .where(ReportRun.organization_id == organization_id)
            .order_by(ReportRun.generated_at.desc(), ReportRun.id.desc())
            .limit(limit)
        ).all()
