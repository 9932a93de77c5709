"""Report definitions, run persistence and export orchestration."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from donation_reports.core.clock import Clock, SystemClock
from donation_reports.core.config import get_settings
from donation_reports.core.errors import NotFoundError, TenantMismatchError
from donation_reports.models.entities import (
    Organization,
    Project,
    ProjectStage,
    Report,
    ReportRun,
    ReportStatus,
    ReportType,
    ReportVisibility,
    User,
    utcnow,
)
from donation_reports.repositories.report_repository import ReportRepository
from donation_reports.services.report_exporter import ExportResult, ReportExporter
from donation_reports.services.report_generator import ReportGenerator
from donation_reports.services.report_payload import ReportPayload

logger = logging.getLogger(__name__)

REPORT_DESCRIPTIONS: dict[ReportType, tuple[str, str, str]] = {
    ReportType.REVENUE: ("Donation income over time, by project or by payment method", "trending-up", "green"),
    ReportType.MEMBERS: ("Member registrations, acquisition sources and activity", "users", "blue"),
    ReportType.PROJECTS: ("Project statuses and funding progress", "folder", "purple"),
    ReportType.COMPREHENSIVE: ("Revenue, members, projects and analytics in one report", "bar-chart", "orange"),
    ReportType.CUSTOM: ("Revenue report with a custom title and grouping", "sparkles", "cyan"),
}

REPORT_FIELDS = ("title", "description", "report_type", "status", "visibility", "filters")


@dataclass(slots=True)
class ReportCreateData:
    title: str
    report_type: ReportType
    description: str | None = None
    status: ReportStatus | None = None
    visibility: ReportVisibility | None = None
    filters: dict[str, Any] = field(default_factory=dict)
    project_id: UUID | None = None
    project_stage_id: UUID | None = None


@dataclass(slots=True)
class ReportListFilters:
    report_type: str | None = None
    status: str | None = None
    search: str | None = None


@dataclass(slots=True)
class Page:
    items: list[Any]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))


@dataclass(slots=True)
class GenerationResult:
    payload: ReportPayload
    run: ReportRun | None = None
    report: Report | None = None


def _enum_filter(enum_cls, value: str | None):
    if not value or value == "all":
        return None
    return enum_cls(value)


def _parse_generated_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _merge_meta(current: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = {**(current or {}), **(incoming or {})}
    return {key: value for key, value in merged.items() if value not in (None, "", [], {})}


class ReportService:
    """Facade over report definitions, generation, run history and export."""

    def __init__(
        self,
        db: Session,
        *,
        clock: Clock | None = None,
        generator: ReportGenerator | None = None,
        exporter: ReportExporter | None = None,
    ) -> None:
        self.db = db
        self.repo = ReportRepository(db)
        self.settings = get_settings()
        self.clock = clock or SystemClock()
        self.generator = generator or ReportGenerator(db, clock=self.clock)
        self.exporter = exporter or ReportExporter(clock=self.clock, settings=self.settings)

    # ---------- Catalog ----------
    @staticmethod
    def list_report_definitions() -> list[dict[str, object]]:
        definitions = []
        for report_type in ReportType:
            description, icon, color = REPORT_DESCRIPTIONS[report_type]
            definitions.append(
                {
                    "id": report_type.value,
                    "name": report_type.label,
                    "description": description,
                    "icon": icon,
                    "color": color,
                    "defaults": report_type.default_config(),
                    "groupings": report_type.allowed_groupings(),
                }
            )
        return definitions

    # ---------- Lookups ----------
    def get_organization(self, organization_id: UUID) -> Organization:
        organization = self.repo.get_organization(organization_id)
        if organization is None:
            raise NotFoundError("Organization not found.")
        return organization

    def resolve_project(self, organization: Organization, project_id: UUID | None) -> Project | None:
        if project_id is None:
            return None
        project = self.repo.get_project(project_id)
        if project is None or project.organization_id != organization.id:
            raise NotFoundError("Project not found.")
        return project

    def resolve_stage(
        self,
        organization: Organization,
        stage_id: UUID | None,
        project: Project | None = None,
    ) -> ProjectStage | None:
        if stage_id is None:
            return None
        stage = self.repo.get_stage(stage_id)
        if stage is None or stage.project.organization_id != organization.id:
            raise NotFoundError("Project stage not found.")
        if project is not None and stage.project_id != project.id:
            raise NotFoundError("Project stage not found.")
        return stage

    @staticmethod
    def ensure_report_belongs_to_organization(report: Report, organization: Organization) -> None:
        if report.organization_id and report.organization_id != organization.id:
            raise TenantMismatchError()

    def get_report(self, organization: Organization, report_id: UUID) -> Report:
        report = self.repo.get_report(report_id)
        if report is None:
            raise NotFoundError("Report not found.")
        self.ensure_report_belongs_to_organization(report, organization)
        return report

    # ---------- Definitions ----------
    def list_reports(self, organization: Organization, filters: ReportListFilters, *, page: int = 1) -> Page:
        per_page = self.settings.reports_page_size
        page = max(page, 1)
        try:
            report_type = _enum_filter(ReportType, filters.report_type)
            status = _enum_filter(ReportStatus, filters.status)
        except ValueError:
            logger.info(
                "Unknown report filter for organization %s (report_type=%r, status=%r)",
                organization.id,
                filters.report_type,
                filters.status,
            )
            return Page(items=[], total=0, page=page, per_page=per_page)
        criteria = {
            "report_type": report_type,
            "status": status,
            "search": filters.search.strip() if filters.search else None,
        }
        items = self.repo.list_reports(
            organization.id,
            **criteria,
            offset=(page - 1) * per_page,
            limit=per_page,
        )
        total = self.repo.count_reports(organization.id, **criteria)
        return Page(items=list(items), total=total, page=page, per_page=per_page)

    def create_report(self, organization: Organization, data: ReportCreateData, user: User | None = None) -> Report:
        try:
            project = self.resolve_project(organization, data.project_id)
            stage = self.resolve_stage(organization, data.project_stage_id, project)
            now = utcnow()
            report = Report(
                organization_id=organization.id,
                title=data.title.strip(),
                description=data.description.strip() if data.description else None,
                report_type=data.report_type,
                status=data.status or ReportStatus.DRAFT,
                visibility=data.visibility or ReportVisibility.PRIVATE,
                filters=dict(data.filters or {}),
                meta={},
                summary={},
                project=project,
                project_stage=stage,
                creator=user,
                updater=user,
                created_at=now,
                updated_at=now,
            )
            self.repo.add_report(report)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(report)
        logger.info("Created report %s (%s) for organization %s", report.id, report.report_type.value, organization.id)
        return report

    def update_report(self, report: Report, changes: Mapping[str, Any], user: User | None = None) -> Report:
        """Apply ``changes``; keys present with an empty project/stage id detach it."""

        try:
            organization = self.get_organization(report.organization_id)
            for key in REPORT_FIELDS:
                if key in changes and changes[key] is not None:
                    value = changes[key]
                    setattr(report, key, value.strip() if isinstance(value, str) else value)
            if "description" in changes and changes["description"] is None:
                report.description = None

            if "project_id" in changes:
                report.project = None
                if changes["project_id"]:
                    report.project = self.resolve_project(organization, changes["project_id"])
            if "project_stage_id" in changes:
                report.project_stage = None
                if changes["project_stage_id"]:
                    report.project_stage = self.resolve_stage(
                        organization, changes["project_stage_id"], report.project
                    )

            if user is not None:
                report.updater = user
            report.updated_at = utcnow()
            self.db.flush()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(report)
        logger.info("Updated report %s", report.id)
        return report

    def delete_report(self, report: Report) -> None:
        report_id = report.id
        try:
            self.repo.delete_report(report)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Deleted report %s", report_id)

    # ---------- Generation ----------
    def build_report_payload(
        self,
        organization: Organization,
        report_type: ReportType | str,
        filters: Mapping[str, Any] | None = None,
        project: Project | None = None,
        stage: ProjectStage | None = None,
    ) -> ReportPayload:
        return self.generator.generate(organization, report_type, filters, project, stage)

    def persist_run(
        self,
        payload: ReportPayload | Mapping[str, Any],
        organization: Organization,
        user: User | None = None,
        report: Report | None = None,
        project: Project | None = None,
        stage: ProjectStage | None = None,
    ) -> ReportRun:
        if isinstance(payload, ReportPayload):
            generated_at = payload.generated_at
            payload = payload.to_dict()
        else:
            generated_at = _parse_generated_at(payload.get("generated_at"))
        generated_at = generated_at or self.clock.now()

        try:
            run = ReportRun(
                organization_id=organization.id,
                report_type=ReportType(payload.get("type")),
                filters=dict(payload.get("filters") or {}),
                meta=dict(payload.get("meta") or {}),
                summary=dict(payload.get("summary") or {}),
                data=payload.get("data") or {},
                rows_count=int(payload.get("rows_count") or 0),
                generated_at=generated_at,
                report=report,
                project=project,
                project_stage=stage,
                generator=user,
            )
            if report is not None:
                report.filters = dict(payload.get("filters") or report.filters or {})
                report.summary = dict(run.summary)
                report.meta = _merge_meta(report.meta, run.meta)
                report.generated_at = generated_at
                report.updated_at = utcnow()
            self.repo.add_run(run)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(run)
        logger.info(
            "Persisted %s run %s for organization %s (report=%s, rows_count=%s)",
            run.report_type.value,
            run.id,
            organization.id,
            report.id if report is not None else None,
            run.rows_count,
        )
        return run

    def generate_report(
        self,
        organization: Organization,
        report_type: ReportType | str,
        filters: Mapping[str, Any] | None = None,
        *,
        project_id: UUID | None = None,
        project_stage_id: UUID | None = None,
        persist: bool = False,
        report_id: UUID | None = None,
        user: User | None = None,
    ) -> GenerationResult:
        report = self.get_report(organization, report_id) if report_id is not None else None
        project = self.resolve_project(organization, project_id)
        stage = self.resolve_stage(organization, project_stage_id, project)

        payload = self.build_report_payload(organization, report_type, filters, project, stage)
        if not persist:
            return GenerationResult(payload=payload, report=report)

        run = self.persist_run(payload, organization, user=user, report=report, project=project, stage=stage)
        return GenerationResult(payload=payload, run=run, report=report)

    def export(
        self,
        report_type: ReportType | str,
        payload: ReportPayload | Mapping[str, Any],
        format_name: str = "csv",
        filename: str | None = None,
    ) -> ExportResult:
        return self.exporter.export(report_type, payload, format_name, filename)

    # ---------- Run history ----------
    def list_report_runs(self, report: Report, *, page: int = 1) -> Page:
        per_page = self.settings.reports_page_size
        page = max(page, 1)
        items = self.repo.list_runs_for_report(report.id, offset=(page - 1) * per_page, limit=per_page)
        return Page(items=list(items), total=self.repo.count_runs_for_report(report.id), page=page, per_page=per_page)

    def recent_runs(self, organization: Organization, limit: int | None = None) -> list[ReportRun]:
        return list(self.repo.list_recent_runs(organization.id, limit=limit or self.settings.recent_runs_limit))

    # ---------- Serialization ----------
    def serialize_reports(self, reports: list[Report]) -> list[dict[str, object]]:
        counts = self.repo.count_runs_for_reports([report.id for report in reports])
        return [
            self.serialize_report(
                report,
                latest_run=self.repo.get_latest_run(report.id),
                runs_count=counts.get(report.id, 0),
            )
            for report in reports
        ]

    def serialize_report_with_relations(self, report: Report) -> dict[str, object]:
        return self.serialize_reports([report])[0]

    @staticmethod
    def _serialize_user(user: User | None) -> dict[str, object] | None:
        if user is None:
            return None
        return {"id": str(user.id), "email": user.email, "display_name": user.display_name}

    @staticmethod
    def serialize_report(
        report: Report,
        *,
        latest_run: ReportRun | None = None,
        runs_count: int = 0,
    ) -> dict[str, object]:
        return {
            "id": str(report.id),
            "organization_id": str(report.organization_id),
            "title": report.title,
            "description": report.description,
            "report_type": report.report_type.value,
            "status": report.status.value,
            "visibility": report.visibility.value,
            "filters": report.filters or {},
            "meta": report.meta or {},
            "summary": report.summary or {},
            "generated_at": report.generated_at.isoformat() if report.generated_at else None,
            "created_at": report.created_at.isoformat(),
            "updated_at": report.updated_at.isoformat(),
            "project": (
                {"id": str(report.project.id), "title": report.project.title} if report.project is not None else None
            ),
            "project_stage": (
                {"id": str(report.project_stage.id), "title": report.project_stage.title}
                if report.project_stage is not None
                else None
            ),
            "creator": ReportService._serialize_user(report.creator),
            "updater": ReportService._serialize_user(report.updater),
            "latest_run": ReportService.serialize_run(latest_run) if latest_run is not None else None,
            "runs_count": runs_count,
        }

    @staticmethod
    def serialize_run(run: ReportRun, *, include_data: bool = False) -> dict[str, object]:
        serialized: dict[str, object] = {
            "id": str(run.id),
            "report_id": str(run.report_id) if run.report_id else None,
            "organization_id": str(run.organization_id),
            "project_id": str(run.project_id) if run.project_id else None,
            "project_stage_id": str(run.project_stage_id) if run.project_stage_id else None,
            "report_type": run.report_type.value,
            "filters": run.filters or {},
            "meta": run.meta or {},
            "summary": run.summary or {},
            "rows_count": run.rows_count,
            "generated_at": run.generated_at.isoformat(),
            "generated_by": ReportService._serialize_user(run.generator),
        }
        if include_data:
            serialized["data"] = run.data
        return serialized
