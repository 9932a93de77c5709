"""Aggregation engine producing normalized report payloads."""

from __future__ import annotations

import calendar
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from donation_reports.core.clock import Clock, SystemClock
from donation_reports.core.errors import InvalidFilterError
from donation_reports.models.entities import Organization, Project, ProjectStage, ReportType
from donation_reports.repositories.reporting_repository import ReportingRepository
from donation_reports.services.report_payload import (
    AnalyticsSection,
    ComprehensiveSection,
    CustomSection,
    DailyRegistration,
    FundingProgress,
    MembersSection,
    MembersSummary,
    ProjectsSection,
    ProjectsSummary,
    ReportData,
    ReportPayload,
    RevenueRow,
    RevenueSection,
    RevenueSummary,
    SourceCount,
    StatusCount,
    round2,
    safe_percentage,
)

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = "month"
DEFAULT_GROUP_BY = "month"
DEFAULT_CUSTOM_TITLE = "Summary report"
TIME_GROUPINGS = ("day", "week", "month", "quarter")


def shift_month(moment: datetime, months: int) -> datetime:
    """Move ``moment`` by whole calendar months, clamping to the target month's last day."""

    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max)


def parse_filter_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError as exc:
        raise InvalidFilterError(f"{field_name} must be an ISO date (YYYY-MM-DD).") from exc


def parse_flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        return normalized in {"1", "true", "yes", "on"}
    return bool(value)


def bucket_period(day: date, group_by: str) -> str:
    if group_by == "day":
        return day.isoformat()
    if group_by == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}{iso_week:02d}"
    if group_by == "month":
        return f"{day.year}-{day.month:02d}"
    return f"{day.year}-Q{(day.month - 1) // 3 + 1}"


@dataclass(slots=True)
class GenerationContext:
    organization: Organization
    start: datetime
    end: datetime
    filters: Mapping[str, Any]
    project: Project | None = None
    stage: ProjectStage | None = None

    @property
    def stage_window(self) -> tuple[datetime, datetime] | None:
        if self.stage is None or self.stage.start_date is None or self.stage.end_date is None:
            return None
        return start_of_day(self.stage.start_date), end_of_day(self.stage.end_date)

    @property
    def project_id(self) -> UUID | None:
        return self.project.id if self.project is not None else None


@dataclass(slots=True)
class BuiltReport:
    title: str
    data: ReportData
    summary: dict[str, Any]
    rows_count: int
    meta: dict[str, Any] = field(default_factory=dict)


class ReportGenerator:
    """Builds report payloads from grouped aggregate queries. Read-only."""

    def __init__(
        self,
        db: Session,
        *,
        clock: Clock | None = None,
        repo: ReportingRepository | None = None,
    ) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.repo = repo or ReportingRepository(db)
        self._builders: dict[ReportType, Callable[[GenerationContext], BuiltReport]] = {
            ReportType.REVENUE: self._build_revenue_report,
            ReportType.MEMBERS: self._build_members_report,
            ReportType.PROJECTS: self._build_projects_report,
            ReportType.COMPREHENSIVE: self._build_comprehensive_report,
            ReportType.CUSTOM: self._build_custom_report,
        }

    def generate(
        self,
        organization: Organization,
        report_type: ReportType | str,
        filters: Mapping[str, Any] | None = None,
        project: Project | None = None,
        stage: ProjectStage | None = None,
    ) -> ReportPayload:
        try:
            report_type = ReportType(report_type)
        except ValueError as exc:
            raise InvalidFilterError(f"Unsupported report type: {report_type}") from exc

        filters = dict(filters or {})
        period = filters.get("period") or DEFAULT_PERIOD
        group_by = filters.get("group_by") or None
        status = filters.get("status") or "all"

        start, end = self.resolve_date_range(period, filters.get("date_from"), filters.get("date_to"), stage)
        context = GenerationContext(
            organization=organization,
            start=start,
            end=end,
            filters=filters,
            project=project,
            stage=stage,
        )
        built = self._builders[report_type](context)

        meta = {
            "organization_id": str(organization.id),
            "project_id": str(project.id) if project is not None else None,
            "project_stage_id": str(stage.id) if stage is not None else None,
            "period": period,
            "group_by": group_by,
            "status": status,
            "date_from": start.date().isoformat(),
            "date_to": end.date().isoformat(),
        }
        meta.update(built.meta)

        payload = ReportPayload(
            type=report_type.value,
            title=built.title,
            filters={
                **filters,
                "period": period,
                "date_from": start.date().isoformat(),
                "date_to": end.date().isoformat(),
            },
            meta=meta,
            data=built.data,
            summary=built.summary,
            rows_count=built.rows_count,
            generated_at=self.clock.now(),
        )
        logger.info(
            "Generated %s report for organization %s (%s..%s), rows_count=%s",
            report_type.value,
            organization.id,
            meta["date_from"],
            meta["date_to"],
            payload.rows_count,
        )
        return payload

    # ---------- Date range ----------
    def resolve_date_range(
        self,
        period: str,
        date_from: Any,
        date_to: Any,
        stage: ProjectStage | None = None,
    ) -> tuple[datetime, datetime]:
        """Resolve ``[start, end]`` with precedence custom > stage > keyword > fallback."""

        if period == "custom":
            if not date_from or not date_to:
                raise InvalidFilterError("Custom period requires both date_from and date_to.")
            start = start_of_day(parse_filter_date(date_from, "date_from"))
            end = end_of_day(parse_filter_date(date_to, "date_to"))
            if start > end:
                raise InvalidFilterError("date_from must be on or before date_to.")
            return start, end

        if stage is not None and stage.start_date is not None and stage.end_date is not None:
            return start_of_day(stage.start_date), end_of_day(stage.end_date)

        today = self.clock.now().date()
        if period == "day":
            return start_of_day(today), end_of_day(today)
        if period == "week":
            monday = today - timedelta(days=today.weekday())
            return start_of_day(monday), end_of_day(monday + timedelta(days=6))
        if period == "month":
            last_day = calendar.monthrange(today.year, today.month)[1]
            return start_of_day(today.replace(day=1)), end_of_day(today.replace(day=last_day))
        if period == "quarter":
            first_month = 3 * ((today.month - 1) // 3) + 1
            last_month = first_month + 2
            last_day = calendar.monthrange(today.year, last_month)[1]
            return (
                start_of_day(date(today.year, first_month, 1)),
                end_of_day(date(today.year, last_month, last_day)),
            )
        if period == "year":
            return start_of_day(date(today.year, 1, 1)), end_of_day(date(today.year, 12, 31))

        month_ago = shift_month(start_of_day(today), -1)
        return month_ago, end_of_day(today)

    # ---------- Revenue ----------
    def _revenue(self, context: GenerationContext, group_by: str) -> tuple[RevenueSection, RevenueSummary]:
        organization_id = context.organization.id
        scope = {"project_id": context.project_id, "within": context.stage_window}

        if group_by in TIME_GROUPINGS:
            buckets: dict[str, list[int]] = {}
            for day, total, count in self.repo.daily_donation_totals(
                organization_id, context.start, context.end, **scope
            ):
                bucket = buckets.setdefault(bucket_period(day, group_by), [0, 0])
                bucket[0] += total
                bucket[1] += count
            grouped = [(period, total, count) for period, (total, count) in buckets.items()]
        elif group_by == "project":
            grouped = self.repo.donation_totals_by_project(organization_id, context.start, context.end, **scope)
        elif group_by == "payment_method":
            grouped = self.repo.donation_totals_by_payment_method(
                organization_id, context.start, context.end, **scope
            )
        else:
            # Unknown groupings yield an empty report.
            logger.info("Unknown revenue grouping %r; returning no rows", group_by)
            grouped = []

        rows = [
            RevenueRow(
                period=str(period),
                total=total,
                count=count,
                total_major_unit=round2(Decimal(total) / Decimal(100)),
            )
            for period, total, count in grouped
        ]
        total_amount = sum(row.total for row in rows)
        total_count = sum(row.count for row in rows)
        summary = RevenueSummary(
            total_amount=total_amount,
            total_amount_rubles=round2(Decimal(total_amount) / Decimal(100)),
            total_transactions=total_count,
            average_transaction=round2(Decimal(total_amount) / Decimal(total_count)) if total_count else 0.0,
        )
        return RevenueSection(rows=rows), summary

    def _build_revenue_report(self, context: GenerationContext) -> BuiltReport:
        group_by = context.filters.get("group_by") or DEFAULT_GROUP_BY
        section, summary = self._revenue(context, group_by)
        return BuiltReport(
            title=ReportType.REVENUE.label,
            data=section,
            summary=summary.to_dict(),
            rows_count=section.unit_count(),
            meta={"group_by": group_by},
        )

    # ---------- Members ----------
    def _members(self, context: GenerationContext, include_inactive: bool) -> tuple[MembersSection, MembersSummary]:
        organization_id = context.organization.id
        registrations = [
            DailyRegistration(date=day.isoformat(), count=count)
            for day, count in self.repo.daily_member_registrations(
                organization_id, context.start, context.end, include_inactive=include_inactive
            )
        ]
        by_source = [
            SourceCount(source=source, count=count)
            for source, count in self.repo.members_by_source(
                organization_id, context.start, context.end, include_inactive=include_inactive
            )
        ]
        active_members = self.repo.count_members_active_since(organization_id, context.start)

        section = MembersSection(
            daily_registrations=registrations,
            members_by_source=by_source,
            active_members=active_members,
        )
        summary = MembersSummary(
            new_members=sum(item.count for item in registrations),
            active_members=active_members,
            top_source=by_source[0].source if by_source else None,
        )
        return section, summary

    def _build_members_report(self, context: GenerationContext) -> BuiltReport:
        include_inactive = parse_flag(context.filters.get("include_inactive"), False)
        section, summary = self._members(context, include_inactive)
        return BuiltReport(
            title=ReportType.MEMBERS.label,
            data=section,
            summary=summary.to_dict(),
            rows_count=section.unit_count(),
        )

    # ---------- Projects ----------
    def _average_funding_time(self, context: GenerationContext) -> float:
        projects = self.repo.list_completed_projects(
            context.organization.id,
            context.start,
            context.end,
            project_id=context.project_id,
        )
        if not projects:
            return 0.0
        total_days = sum(
            abs(project.updated_at - project.created_at).days if project.updated_at else 0 for project in projects
        )
        return round2(Decimal(total_days) / Decimal(len(projects)))

    def _projects(self, context: GenerationContext, status: str) -> tuple[ProjectsSection, ProjectsSummary]:
        projects = self.repo.list_projects(
            context.organization.id,
            context.start,
            context.end,
            project_id=context.project_id,
            status=None if status == "all" else status,
        )

        status_counts: dict[str, int] = {}
        for project in projects:
            status_counts[project.status] = status_counts.get(project.status, 0) + 1

        stage = context.stage
        funding: list[FundingProgress] = []
        for project in projects:
            target, collected = project.target_amount, project.collected_amount
            if stage is not None and stage.project_id == project.id:
                target, collected = stage.target_amount, stage.collected_amount
            funding.append(
                FundingProgress(
                    project_id=str(project.id),
                    title=project.title,
                    target_amount=int(target or 0),
                    collected_amount=int(collected or 0),
                    progress_percentage=safe_percentage(collected or 0, target or 0),
                )
            )
        funding.sort(key=lambda item: item.progress_percentage, reverse=True)

        total_target = sum(item.target_amount for item in funding)
        total_collected = sum(item.collected_amount for item in funding)
        section = ProjectsSection(
            projects_by_status=[StatusCount(status=name, count=count) for name, count in status_counts.items()],
            funding_progress=funding,
            average_funding_time=self._average_funding_time(context),
        )
        summary = ProjectsSummary(
            total_projects=len(funding),
            total_target=total_target,
            total_collected=total_collected,
            overall_progress=safe_percentage(total_collected, total_target),
        )
        return section, summary

    def _build_projects_report(self, context: GenerationContext) -> BuiltReport:
        section, summary = self._projects(context, context.filters.get("status") or "all")
        return BuiltReport(
            title=ReportType.PROJECTS.label,
            data=section,
            summary=summary.to_dict(),
            rows_count=section.unit_count(),
        )

    # ---------- Analytics ----------
    def _analytics(self, context: GenerationContext) -> AnalyticsSection:
        organization_id = context.organization.id
        project_id = context.project_id

        current_total, current_count, average = self.repo.completed_donation_stats(
            organization_id, context.start, context.end, project_id=project_id
        )
        visitors = self.repo.sum_unique_visitors(organization_id, context.start, context.end)

        total_members = self.repo.count_members(organization_id)
        active_members = self.repo.count_members_active_since(organization_id, context.start)

        # Compared against one calendar month before the range start, whatever the range length.
        previous_total, _, _ = self.repo.completed_donation_stats(
            organization_id,
            shift_month(context.start, -1),
            context.start - timedelta(microseconds=1),
            project_id=project_id,
        )
        growth_rate = 0.0
        if previous_total > 0:
            growth_rate = round2(
                (Decimal(current_total) - Decimal(previous_total)) / Decimal(previous_total) * Decimal(100)
            )

        return AnalyticsSection(
            conversion_rate=safe_percentage(current_count, visitors),
            average_donation=round2(average) if average is not None else 0.0,
            retention_rate=safe_percentage(active_members, total_members),
            growth_rate=growth_rate,
        )

    # ---------- Composite reports ----------
    def _build_comprehensive_report(self, context: GenerationContext) -> BuiltReport:
        filters = context.filters
        section = ComprehensiveSection()
        summary: dict[str, Any] = {}

        if parse_flag(filters.get("include_revenue"), True):
            section.revenue, revenue_summary = self._revenue(context, DEFAULT_GROUP_BY)
            summary["revenue"] = revenue_summary.to_dict()
        if parse_flag(filters.get("include_members"), True):
            section.members, members_summary = self._members(context, False)
            summary["members"] = members_summary.to_dict()
        if parse_flag(filters.get("include_projects"), True):
            section.projects, projects_summary = self._projects(context, "all")
            summary["projects"] = projects_summary.to_dict()
        if parse_flag(filters.get("include_analytics"), True):
            section.analytics = self._analytics(context)

        return BuiltReport(
            title=ReportType.COMPREHENSIVE.label,
            data=section,
            summary=summary,
            rows_count=section.unit_count(),
        )

    def _build_custom_report(self, context: GenerationContext) -> BuiltReport:
        group_by = context.filters.get("group_by") or DEFAULT_GROUP_BY
        revenue, revenue_summary = self._revenue(context, group_by)
        section = CustomSection(revenue=revenue)
        return BuiltReport(
            title=str(context.filters.get("title") or DEFAULT_CUSTOM_TITLE),
            data=section,
            summary={"revenue": revenue_summary.to_dict()},
            rows_count=section.unit_count(),
            meta={"group_by": group_by},
        )
