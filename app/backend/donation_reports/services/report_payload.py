"""Typed report payload sections and their JSON shapes."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

CENT = Decimal("0.01")


def round2(value: Decimal | int | float) -> float:
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def safe_percentage(numerator: Decimal | int | float, denominator: Decimal | int | float) -> float:
    if not denominator or Decimal(str(denominator)) <= 0:
        return 0.0
    return round2(Decimal(str(numerator)) / Decimal(str(denominator)) * Decimal("100"))


def _is_dense_index(keys: list[Any]) -> bool:
    return all(isinstance(key, int) and not isinstance(key, bool) for key in keys) and sorted(keys) == list(
        range(len(keys))
    )


def resolve_rows_count(value: Any) -> int:
    """Count the most granular enumerable units in an untyped payload tree.

    Lists (and mappings keyed exactly by ``0..n-1``) contribute their length;
    other mappings contribute the sum of their values; scalars contribute 0.
    """

    if isinstance(value, Mapping):
        keys = list(value.keys())
        if _is_dense_index(keys):
            return len(keys)
        return sum(resolve_rows_count(item) for item in value.values())
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return len(value)
    return 0


# ---------- Revenue ----------
@dataclass(slots=True)
class RevenueRow:
    period: str
    total: int
    count: int
    total_major_unit: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "total": self.total,
            "count": self.count,
            "total_major_unit": self.total_major_unit,
        }


@dataclass(slots=True)
class RevenueSummary:
    total_amount: int
    total_amount_rubles: float
    total_transactions: int
    average_transaction: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_amount": self.total_amount,
            "total_amount_rubles": self.total_amount_rubles,
            "total_transactions": self.total_transactions,
            "average_transaction": self.average_transaction,
        }


@dataclass(slots=True)
class RevenueSection:
    rows: list[RevenueRow] = field(default_factory=list)

    def to_dict(self) -> list[dict[str, Any]]:
        return [row.to_dict() for row in self.rows]

    def resolved_rows_count(self) -> int:
        return len(self.rows)

    def unit_count(self) -> int:
        return len(self.rows)


# ---------- Members ----------
@dataclass(slots=True)
class DailyRegistration:
    date: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "count": self.count}


@dataclass(slots=True)
class SourceCount:
    source: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source, "count": self.count}


@dataclass(slots=True)
class MembersSummary:
    new_members: int
    active_members: int
    top_source: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_members": self.new_members,
            "active_members": self.active_members,
            "top_source": self.top_source,
        }


@dataclass(slots=True)
class MembersSection:
    daily_registrations: list[DailyRegistration] = field(default_factory=list)
    members_by_source: list[SourceCount] = field(default_factory=list)
    active_members: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_registrations": [item.to_dict() for item in self.daily_registrations],
            "members_by_source": [item.to_dict() for item in self.members_by_source],
            "active_members": self.active_members,
        }

    def resolved_rows_count(self) -> int:
        return len(self.daily_registrations) + len(self.members_by_source)

    def unit_count(self) -> int:
        return len(self.daily_registrations)


# ---------- Projects ----------
@dataclass(slots=True)
class StatusCount:
    status: str
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "count": self.count}


@dataclass(slots=True)
class FundingProgress:
    project_id: str
    title: str
    target_amount: int
    collected_amount: int
    progress_percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "title": self.title,
            "target_amount": self.target_amount,
            "collected_amount": self.collected_amount,
            "progress_percentage": self.progress_percentage,
        }


@dataclass(slots=True)
class ProjectsSummary:
    total_projects: int
    total_target: int
    total_collected: int
    overall_progress: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_projects": self.total_projects,
            "total_target": self.total_target,
            "total_collected": self.total_collected,
            "overall_progress": self.overall_progress,
        }


@dataclass(slots=True)
class ProjectsSection:
    projects_by_status: list[StatusCount] = field(default_factory=list)
    funding_progress: list[FundingProgress] = field(default_factory=list)
    average_funding_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "projects_by_status": [item.to_dict() for item in self.projects_by_status],
            "funding_progress": [item.to_dict() for item in self.funding_progress],
            "average_funding_time": self.average_funding_time,
        }

    def resolved_rows_count(self) -> int:
        return len(self.projects_by_status) + len(self.funding_progress)

    def unit_count(self) -> int:
        return len(self.funding_progress)


# ---------- Analytics ----------
@dataclass(slots=True)
class AnalyticsSection:
    conversion_rate: float = 0.0
    average_donation: float = 0.0
    retention_rate: float = 0.0
    growth_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversion_rate": self.conversion_rate,
            "average_donation": self.average_donation,
            "retention_rate": self.retention_rate,
            "growth_rate": self.growth_rate,
        }

    def resolved_rows_count(self) -> int:
        return 0


# ---------- Composite sections ----------
@dataclass(slots=True)
class ComprehensiveSection:
    revenue: RevenueSection | None = None
    members: MembersSection | None = None
    projects: ProjectsSection | None = None
    analytics: AnalyticsSection | None = None

    def _present(self) -> list[tuple[str, Any]]:
        sections = [
            ("revenue", self.revenue),
            ("members", self.members),
            ("projects", self.projects),
            ("analytics", self.analytics),
        ]
        return [(name, section) for name, section in sections if section is not None]

    def to_dict(self) -> dict[str, Any]:
        return {name: section.to_dict() for name, section in self._present()}

    def resolved_rows_count(self) -> int:
        return sum(section.resolved_rows_count() for _, section in self._present())

    def unit_count(self) -> int:
        return self.resolved_rows_count()


@dataclass(slots=True)
class CustomSection:
    revenue: RevenueSection = field(default_factory=RevenueSection)

    def to_dict(self) -> dict[str, Any]:
        return {"revenue": self.revenue.to_dict()}

    def resolved_rows_count(self) -> int:
        return self.revenue.resolved_rows_count()

    def unit_count(self) -> int:
        return self.revenue.unit_count()


ReportData = Union[RevenueSection, MembersSection, ProjectsSection, ComprehensiveSection, CustomSection]


@dataclass(slots=True)
class ReportPayload:
    type: str
    title: str
    filters: dict[str, Any]
    meta: dict[str, Any]
    data: ReportData
    summary: dict[str, Any]
    rows_count: int
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "title": self.title,
            "filters": self.filters,
            "meta": self.meta,
            "data": self.data.to_dict(),
            "summary": self.summary,
            "rows_count": self.rows_count,
            "generated_at": self.generated_at.isoformat(),
        }
