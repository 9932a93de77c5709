"""ORM entities for the reporting schema."""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donation_reports.db.base import Base, JSONType


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReportType(str, enum.Enum):
    REVENUE = "revenue"
    MEMBERS = "members"
    PROJECTS = "projects"
    COMPREHENSIVE = "comprehensive"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return REPORT_TYPE_LABELS[self]

    def default_config(self) -> dict[str, object]:
        return dict(REPORT_TYPE_DEFAULTS[self])

    def allowed_groupings(self) -> list[str]:
        return list(REPORT_TYPE_GROUPINGS[self])


REVENUE_GROUPINGS = ("day", "week", "month", "quarter", "project", "payment_method")

REPORT_TYPE_LABELS: dict[ReportType, str] = {
    ReportType.REVENUE: "Revenue report",
    ReportType.MEMBERS: "Members report",
    ReportType.PROJECTS: "Projects report",
    ReportType.COMPREHENSIVE: "Comprehensive report",
    ReportType.CUSTOM: "Custom report",
}

REPORT_TYPE_DEFAULTS: dict[ReportType, dict[str, object]] = {
    ReportType.REVENUE: {"period": "month", "group_by": "day"},
    ReportType.MEMBERS: {"period": "month", "include_inactive": False},
    ReportType.PROJECTS: {"period": "year", "status": "all"},
    ReportType.COMPREHENSIVE: {
        "period": "month",
        "include_revenue": True,
        "include_members": True,
        "include_projects": True,
        "include_analytics": True,
    },
    ReportType.CUSTOM: {"period": "month", "group_by": "month"},
}

REPORT_TYPE_GROUPINGS: dict[ReportType, tuple[str, ...]] = {
    ReportType.REVENUE: REVENUE_GROUPINGS,
    ReportType.MEMBERS: ("day",),
    ReportType.PROJECTS: (),
    ReportType.COMPREHENSIVE: ("month",),
    ReportType.CUSTOM: REVENUE_GROUPINGS,
}


class ReportStatus(str, enum.Enum):
    DRAFT = "draft"
    READY = "ready"
    ARCHIVED = "archived"


class ReportVisibility(str, enum.Enum):
    PRIVATE = "private"
    ORGANIZATION = "organization"
    PUBLIC = "public"


class Organization(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("target_amount >= 0", name="ck_projects_target_amount_non_negative"),
        CheckConstraint("collected_amount >= 0", name="ck_projects_collected_amount_non_negative"),
        Index("ix_projects_organization_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    # Amounts are stored in minor currency units.
    target_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collected_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    stages: Mapped[list[ProjectStage]] = relationship(
        back_populates="project",
        order_by="ProjectStage.order",
    )


class ProjectStage(Base):
    __tablename__ = "project_stages"
    __table_args__ = (Index("ix_project_stages_project_id", "project_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    target_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    collected_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project: Mapped[Project] = relationship(back_populates="stages")


class Donation(Base):
    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_donations_amount_non_negative"),
        Index("ix_donations_organization_status_created", "organization_id", "status", "created_at"),
        Index("ix_donations_project_id", "project_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class OrganizationMember(Base):
    __tablename__ = "organization_members"
    __table_args__ = (Index("ix_organization_members_organization_created", "organization_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class OrganizationStatistic(Base):
    __tablename__ = "organization_statistics"
    __table_args__ = (
        CheckConstraint("unique_visitors >= 0", name="ck_organization_statistics_visitors_non_negative"),
        Index("ix_organization_statistics_organization_created", "organization_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    unique_visitors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_organization_created", "organization_id", "created_at"),
        Index("ix_reports_organization_type", "organization_id", "report_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True
    )
    project_stage_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("project_stages.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    report_type: Mapped[ReportType] = mapped_column(
        SQLEnum(
            ReportType,
            name="report_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    status: Mapped[ReportStatus] = mapped_column(
        SQLEnum(
            ReportStatus,
            name="report_status",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ReportStatus.DRAFT,
    )
    visibility: Mapped[ReportVisibility] = mapped_column(
        SQLEnum(
            ReportVisibility,
            name="report_visibility",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=ReportVisibility.PRIVATE,
    )
    filters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    updated_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    project: Mapped[Project | None] = relationship(foreign_keys=[project_id])
    project_stage: Mapped[ProjectStage | None] = relationship(foreign_keys=[project_stage_id])
    creator: Mapped[User | None] = relationship(foreign_keys=[created_by_id])
    updater: Mapped[User | None] = relationship(foreign_keys=[updated_by_id])
    runs: Mapped[list[ReportRun]] = relationship(
        back_populates="report",
        order_by="ReportRun.generated_at.desc()",
    )


class ReportRun(Base):
    __tablename__ = "report_runs"
    __table_args__ = (
        CheckConstraint("rows_count >= 0", name="ck_report_runs_rows_count_non_negative"),
        Index("ix_report_runs_report_generated", "report_id", "generated_at"),
        Index("ix_report_runs_organization_generated", "organization_id", "generated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    report_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("reports.id", ondelete="SET NULL"), nullable=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True
    )
    project_stage_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("project_stages.id"), nullable=True
    )
    report_type: Mapped[ReportType] = mapped_column(
        SQLEnum(
            ReportType,
            name="report_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    filters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    meta: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    data: Mapped[dict | list] = mapped_column(JSONType, nullable=False, default=dict)
    rows_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    generated_by_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=True
    )

    report: Mapped[Report | None] = relationship(back_populates="runs")
    project: Mapped[Project | None] = relationship(foreign_keys=[project_id])
    project_stage: Mapped[ProjectStage | None] = relationship(foreign_keys=[project_stage_id])
    generator: Mapped[User | None] = relationship(foreign_keys=[generated_by_id])
