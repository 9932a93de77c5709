"""ORM model package."""

from donation_reports.models.entities import (
    Donation,
    Organization,
    OrganizationMember,
    OrganizationStatistic,
    Project,
    ProjectStage,
    Report,
    ReportRun,
    ReportStatus,
    ReportType,
    ReportVisibility,
    User,
)

__all__ = [
    "Donation",
    "Organization",
    "OrganizationMember",
    "OrganizationStatistic",
    "Project",
    "ProjectStage",
    "Report",
    "ReportRun",
    "ReportStatus",
    "ReportType",
    "ReportVisibility",
    "User",
]
