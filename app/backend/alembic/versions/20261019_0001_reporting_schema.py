"""reporting schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


report_type = postgresql.ENUM(
    "revenue", "members", "projects", "comprehensive", "custom", name="report_type", create_type=False
)
report_status = postgresql.ENUM("draft", "ready", "archived", name="report_status", create_type=False)
report_visibility = postgresql.ENUM(
    "private", "organization", "public", name="report_visibility", create_type=False
)


def upgrade() -> None:
    report_type.create(op.get_bind(), checkfirst=True)
    report_status.create(op.get_bind(), checkfirst=True)
    report_visibility.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=128), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False, unique=True),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("target_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("collected_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("target_amount >= 0", name="ck_projects_target_amount_non_negative"),
        sa.CheckConstraint("collected_amount >= 0", name="ck_projects_collected_amount_non_negative"),
    )
    op.create_index("ix_projects_organization_created", "projects", ["organization_id", "created_at"])

    op.create_table(
        "project_stages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("target_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("collected_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_project_stages_project_id", "project_stages", ["project_id"])

    op.create_table(
        "donations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payment_method", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_donations_amount_non_negative"),
    )
    op.create_index(
        "ix_donations_organization_status_created", "donations", ["organization_id", "status", "created_at"]
    )
    op.create_index("ix_donations_project_id", "donations", ["project_id"])

    op.create_table(
        "organization_members",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("source", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_active_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_organization_members_organization_created", "organization_members", ["organization_id", "created_at"]
    )

    op.create_table(
        "organization_statistics",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("unique_visitors", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("unique_visitors >= 0", name="ck_organization_statistics_visitors_non_negative"),
    )
    op.create_index(
        "ix_organization_statistics_organization_created",
        "organization_statistics",
        ["organization_id", "created_at"],
    )

    op.create_table(
        "reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column(
            "project_stage_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("project_stages.id"), nullable=True
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("report_type", report_type, nullable=False),
        sa.Column("status", report_status, nullable=False),
        sa.Column("visibility", report_visibility, nullable=False),
        sa.Column("filters", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("summary", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("generated_at", sa.DateTime(), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reports_organization_created", "reports", ["organization_id", "created_at"])
    op.create_index("ix_reports_organization_type", "reports", ["organization_id", "report_type"])

    op.create_table(
        "report_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "report_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("reports.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False
        ),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"), nullable=True),
        sa.Column(
            "project_stage_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("project_stages.id"), nullable=True
        ),
        sa.Column("report_type", report_type, nullable=False),
        sa.Column("filters", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("summary", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("data", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("rows_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("generated_at", sa.DateTime(), nullable=False),
        sa.Column("generated_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint("rows_count >= 0", name="ck_report_runs_rows_count_non_negative"),
    )
    op.create_index("ix_report_runs_report_generated", "report_runs", ["report_id", "generated_at"])
    op.create_index(
        "ix_report_runs_organization_generated", "report_runs", ["organization_id", "generated_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_report_runs_organization_generated", table_name="report_runs")
    op.drop_index("ix_report_runs_report_generated", table_name="report_runs")
    op.drop_table("report_runs")

    op.drop_index("ix_reports_organization_type", table_name="reports")
    op.drop_index("ix_reports_organization_created", table_name="reports")
    op.drop_table("reports")

    op.drop_index("ix_organization_statistics_organization_created", table_name="organization_statistics")
    op.drop_table("organization_statistics")

    op.drop_index("ix_organization_members_organization_created", table_name="organization_members")
    op.drop_table("organization_members")

    op.drop_index("ix_donations_project_id", table_name="donations")
    op.drop_index("ix_donations_organization_status_created", table_name="donations")
    op.drop_table("donations")

    op.drop_index("ix_project_stages_project_id", table_name="project_stages")
    op.drop_table("project_stages")

    op.drop_index("ix_projects_organization_created", table_name="projects")
    op.drop_table("projects")

    op.drop_table("users")
    op.drop_table("organizations")

    report_visibility.drop(op.get_bind(), checkfirst=True)
    report_status.drop(op.get_bind(), checkfirst=True)
    report_type.drop(op.get_bind(), checkfirst=True)
