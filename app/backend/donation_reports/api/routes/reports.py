"""Report definition, generation and run history endpoints."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from donation_reports.core.auth import get_current_user
from donation_reports.db.dependencies import get_db_session
from donation_reports.models.entities import ReportStatus, ReportType, ReportVisibility, User
from donation_reports.services.report_service import (
    Page,
    ReportCreateData,
    ReportListFilters,
    ReportService,
)

router = APIRouter(prefix="/organizations/{organization_id}", tags=["reports"])


class ReportCreatePayload(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    report_type: ReportType
    description: str | None = Field(default=None, max_length=2000)
    status: ReportStatus = ReportStatus.DRAFT
    visibility: ReportVisibility = ReportVisibility.PRIVATE
    filters: dict[str, Any] = Field(default_factory=dict)
    project_id: UUID | None = None
    project_stage_id: UUID | None = None


class ReportUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    report_type: ReportType | None = None
    description: str | None = Field(default=None, max_length=2000)
    status: ReportStatus | None = None
    visibility: ReportVisibility | None = None
    filters: dict[str, Any] | None = None
    project_id: UUID | None = None
    project_stage_id: UUID | None = None


class GenerateReportPayload(BaseModel):
    report_type: ReportType
    filters: dict[str, Any] = Field(default_factory=dict)
    project_id: UUID | None = None
    project_stage_id: UUID | None = None
    persist: bool = False
    report_id: UUID | None = None


def _service(db: Session) -> ReportService:
    return ReportService(db)


def _page(page: Page, items: list[dict[str, object]]) -> dict[str, object]:
    return {
        "items": items,
        "total": page.total,
        "page": page.page,
        "per_page": page.per_page,
        "last_page": page.last_page,
    }


@router.get("/reports")
def list_reports(
    organization_id: UUID,
    report_type: str | None = None,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    result = service.list_reports(
        organization,
        ReportListFilters(report_type=report_type, status=status_filter, search=search),
        page=page,
    )
    return _page(result, service.serialize_reports(result.items))


@router.post("/reports", status_code=status.HTTP_201_CREATED)
def create_report(
    organization_id: UUID,
    payload: ReportCreatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    report = service.create_report(
        organization,
        ReportCreateData(
            title=payload.title,
            report_type=payload.report_type,
            description=payload.description,
            status=payload.status,
            visibility=payload.visibility,
            filters=payload.filters,
            project_id=payload.project_id,
            project_stage_id=payload.project_stage_id,
        ),
        user,
    )
    return service.serialize_report_with_relations(report)


@router.post("/reports/generate")
def generate_report(
    organization_id: UUID,
    payload: GenerateReportPayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    result = service.generate_report(
        organization,
        payload.report_type,
        payload.filters,
        project_id=payload.project_id,
        project_stage_id=payload.project_stage_id,
        persist=payload.persist,
        report_id=payload.report_id,
        user=user,
    )
    return {
        "payload": result.payload.to_dict(),
        "run": service.serialize_run(result.run) if result.run is not None else None,
        "report": service.serialize_report_with_relations(result.report) if result.report is not None else None,
    }


@router.patch("/reports/{report_id}")
def update_report(
    organization_id: UUID,
    report_id: UUID,
    payload: ReportUpdatePayload,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    report = service.get_report(organization, report_id)
    report = service.update_report(report, payload.model_dump(exclude_unset=True), user)
    return service.serialize_report_with_relations(report)


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    organization_id: UUID,
    report_id: UUID,
    db: Session = Depends(get_db_session),
) -> Response:
    service = _service(db)
    organization = service.get_organization(organization_id)
    service.delete_report(service.get_report(organization, report_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/reports/{report_id}/runs")
def list_report_runs(
    organization_id: UUID,
    report_id: UUID,
    page: int = Query(default=1, ge=1),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    report = service.get_report(organization, report_id)
    result = service.list_report_runs(report, page=page)
    return _page(result, [service.serialize_run(run) for run in result.items])


@router.get("/report-runs/recent")
def list_recent_runs(
    organization_id: UUID,
    db: Session = Depends(get_db_session),
) -> dict[str, list[dict[str, object]]]:
    service = _service(db)
    organization = service.get_organization(organization_id)
    return {"items": [service.serialize_run(run) for run in service.recent_runs(organization)]}
