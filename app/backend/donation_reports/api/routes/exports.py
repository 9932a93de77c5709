"""Export endpoint for generated report payloads."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from donation_reports.db.dependencies import get_db_session
from donation_reports.models.entities import ReportType
from donation_reports.services.report_service import ReportService

router = APIRouter(prefix="/organizations/{organization_id}", tags=["exports"])


class ExportDataPayload(BaseModel):
    title: str | None = None
    data: Any = None
    filters: dict[str, Any] = Field(default_factory=dict)
    summary: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)
    generated_at: str | None = None


class ExportReportPayload(BaseModel):
    report_type: ReportType
    format: str = Field(default="csv", min_length=1, max_length=16)
    filename: str | None = Field(default=None, max_length=255)
    payload: ExportDataPayload


def _service(db: Session) -> ReportService:
    return ReportService(db)


@router.post("/reports/export")
def export_report(
    organization_id: UUID,
    payload: ExportReportPayload,
    db: Session = Depends(get_db_session),
) -> Response:
    service = _service(db)
    service.get_organization(organization_id)
    exported = service.export(
        payload.report_type,
        payload.payload.model_dump(),
        payload.format,
        payload.filename,
    )
    headers = {key: value for key, value in exported.headers.items() if key != "Content-Type"}
    return Response(
        content=exported.content,
        status_code=exported.status_code,
        media_type=exported.media_type,
        headers=headers,
    )
