"""Report type catalog."""

from fastapi import APIRouter

from donation_reports.services.report_service import ReportService

router = APIRouter(tags=["reports"])


@router.get("/report-types")
def list_report_types() -> dict[str, list[dict[str, object]]]:
    return {"items": ReportService.list_report_definitions()}
