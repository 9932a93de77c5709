"""Top-level API router."""

from fastapi import APIRouter

from donation_reports.api.routes.exports import router as exports_router
from donation_reports.api.routes.health import router as health_router
from donation_reports.api.routes.report_types import router as report_types_router
from donation_reports.api.routes.reports import router as reports_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(report_types_router)
api_router.include_router(reports_router)
api_router.include_router(exports_router)
