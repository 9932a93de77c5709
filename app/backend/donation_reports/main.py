"""FastAPI application entrypoint."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from donation_reports.api.router import api_router
from donation_reports.core.config import get_settings
from donation_reports.core.errors import DataStoreError, ExportRenderError, InvalidFilterError, NotFoundError
from donation_reports.core.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Filename"],
    )

    @app.exception_handler(InvalidFilterError)
    async def handle_invalid_filter(request: Request, exc: InvalidFilterError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": exc.detail})

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.detail})

    @app.exception_handler(DataStoreError)
    async def handle_data_store_error(request: Request, exc: DataStoreError) -> JSONResponse:
        logger.error("Data store failure on %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": exc.detail})

    @app.exception_handler(ExportRenderError)
    async def handle_export_render_error(request: Request, exc: ExportRenderError) -> JSONResponse:
        logger.error("Export rendering failed on %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": exc.detail})

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["system"])
    def root() -> dict[str, str]:
        return {"service": settings.app_name, "status": "running"}

    return app


app = create_app()
