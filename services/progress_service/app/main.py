"""FastAPI application for the Progress Service."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from libs.common.middleware import add_observability_middleware
from services.progress_service.routers import (
    admin_router,
    internal_router,
    points_admin_router,
    points_router,
    progress_router,
    rankings_router,
)
from services.progress_service.services.errors import ProgressServiceError


def create_app() -> FastAPI:
    """Create and configure the Progress Service FastAPI app."""
    app = FastAPI(
        title="Pathfinder Progress Service",
        version="0.1.0",
        description="Requirement approvals, points ledger and rankings.",
    )
    add_observability_middleware(app)

    @app.exception_handler(ProgressServiceError)
    async def progress_error_handler(
        request: Request, exc: ProgressServiceError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": exc.code},
        )

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "progress"}

    # Member-facing routes
    app.include_router(progress_router)
    app.include_router(points_router)
    app.include_router(rankings_router)

    # Reviewer / admin routes
    app.include_router(admin_router)
    app.include_router(points_admin_router)

    # Internal service-to-service routes (not proxied by gateway)
    app.include_router(internal_router)

    return app


app = create_app()
