"""Progress service routers."""

from services.progress_service.routers.admin import router as admin_router
from services.progress_service.routers.internal import router as internal_router
from services.progress_service.routers.points import admin_router as points_admin_router
from services.progress_service.routers.points import router as points_router
from services.progress_service.routers.progress import router as progress_router
from services.progress_service.routers.rankings import router as rankings_router

__all__ = [
    "admin_router",
    "internal_router",
    "points_admin_router",
    "points_router",
    "progress_router",
    "rankings_router",
]
