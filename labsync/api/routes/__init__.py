from __future__ import annotations

from labsync.api.routes.health import router as health_router
from labsync.api.routes.labs import router as labs_router
from labsync.api.routes.preflight import router as preflight_router
from labsync.api.routes.projects import router as projects_router
from labsync.api.routes.versions import router as versions_router

__all__ = [
    "health_router",
    "labs_router",
    "preflight_router",
    "projects_router",
    "versions_router",
]
