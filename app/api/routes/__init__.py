from __future__ import annotations

from app.api.routes.cafes import router as cafes_router
from app.api.routes.checkins import router as checkins_router
from app.api.routes.health import router as health_router

__all__ = ["cafes_router", "checkins_router", "health_router"]
