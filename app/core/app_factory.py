"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build a fresh instance.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.api.routes import cafes_router, checkins_router, health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Cafe Finder API",
        description=(
            "Finds cafés near a coordinate. Results come from a geo-bucketed "
            "cache in front of Google Places; buckets are keyed by rounded "
            "coordinates and clamped radius and expire after a configurable TTL. "
            "Routes are rate limited per client."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(cafes_router, prefix="/v1")
    app.include_router(checkins_router, prefix="/v1")
    app.include_router(health_router)

    return app
