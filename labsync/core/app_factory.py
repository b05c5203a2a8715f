from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (collaborators, middleware, handlers, routers) so
tests can build isolated apps from their own Settings. Every collaborator the
request pipeline needs is created here and stored on ``app.state``; nothing is
a module-level singleton.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from labsync.adapters.persistence.base import Lab
from labsync.adapters.persistence.in_memory import (
    InMemoryLabMemberRepository,
    InMemoryLabRegistry,
    InMemoryProjectRepository,
)
from labsync.adapters.rate_limit.base import AbstractRateLimitStore
from labsync.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from labsync.api.routes import (
    health_router,
    labs_router,
    preflight_router,
    projects_router,
    versions_router,
)
from labsync.core.auth import ApiKeyAuthProvider
from labsync.core.config import Settings, settings
from labsync.core.error_normalizer import ErrorNormalizer
from labsync.core.exception_handlers import setup_exception_handlers
from labsync.core.logging import configure_logging
from labsync.core.middleware import request_logging_middleware
from labsync.core.openapi import apply_openapi_customizations
from labsync.core.pipeline import ApiPipeline
from labsync.core.rate_limit import RateLimiter, RateLimitPolicy
from labsync.core.versioning import VersionNegotiator
from labsync.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)

DEMO_LABS = (
    Lab(id="riccc", name="Rush Institute for Clinical Care and Community"),
    Lab(id="health-equity", name="Health Equity Lab"),
)


def create_app(
    app_settings: Settings | None = None,
    *,
    rate_limit_store: AbstractRateLimitStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from (defaults to the global settings).
        rate_limit_store: Store override, e.g. one driven by a fake clock.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    app_settings = app_settings or settings
    api = app_settings.api

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(app_settings.log, app_env=app_settings.app_env)

    if rate_limit_store is not None:
        store = rate_limit_store
    else:
        store = InMemoryRateLimitStore(
            sweep_interval_seconds=api.rate_limit_sweep_interval_seconds
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init()
        logger.info("app.startup", extra={"app_env": app_settings.app_env})
        try:
            yield
        finally:
            removed = store.sweep()
            store.close()
            logger.info("app.shutdown", extra={"rate_limit_entries_swept": removed})

    app = FastAPI(
        title="LabSync API",
        description=(
            "Research lab coordination API. Every /api route runs through one "
            "request pipeline: CORS, per-operation rate limiting, API key "
            "authentication, version negotiation (v1 deprecated, v2 current) and "
            "a uniform success/error envelope with trace ids."
        ),
        version="0.1.0",
        debug=api.debug,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    labs = InMemoryLabRegistry(list(DEMO_LABS))
    normalizer = ErrorNormalizer(production=app_settings.is_production)
    limiter = RateLimiter(store, RateLimitPolicy.from_settings(api))

    app.state.settings = app_settings
    app.state.rate_limit_store = store
    app.state.error_normalizer = normalizer
    app.state.lab_registry = labs
    app.state.project_repository = InMemoryProjectRepository(labs)
    app.state.lab_member_repository = InMemoryLabMemberRepository(labs)
    app.state.response_cache = SimpleTTLCache(
        ttl_seconds=api.response_cache_ttl_seconds,
        max_entries=api.response_cache_max_entries,
    )
    app.state.pipeline = ApiPipeline(
        limiter=limiter,
        negotiator=VersionNegotiator(vendor=api.vendor_media_name),
        normalizer=normalizer,
        auth_provider=ApiKeyAuthProvider(api),
        api_settings=api,
    )

    # Middleware
    app.middleware("http")(request_logging_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers: explicit versions plus an unversioned prefix negotiated from headers
    for prefix in ("/api/v1", "/api/v2", "/api"):
        app.include_router(projects_router, prefix=prefix)
        app.include_router(labs_router, prefix=prefix)
    app.include_router(versions_router, prefix="/api")
    # Last, so only OPTIONS requests no other route accepts land here
    app.include_router(preflight_router, prefix="/api")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
