"""Application factory for the FastAPI app.

Centralizes app construction (limiter, middleware, handlers, routers) so tests
can build an app around their own store or limiter.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis

from sliding_limiter.adapters.rate_limit.base import WindowStore
from sliding_limiter.adapters.rate_limit.in_memory import InMemoryWindowStore
from sliding_limiter.adapters.rate_limit.redis_store import RedisWindowStore
from sliding_limiter.api.routes import health_router, limited_router
from sliding_limiter.core.config import RateLimitSettings, RedisSettings, Settings, settings
from sliding_limiter.core.exception_handlers import setup_exception_handlers
from sliding_limiter.core.logging import configure_logging
from sliding_limiter.core.middleware import request_id_middleware
from sliding_limiter.core.openapi import apply_openapi_customizations
from sliding_limiter.services.identifiers import resolver_from_name
from sliding_limiter.services.observer import observer_from_name
from sliding_limiter.services.rate_limiter import (
    Consistency,
    FailurePolicy,
    RateLimiter,
    RateLimiterConfig,
)

logger = logging.getLogger(__name__)


def build_store(rate_limit: RateLimitSettings, redis_settings: RedisSettings) -> WindowStore:
    """Instantiate the configured window store backend.

    The Redis client connects lazily, so building it never blocks startup;
    an unreachable server surfaces per request through the failure policy.
    """
    if rate_limit.backend == "redis":
        client = Redis.from_url(
            redis_settings.url,
            socket_timeout=redis_settings.socket_timeout_seconds,
            socket_connect_timeout=redis_settings.socket_timeout_seconds,
        )
        logger.info("rate limiter configured for redis backend", extra={"key_prefix": rate_limit.key_prefix})
        return RedisWindowStore(client, key_prefix=rate_limit.key_prefix)

    logger.info("rate limiter using in-memory backend")
    return InMemoryWindowStore()


def build_limiter(rate_limit: RateLimitSettings, store: WindowStore) -> RateLimiter:
    """Build an immutable limiter from validated settings."""
    config = RateLimiterConfig(
        time_window=rate_limit.time_window,
        max_requests=rate_limit.max_requests,
        identifier=resolver_from_name(
            rate_limit.identifier,
            header_name=rate_limit.identifier_header,
        ),
        deny_undefined_identifier=rate_limit.deny_undefined_identifier,
        enable_logging=rate_limit.enable_logging,
        observer=observer_from_name(rate_limit.denial_sink),
        failure_policy=FailurePolicy(rate_limit.failure_policy),
        consistency=Consistency(rate_limit.consistency),
    )
    return RateLimiter(store, config)


def create_app(
    app_settings: Settings | None = None,
    *,
    limiter: RateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the global settings.
        limiter: Prebuilt limiter; when omitted one is built from settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.

    Raises:
        ConfigurationAppError: If the limiter configuration is invalid.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    if limiter is None and cfg.rate_limit.enabled:
        limiter = build_limiter(cfg.rate_limit, build_store(cfg.rate_limit, cfg.redis))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            if limiter is not None:
                await limiter.store.close()

    app = FastAPI(
        title="Sliding Window Limiter",
        description=(
            "Admission control for HTTP APIs using a sliding-window log per "
            "client key. Requests beyond the per-window limit receive 429; "
            "requests with no resolvable client identity receive 403."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiter = limiter
    app.state.rate_limit_include_headers = cfg.rate_limit.include_headers

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(limited_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
