"""Application lifespan: startup and shutdown.

Single place for all startup/shutdown logic. Used by main.py; no business
logic here, only wiring of infrastructure (shared HTTP client, cache,
telemetry, schema creation, DB engine dispose).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
from fastapi import FastAPI

from control_plane.core.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def create_lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run startup then yield; on exit run shutdown.

    Startup order: shared HTTP client, Redis cache (if enabled), telemetry
    (if enabled), schema creation (if enabled). Shutdown order: shared HTTP
    client close, cache disconnect, telemetry shutdown, SQL engine dispose.
    """
    settings = get_settings()

    # ---- Startup ----
    # Shared HTTP client for identity-provider calls (connection reuse).
    app.state.identity_http_client = httpx.AsyncClient(
        timeout=settings.identity_timeout_seconds
    )

    if settings.redis_enabled:
        from control_plane.infrastructure.cache.redis_cache import CacheService

        cache = CacheService()
        await cache.connect()
        app.state.cache = cache
    else:
        app.state.cache = None

    if settings.telemetry_enabled:
        from control_plane.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

        telemetry = TelemetryConfig(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=True,
            environment=settings.telemetry_environment,
        )
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        telemetry.instrument_fastapi(app)
        if app.state.cache is not None:
            telemetry.instrument_redis()
        logger.info("Telemetry initialized")

    if settings.database_backend == "postgres" and settings.database_create_schema:
        from control_plane.infrastructure.persistence.database import create_schema

        await create_schema()

    yield

    # ---- Shutdown ----
    if getattr(app.state, "identity_http_client", None) is not None:
        await app.state.identity_http_client.aclose()
        app.state.identity_http_client = None
        logger.info("Identity HTTP client closed")

    if getattr(app.state, "cache", None) is not None:
        await app.state.cache.disconnect()
        logger.info("Cache disconnected")

    from control_plane.shared.telemetry.telemetry import get_telemetry

    telemetry_instance = get_telemetry()
    if telemetry_instance is not None:
        telemetry_instance.shutdown()
        logger.info("Telemetry shutdown complete")

    from control_plane.infrastructure.persistence import database

    await database.dispose()
