"""
Social Feed API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP) when enabled
  2. Open the document store (TiDB/SQL, or in-memory for local runs)
  3. Create tables if not present
  4. Wire the services onto app.state
  5. Expose Prometheus /metrics endpoint

Shutdown waits for in-flight notification tasks before closing the store.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from social_feed.config import Settings, settings as default_settings
from social_feed.database import build_engine, init_db
from social_feed.dependencies import Services
from social_feed.errors import AppError
from social_feed.routers import feed, notifications, threads, users
from social_feed.store.base import DocumentStore
from social_feed.store.memory import InMemoryDocumentStore
from social_feed.store.sql import SqlDocumentStore
from social_feed.telemetry import instrument_app, instrument_engine, setup_tracing

logging.basicConfig(
    level=default_settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _open_store(settings: Settings):
    """Return ``(store, engine)``; engine is None for the in-memory backend."""
    if settings.store_backend == "memory":
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore(), None
    engine = build_engine(settings.sqlalchemy_url)
    await init_db(engine)
    return SqlDocumentStore(engine), engine


def create_app(
    store: Optional[DocumentStore] = None, settings: Settings = default_settings
) -> FastAPI:
    """
    Build the application.

    Passing ``store`` skips backend selection and table creation; the
    services are wired immediately so the app can serve requests even
    without the lifespan running.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Social Feed API (env=%s)", settings.environment)
        if getattr(app.state, "services", None) is None:
            opened, engine = await _open_store(settings)
            app.state.services = Services.build(opened, settings)
            if settings.otel_enabled and engine is not None:
                instrument_engine(engine)
        logger.info("API ready.")
        yield

        logger.info("Shutting down...")
        services: Services = app.state.services
        await services.dispatcher.drain()
        await services.store.close()

    if settings.otel_enabled:
        # Before the app exists so every span has a provider
        setup_tracing(settings)

    app = FastAPI(
        title="Social Feed API",
        description="Threads, replies, follows, likes and notifications over a document store.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = Services.build(store, settings) if store is not None else None

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # ── Routers ────────────────────────────────────────────────────────────
    app.include_router(users.router, prefix="/users", tags=["Users"])
    app.include_router(threads.router, prefix="/threads", tags=["Threads"])
    app.include_router(feed.router, prefix="/feed", tags=["Feed"])
    app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

    # ── Prometheus metrics endpoint ────────────────────────────────────────
    app.mount("/metrics", make_asgi_app())

    # ── OTel FastAPI instrumentation ───────────────────────────────────────
    if settings.otel_enabled:
        instrument_app(app)

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.service_name}

    return app


app = create_app()
