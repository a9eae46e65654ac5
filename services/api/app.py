"""
FastAPI application for the threshold lab.

Exposes stored farms, readings, alerts, thresholds, events and scoring
results, and wraps the CSV and Open-Meteo importers. Apart from imports the
API only reads; alerts, events and metrics come from the monitor service and
the experiment harness.

The store is either injected (tests, embedding) or opened from
configuration during the lifespan startup and closed on shutdown.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farmwatch.config.loader import load_config
from farmwatch.interfaces.stores import DataStore
from farmwatch.services import create_store
from farmwatch.storage.bootstrap import seed_from_config

logger = structlog.get_logger(__name__)


def create_app(store: Optional[DataStore] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Store to serve from. When omitted, one is opened from the
            configuration at CONFIG_PATH on startup.

    Example:
        >>> app = create_app(InMemoryStore())
        >>> uvicorn.run(app, host="0.0.0.0", port=8050)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("api_starting")
        owns_store = store is None

        if owns_store:
            config = load_config(os.getenv("CONFIG_PATH", "config"))
            app.state.store = await create_store(config)
            await seed_from_config(app.state.store, config)
        else:
            app.state.store = store

        app.state.start_time = datetime.now(timezone.utc)
        logger.info("api_ready", store=type(app.state.store).__name__)

        yield

        logger.info("api_shutting_down")
        if owns_store:
            try:
                await app.state.store.close()
            except Exception as e:
                logger.error("store_close_error", error=str(e))
        logger.info("api_shutdown_complete")

    app = FastAPI(
        title="FarmWatch Threshold Lab",
        description="Static vs adaptive threshold alerting for farm sensor telemetry",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Injected stores are usable without running the lifespan
    app.state.store = store
    app.state.start_time = datetime.now(timezone.utc)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from services.api.alerts import router as alerts_router
    from services.api.farms import router as farms_router
    from services.api.health import router as health_router
    from services.api.imports import router as imports_router
    from services.api.metrics import router as metrics_router
    from services.api.readings import router as readings_router

    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(farms_router, prefix="/api", tags=["Farms"])
    app.include_router(readings_router, prefix="/api", tags=["Readings"])
    app.include_router(alerts_router, prefix="/api", tags=["Alerts"])
    app.include_router(metrics_router, prefix="/api", tags=["Metrics"])
    app.include_router(imports_router, prefix="/api", tags=["Import"])

    logger.info("fastapi_app_created")
    return app
