"""HealthSync API — FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import Settings, get_settings
from src.ingest.audit import IngestAuditor
from src.ingest.orchestrator import IngestionOrchestrator
from src.routers import health, upload
from src.services.identity import IdentityResolver
from src.services.postgres import PostgresSampleStore, create_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("healthsync")


# ---------- Lifespan ----------

def build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup / shutdown hooks."""
        logging.getLogger("healthsync").setLevel(settings.log_level.upper())
        logger.info(
            "Starting HealthSync API v%s [%s]",
            settings.app_version,
            settings.environment,
        )
        pool = await create_pool(settings)
        store = PostgresSampleStore(pool)
        await store.ensure_schema()
        try:
            await store.purge_expired_claims(timedelta(days=settings.claim_retention_days))
        except Exception as exc:
            logger.warning("Claim expiry sweep failed: %s", exc)

        app.state.store = store
        app.state.identity = IdentityResolver(settings, keys=store)
        app.state.orchestrator = IngestionOrchestrator.from_settings(
            store, IngestAuditor(store), settings
        )
        yield
        await pool.close()
        logger.info("HealthSync API shut down")

    return lifespan


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Idempotent ingestion of Apple Health Shortcut uploads.",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=build_lifespan(settings),
        debug=settings.debug,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["POST", "OPTIONS", "GET"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(upload.router, prefix="/api/v1")

    return app


app = create_app()
