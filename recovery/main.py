"""FindMyTreasure Recovery API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware, and
registers all API route modules under the /api/v1 prefix.

Run with::

    uvicorn recovery.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recovery.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Configure root logging from ``settings.log_level``.
      - Create any missing tables when ``db_auto_create`` is enabled.

    Shutdown:
      - Dispose of the database connection pool.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from recovery.api.deps import engine
    from recovery.models import Base

    if settings.db_auto_create:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified")

    yield

    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------
# Each router defines its own prefix (e.g. /jobs, /payments) and tags. They
# are mounted under the shared /api/v1 prefix.
# ---------------------------------------------------------------------------

from recovery.api.routes import jobs, payments, pricing  # noqa: E402

_prefix = settings.api_v1_prefix

app.include_router(jobs.router, prefix=_prefix)
app.include_router(pricing.router, prefix=_prefix)
app.include_router(payments.router, prefix=_prefix)
