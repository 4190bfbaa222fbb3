"""
Travel Log Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() builds the database holder and the submission pipeline
       from one `Settings` object, then registers middleware, exception
       handlers, routes and the uploads mount.
Who:   uvicorn (`travel_log.main:app`), the `travel-log` console script,
       and the test suite (which passes its own Settings).

Application Layout:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌──────────┐ ┌──────────┐             │
    │  │  Req ID  │→│ Logging  │→│   CORS   │             │
    │  └──────────┘ └──────────┘ └──────────┘             │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐ ┌─────────────┐ ┌─────────────┐   │
    │  │POST /api/logs│ │GET /api/logs│ │ GET /health │   │
    │  └──────────────┘ └─────────────┘ └─────────────┘   │
    │  Static: /uploads/<name>                            │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   validate configuration, create the upload directory,
               create missing tables (when auto_create_schema is on).
    Shutdown:  dispose the database engine.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from travel_log import __version__
from travel_log.config import Settings, settings as default_settings
from travel_log.database import Database
from travel_log.error_handlers import register_exception_handlers
from travel_log.middleware.logging import RequestLoggingMiddleware
from travel_log.middleware.request_id import RequestIDMiddleware
from travel_log.routes import health, logs
from travel_log.services.pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(settings: Settings) -> None:
    """
    Configure root logging once for the whole process.

    Format: 2024-05-01T12:00:00 [INFO] travel_log.services.pipeline: message
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries are noisy at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    database: Database = app.state.database

    setup_logging(settings)
    logger.info("=" * 60)
    logger.info("Travel Log Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks and reads still work, writes get 401
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.upload_dir)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Upload directory: %s", storage.resolve())

    if settings.auto_create_schema:
        await database.create_all()

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Travel Log Backend shutting down...")
    await database.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration to use; defaults to the environment-loaded
                  module instance. Tests pass their own.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="Travel Log API",
        description=(
            "Backend for a map-based travel log. Submit visited places with "
            "coordinates, a visit date and an optional photo; list them back "
            "for display on a map."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = Database(settings)
    app.state.pipeline = SubmissionPipeline.from_settings(settings, app.state.database)

    # ── Middleware ────────────────────────────────────────────────────────
    # Executes in reverse order of addition: RequestID → Logging → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-KEY", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Exception Handlers ────────────────────────────────────────────────
    register_exception_handlers(app)

    # ── Routes ────────────────────────────────────────────────────────────
    app.include_router(logs.router)
    app.include_router(health.router)

    # StaticFiles checks the directory at construction time
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(
        settings.upload_url_prefix,
        StaticFiles(directory=str(upload_dir)),
        name="uploads",
    )

    return app


def run() -> None:
    """Console entry point (`travel-log`)."""
    uvicorn.run(
        "travel_log.main:app",
        host=default_settings.backend_host,
        port=default_settings.backend_port,
        # Client identity comes from the peer address; X-Forwarded-For is
        # only honoured for TRUSTED_PROXIES, inside the rate limiter.
        proxy_headers=False,
        log_config=None,
    )


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
