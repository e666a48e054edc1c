"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that loads form definitions, picks the persistence
    gateway and creates the workflow manager once
  - CORS middleware
  - Global exception handlers (SDK error taxonomy → 400/403/404/409/422/503)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``intake-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from intake_db.engine import dispose_engine, get_engine
from intake_db.gateway import DatabaseGateway
from intake_workflow.gateways import HttpPersistenceGateway
from intake_workflow.interfaces import PersistenceGateway
from intake_workflow.schemas import FormSchemaStore

from intake_server.config import ServerSettings, load_settings
from intake_server.errors import register_error_handlers
from intake_server.manager import WorkflowManager
from intake_server.routes import register_routes

logger = logging.getLogger(__name__)


def build_gateway(settings: ServerSettings, store: FormSchemaStore) -> PersistenceGateway:
    """HTTP gateway when ``PERSISTENCE_BASE_URL`` is set, else the local database."""
    if settings.persistence_base_url:
        logger.info("Using hosted persistence backend at %s", settings.persistence_base_url)
        return HttpPersistenceGateway(
            settings.persistence_base_url,
            api_key=settings.persistence_api_key,
        )
    logger.info("Using database persistence")
    return DatabaseGateway(display_names=store.required_forms)


# ------------------------------------------------------------------
# Lifespan: runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Load YAML form definitions into a ``FormSchemaStore``
      2. Build the persistence gateway (unless one was injected on
         ``app.state.gateway`` before startup)
      3. Create the ``WorkflowManager`` and stash everything on ``app.state``

    Shutdown:
      1. Release every open workflow's capture slots
      2. Close the HTTP client / dispose the database engine's pool
    """
    settings: ServerSettings = app.state.settings

    # --- Load forms ---
    store = FormSchemaStore(forms_dir=settings.forms_dir)
    store.load()

    gateway = getattr(app.state, "gateway", None) or build_gateway(settings, store)
    manager = WorkflowManager(
        store, gateway, idle_minutes=settings.workflow_idle_minutes,
    )

    app.state.store = store
    app.state.gateway = gateway
    app.state.manager = manager

    yield

    # --- Shutdown ---
    manager.close_all()
    if isinstance(gateway, HttpPersistenceGateway):
        await gateway.aclose()
    if isinstance(gateway, DatabaseGateway):
        await dispose_engine()
        logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Intake API Server",
        description="REST API for the clinic intake workflow engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — verifies DB connectivity when the database backs storage."""
        if not isinstance(app.state.gateway, DatabaseGateway):
            return {"status": "ok", "backend": "http"}
        try:
            engine = get_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok", "backend": "database"}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "backend": "database"}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn intake_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``intake-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "intake_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
