"""HERA Universal Core API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map HeraError -> {error, detail?} envelopes
    - CORS configured from settings (not hardcoded)
    - Security headers on every response, errors included
    - Database initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import hera_core.infrastructure.database as db_module
from hera_core.api.error_handlers import register_error_handlers
from hera_core.api.middleware import SecurityHeadersMiddleware
from hera_core.api.routes import entities, health, resources
from hera_core.config import get_settings
from hera_core.infrastructure.database import init_db
from hera_core.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("HERA core API started")
    yield
    if db_module.db_manager:
        await db_module.db_manager.close()
    logger.info("HERA core API shutting down")


app = FastAPI(
    title="HERA Universal Core API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(resources.router)
app.include_router(entities.router)

register_error_handlers(app)
