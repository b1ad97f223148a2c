"""Postboard API: FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map PostboardError -> structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and collaborator clients initialized on startup via lifespan, closed on shutdown
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from postboard.api.error_handlers import register_error_handlers
from postboard.api.routes import health, posts, tags
from postboard.config import get_settings
from postboard.infrastructure.collaborators import close_collaborators, init_collaborators
from postboard.infrastructure.database import init_db
from postboard.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.database_create_schema:
        await manager.create_schema()
    init_collaborators(settings)
    logger.info("Postboard API started")
    yield
    logger.info("Postboard API shutting down")
    await close_collaborators()
    await manager.dispose()


app = FastAPI(
    title="Postboard API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(posts.router)
app.include_router(tags.router)

register_error_handlers(app)
