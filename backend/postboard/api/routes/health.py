"""Health Probes: process liveness and database readiness.

Invariants:
    - /health/ answers 200 whenever the process can serve requests
    - /health/ready answers 503 until init_db() ran and the database answers
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

import postboard.infrastructure.database as database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE = "postboard-api"


@router.get("/")
async def liveness():
    return {"status": "healthy", "service": SERVICE, "version": "1.0.0"}


@router.get("/ready")
async def readiness():
    """Database round trip; collaborators are not probed."""
    manager = database.db_manager
    if manager is not None and await manager.health_check():
        return {"status": "ready", "checks": {"database": "healthy"}}
    logger.warning("Readiness probe failed: database unavailable")
    return JSONResponse(
        status_code=503,
        content={"status": "not_ready", "checks": {"database": "unavailable"}},
    )
