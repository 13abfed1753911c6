"""
Status API routes - Liveness and readiness checks.

Public endpoints (no auth).
"""

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from chatapp.db.session import get_db
from chatapp.models.api import HealthResponse

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["status"])

_started_at = time.monotonic()


def uptime_seconds() -> float:
    """Seconds since this module was imported."""
    return time.monotonic() - _started_at


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness check; does not touch the database."""
    return HealthResponse(
        status="OK",
        timestamp=datetime.now(UTC).isoformat(),
        uptime=uptime_seconds(),
    )


@router.get("/health/ready", response_model=HealthResponse)
async def readiness(db: AsyncSession = Depends(get_db)) -> HealthResponse | JSONResponse:
    """Readiness check; 503 when PostgreSQL is unreachable."""
    timestamp = datetime.now(UTC).isoformat()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "UNAVAILABLE", "timestamp": timestamp, "uptime": uptime_seconds()},
        )

    return HealthResponse(status="OK", timestamp=timestamp, uptime=uptime_seconds())
