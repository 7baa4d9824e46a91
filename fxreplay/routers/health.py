"""Health check endpoint."""

import time
from typing import Optional

import structlog
from fastapi import APIRouter
from pydantic import BaseModel, Field

from fxreplay import __version__
from fxreplay.routers import backtests

router = APIRouter()
logger = structlog.get_logger(__name__)


class DependencyHealth(BaseModel):
    """Health status for a dependency."""

    status: str = Field(..., description="Dependency status (ok/error/disabled)")
    latency_ms: Optional[float] = Field(None, description="Response latency in ms")
    error: Optional[str] = Field(None, description="Error message if unhealthy")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Overall service status")
    database: DependencyHealth = Field(..., description="Trade-history store health")
    version: str = Field(..., description="Service version")


async def check_database_health(pool) -> DependencyHealth:
    """Ping the trade-history store. Persistence is optional, so no pool is not an error."""
    if pool is None:
        return DependencyHealth(status="disabled")
    start = time.perf_counter()
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return DependencyHealth(status="ok", latency_ms=(time.perf_counter() - start) * 1000)
    except Exception as e:
        latency = (time.perf_counter() - start) * 1000
        return DependencyHealth(status="error", latency_ms=latency, error=str(e))


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Service health. The engine itself has no dependencies; only the store is probed."""
    database = await check_database_health(backtests._db_pool)
    overall = "degraded" if database.status == "error" else "ok"
    logger.info("Health check completed", status=overall, database=database.status)
    return HealthResponse(status=overall, database=database, version=__version__)
