"""FX Replay - FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import asyncpg
import structlog
from fastapi import FastAPI

from fxreplay import __version__
from fxreplay.config import get_settings
from fxreplay.routers import backtests, health

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

settings = get_settings()
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Global clients
_db_pool: Optional[asyncpg.Pool] = None


async def _init_database(settings) -> Optional[asyncpg.Pool]:
    """Create the trade-history pool. Returns None when persistence is off or unreachable."""
    if not settings.database_url:
        logger.info("DATABASE_URL not set; backtest persistence disabled")
        return None

    try:
        pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            timeout=10,  # don't block startup on an unreachable DB
            command_timeout=30,
        )
    except Exception as e:
        logger.error(
            "Failed to initialize database pool - persistence will be unavailable",
            error=str(e),
        )
        return None

    logger.info(
        "Database pool initialized",
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    backtests.set_db_pool(pool)
    return pool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _db_pool

    logger.info(
        "Starting FX Replay Service",
        version=__version__,
        host=settings.service_host,
        port=settings.service_port,
        max_workers=settings.backtest_max_workers,
    )
    _db_pool = await _init_database(settings)

    yield

    if _db_pool is not None:
        await _db_pool.close()
        backtests.set_db_pool(None)
        logger.info("Database pool closed")
    logger.info("FX Replay Service stopped")


app = FastAPI(
    title="FX Replay",
    description="Deterministic FX trade-replay backtest engine",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(backtests.router)
