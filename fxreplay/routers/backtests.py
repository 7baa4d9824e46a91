"""Backtest API endpoints."""

import asyncio
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from fxreplay.config import Settings, get_settings
from fxreplay.services.backtest.runner import coerce_config, result_to_dict, run_backtest
from fxreplay.services.backtest.types import BacktestConfigError

router = APIRouter(prefix="/backtests", tags=["backtests"])
logger = structlog.get_logger(__name__)

# Global connection pool (set during app startup)
_db_pool = None


def set_db_pool(pool):
    """Set the database pool for this router."""
    global _db_pool
    _db_pool = pool


def _get_repo():
    """Get the trades repository, or 503 when no database is wired up."""
    from fxreplay.repositories.backtest_trades import BacktestTradesRepository

    if _db_pool is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection not available",
        )
    return BacktestTradesRepository(_db_pool)


# ===========================================
# Request/Response Models
# ===========================================


class BacktestRunRequest(BaseModel):
    """Run request. `config` is validated by the engine, not here."""

    config: dict[str, Any] = Field(..., description="Backtest configuration")
    persist: bool = Field(default=False, description="Write trades to the trade-history store")


class PersistSummary(BaseModel):
    inserted: int
    skipped: int = 0
    errors: int
    error_messages: list[str] = Field(default_factory=list)


class BacktestRunResponse(BaseModel):
    """Trades, summary and any warnings from one run."""

    trades: list[dict[str, Any]] = Field(..., description="Closed trades, sorted by entry time")
    summary: dict[str, Any] = Field(..., description="Aggregate statistics")
    warnings: list[str] = Field(default_factory=list)
    skipped_instruments: list[str] = Field(default_factory=list)
    cancelled: bool = False
    persisted: Optional[PersistSummary] = Field(
        None, description="Persistence outcome when persist=true and a database is available"
    )


class ClearVariantResponse(BaseModel):
    variant_id: str
    agent_id: Optional[str] = None
    deleted: int


class BacktestError(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


# ===========================================
# Endpoints
# ===========================================


@router.post(
    "/run",
    response_model=BacktestRunResponse,
    responses={
        200: {"description": "Backtest completed"},
        422: {"description": "Invalid configuration", "model": BacktestError},
    },
    summary="Run a trade-replay backtest",
)
async def run_backtest_endpoint(
    request: BacktestRunRequest,
    settings: Settings = Depends(get_settings),
):
    """
    Replay the configured instruments and return trades plus summary.

    The walk runs in a worker thread. Persistence is best-effort: when the
    database is unavailable the results are still returned, with a warning.
    """
    try:
        config = coerce_config(request.config)
    except BacktestConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": e.code, "message": e.message, "details": e.details},
        )

    logger.info(
        "Backtest run requested",
        instruments=config.instruments,
        variant_id=config.variant_id,
        agent_id=config.agent_label,
        persist=request.persist,
    )

    result = await asyncio.to_thread(
        run_backtest, config, max_workers=settings.backtest_max_workers
    )
    payload = result_to_dict(result)

    persisted = None
    if request.persist:
        if _db_pool is None:
            logger.warning("Persistence requested but database unavailable")
            payload["warnings"].append("Persistence skipped: database connection not available")
        else:
            repo = _get_repo()
            persist_result = await repo.insert_trades(
                result.trades, chunk_size=settings.persist_chunk_size
            )
            persisted = PersistSummary(
                inserted=persist_result.inserted,
                skipped=persist_result.skipped,
                errors=persist_result.errors,
                error_messages=persist_result.error_messages,
            )

    return BacktestRunResponse(**payload, persisted=persisted)


@router.delete(
    "/variants/{variant_id}",
    response_model=ClearVariantResponse,
    responses={503: {"description": "Database unavailable"}},
    summary="Clear persisted backtest trades for a variant",
)
async def clear_variant(
    variant_id: str,
    agent_id: Optional[str] = Query(None, description="Only clear this agent's trades"),
):
    """Delete a variant's backtest rows. Safe to repeat."""
    repo = _get_repo()
    deleted = await repo.clear_variant(variant_id, agent_id=agent_id)
    return ClearVariantResponse(variant_id=variant_id, agent_id=agent_id, deleted=deleted)
