"""Backtest trades repository: writes replayed trades into the trade-history store."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import structlog

from fxreplay.services.backtest.types import TradeRecord

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 50

# Postgres bind-parameter limit per statement
_MAX_BIND_PARAMS = 32767

_COLUMNS = (
    "id",
    "signal_id",
    "currency_pair",
    "direction",
    "units",
    "entry_price",
    "exit_price",
    "pnl_pips",
    "entry_timestamp",
    "exit_timestamp",
    "duration_minutes",
    "session_label",
    "regime_label",
    "spread_at_entry",
    "slippage_pips",
    "friction_score",
    "execution_quality_score",
    "governance_composite",
    "gates_triggered",
    "governance_decision",
    "direction_bias",
    "direction_confidence",
    "direction_tf_used",
    "confirmation_tf_used",
    "variant_id",
    "agent_id",
    "environment",
    "status",
    "mfe_pips",
    "mae_pips",
    "capture_ratio",
    "r_multiple",
    "outcome",
    "metadata",
)


def _insert_query(row_count: int) -> str:
    """Multi-row insert that returns only the ids actually written."""
    width = len(_COLUMNS)
    values = ", ".join(
        "(" + ", ".join(f"${r * width + c + 1}" for c in range(width)) + ")"
        for r in range(row_count)
    )
    return f"""
        INSERT INTO trade_history ({", ".join(_COLUMNS)})
        VALUES {values}
        ON CONFLICT (id) DO NOTHING
        RETURNING id
    """


@dataclass
class PersistResult:
    """
    Outcome of a chunked insert. Failed chunks are counted, not raised.

    inserted counts rows that landed; skipped counts rows whose id already
    existed (re-persisting a variant skips every row).
    """

    inserted: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)


def trade_to_row(trade: TradeRecord) -> tuple[Any, ...]:
    """Map a TradeRecord onto the trade-history columns, in _COLUMNS order."""
    gov = trade.governance
    friction = trade.friction
    metadata = {
        "decision_index": trade.decision_index,
        "decision_ts": trade.decision_ts.isoformat(),
        "mid_price": trade.mid_price,
        "take_profit_price": trade.take_profit_price,
        "stop_loss_price": trade.stop_loss_price,
        "exit_reason": trade.exit_phase.value,
        "duration_bars": trade.duration_bars,
        "friction": friction.to_dict(),
        "multipliers": dict(gov.multipliers),
        "friction_ratio": gov.friction_ratio,
    }
    return (
        trade.trade_id,
        trade.trade_id,
        trade.instrument,
        trade.side.value,
        trade.units,
        trade.entry_price,
        trade.exit_price,
        trade.pnl_pips,
        trade.entry_ts,
        trade.exit_ts,
        trade.duration_minutes,
        trade.session.value,
        trade.regime.value,
        friction.spread.spread_price,
        friction.slippage.slippage_pips,
        trade.execution_quality_score,
        trade.execution_quality_score,
        gov.composite,
        [g.value for g in gov.gates],
        gov.decision.value,
        trade.direction.bias.value,
        trade.direction.confidence,
        trade.direction.tf_used.value if trade.direction.tf_used else None,
        "15m",
        trade.variant_id,
        trade.agent_id,
        "backtest",
        "closed",
        trade.mfe_pips,
        trade.mae_pips,
        trade.capture_ratio,
        trade.r_multiple,
        trade.outcome.value,
        json.dumps(metadata),
    )


class BacktestTradesRepository:
    """
    Repository for backtest rows in the trade-history store.

    Rows are tagged environment='backtest' so they never mix with live or
    practice fills. Inserts are chunked; a failing chunk is logged and
    counted while the remaining chunks still go through.
    """

    def __init__(self, pool):
        """Initialize repository with asyncpg pool."""
        self.pool = pool

    async def insert_trades(
        self, trades: Sequence[TradeRecord], chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> PersistResult:
        """Insert trades chunk by chunk. Never raises for a failed chunk."""
        max_chunk = _MAX_BIND_PARAMS // len(_COLUMNS)
        if not 1 <= chunk_size <= max_chunk:
            raise ValueError(f"chunk_size must be in [1, {max_chunk}], got {chunk_size}")

        result = PersistResult()
        if not trades:
            return result

        for chunk_index, offset in enumerate(range(0, len(trades), chunk_size)):
            chunk = trades[offset : offset + chunk_size]
            args = [value for t in chunk for value in trade_to_row(t)]
            try:
                async with self.pool.acquire() as conn:
                    written = await conn.fetch(_insert_query(len(chunk)), *args)
            except Exception as e:
                result.errors += len(chunk)
                result.error_messages.append(f"chunk {chunk_index}: {e}")
                logger.warning(
                    "Backtest trade chunk failed",
                    chunk_index=chunk_index,
                    chunk_size=len(chunk),
                    error=str(e),
                )
                continue
            result.inserted += len(written)
            result.skipped += len(chunk) - len(written)

        logger.info(
            "Backtest trades persisted",
            inserted=result.inserted,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result

    async def clear_variant(self, variant_id: str, agent_id: Optional[str] = None) -> int:
        """
        Delete backtest rows for a variant (optionally one agent).

        Idempotent: clearing an already-empty variant returns 0.
        """
        query = """
            DELETE FROM trade_history
            WHERE environment = 'backtest' AND variant_id = $1
        """
        params: list[Any] = [variant_id]
        if agent_id is not None:
            query += " AND agent_id = $2"
            params.append(agent_id)

        async with self.pool.acquire() as conn:
            result = await conn.execute(query, *params)

        # Parse "DELETE N" result
        count = int(result.split()[-1]) if result else 0
        logger.info(
            "Backtest variant cleared",
            variant_id=variant_id,
            agent_id=agent_id,
            deleted=count,
        )
        return count
