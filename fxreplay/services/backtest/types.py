"""Enums, dataclasses, and configuration for the trade-replay engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fxreplay.utils.instruments import is_valid_symbol
from fxreplay.utils.time import ensure_utc


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Timeframe(Enum):
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"

    @property
    def minutes(self) -> int:
        return _TIMEFRAME_MINUTES[self]


_TIMEFRAME_MINUTES = {
    Timeframe.M15: 15,
    Timeframe.H1: 60,
    Timeframe.H4: 240,
    Timeframe.D1: 1440,
}

BASE_TIMEFRAME = Timeframe.M15


class Side(Enum):
    LONG = "long"
    SHORT = "short"


class Bias(Enum):
    NEUTRAL = "neutral"
    BULLISH = "bullish"
    BEARISH = "bearish"

    def to_side(self) -> Optional[Side]:
        if self is Bias.BULLISH:
            return Side.LONG
        if self is Bias.BEARISH:
            return Side.SHORT
        return None


class Session(Enum):
    ROLLOVER = "rollover"
    ASIAN = "asian"
    LONDON_OPEN = "london-open"
    NY_OVERLAP = "ny-overlap"
    LATE_NY = "late-ny"


class Regime(Enum):
    COMPRESSION = "compression"
    EXPANSION = "expansion"
    IGNITION = "ignition"
    EXHAUSTION = "exhaustion"


class GateId(Enum):
    FRICTION = "G1_FRICTION"
    NO_HTF_WEAK_MTF = "G2_NO_HTF_WEAK_MTF"
    SPREAD_INSTABILITY = "G4_SPREAD_INSTABILITY"
    ROLLOVER_SESSION = "G5_ROLLOVER_SESSION"


class Decision(Enum):
    APPROVED = "approved"
    THROTTLED = "throttled"
    REJECTED = "rejected"


class Outcome(Enum):
    WIN = "win"
    LOSS = "loss"


class LifecyclePhase(Enum):
    """Trade lifecycle states. CLOSED_* are terminal."""

    SCANNING = "scanning"
    PENDING_ENTRY = "pending_entry"
    OPEN = "open"
    CLOSED_TP = "closed_tp"
    CLOSED_SL = "closed_sl"
    CLOSED_TIME = "closed_time"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES

    def can_transition_to(self, target: LifecyclePhase) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]


_TERMINAL_PHASES = frozenset(
    {LifecyclePhase.CLOSED_TP, LifecyclePhase.CLOSED_SL, LifecyclePhase.CLOSED_TIME}
)

_ALLOWED_TRANSITIONS: dict[LifecyclePhase, frozenset[LifecyclePhase]] = {
    LifecyclePhase.SCANNING: frozenset({LifecyclePhase.PENDING_ENTRY}),
    LifecyclePhase.PENDING_ENTRY: frozenset({LifecyclePhase.OPEN}),
    LifecyclePhase.OPEN: _TERMINAL_PHASES,
    LifecyclePhase.CLOSED_TP: frozenset(),
    LifecyclePhase.CLOSED_SL: frozenset(),
    LifecyclePhase.CLOSED_TIME: frozenset(),
}


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candle:
    """Single OHLCV bar. ts is the bar open time, UTC."""

    ts: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class CandleBundle:
    """Base series plus the three aggregated tiers, all derived from the base."""

    instrument: str
    candles_15m: tuple[Candle, ...]
    candles_1h: tuple[Candle, ...]
    candles_4h: tuple[Candle, ...]
    candles_1d: tuple[Candle, ...]

    def get(self, timeframe: Timeframe) -> tuple[Candle, ...]:
        return {
            Timeframe.M15: self.candles_15m,
            Timeframe.H1: self.candles_1h,
            Timeframe.H4: self.candles_4h,
            Timeframe.D1: self.candles_1d,
        }[timeframe]

    @property
    def base(self) -> tuple[Candle, ...]:
        return self.candles_15m


# ---------------------------------------------------------------------------
# Friction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpreadQuote:
    spread_pips: float
    spread_price: float
    session_multiplier: float
    volatility_multiplier: float


@dataclass(frozen=True)
class SlippageQuote:
    slippage_pips: float
    slippage_price: float
    base_pips: float
    volatility_adjustment: float
    session_adjustment: float


@dataclass(frozen=True)
class FrictionQuote:
    """Execution cost for one fill, kept as produced for auditability."""

    session: Session
    spread: SpreadQuote
    slippage: SlippageQuote

    @property
    def total_pips(self) -> float:
        return self.spread.spread_pips + self.slippage.slippage_pips

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session.value,
            "spread_pips": self.spread.spread_pips,
            "spread_price": self.spread.spread_price,
            "session_multiplier": self.spread.session_multiplier,
            "volatility_multiplier": self.spread.volatility_multiplier,
            "slippage_pips": self.slippage.slippage_pips,
            "slippage_price": self.slippage.slippage_price,
            "slippage_base_pips": self.slippage.base_pips,
            "slippage_volatility_adjustment": self.slippage.volatility_adjustment,
            "slippage_session_adjustment": self.slippage.session_adjustment,
            "total_pips": self.total_pips,
        }


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GovernanceDecision:
    composite: float
    gates: tuple[GateId, ...]
    decision: Decision
    friction_ratio: float
    multipliers: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "composite": self.composite,
            "gates": [g.value for g in self.gates],
            "decision": self.decision.value,
            "friction_ratio": self.friction_ratio,
            "multipliers": dict(self.multipliers),
        }


@dataclass(frozen=True)
class DirectionCall:
    bias: Bias
    confidence: float
    tf_used: Optional[Timeframe]


# ---------------------------------------------------------------------------
# Trades
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TradeRecord:
    """A closed trade. Created at the entry fill, frozen once the exit resolves."""

    trade_id: str
    instrument: str
    side: Side
    variant_id: str
    agent_id: str

    decision_index: int
    decision_ts: datetime
    entry_index: int
    entry_ts: datetime
    mid_price: float  # next-bar open before friction
    entry_price: float
    take_profit_price: float
    stop_loss_price: float

    exit_index: int
    exit_ts: datetime
    exit_price: float
    exit_phase: LifecyclePhase

    pnl_pips: float
    r_multiple: float
    units: int
    duration_bars: int
    duration_minutes: float
    mfe_pips: float
    mae_pips: float
    capture_ratio: float
    outcome: Outcome

    session: Session
    regime: Regime
    friction: FrictionQuote
    governance: GovernanceDecision
    direction: DirectionCall
    execution_quality_score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.trade_id,
            "instrument": self.instrument,
            "direction": self.side.value,
            "variant_id": self.variant_id,
            "agent_id": self.agent_id,
            "decision_index": self.decision_index,
            "decision_ts": self.decision_ts.isoformat(),
            "entry_index": self.entry_index,
            "entry_ts": self.entry_ts.isoformat(),
            "mid_price": self.mid_price,
            "entry_price": self.entry_price,
            "take_profit_price": self.take_profit_price,
            "stop_loss_price": self.stop_loss_price,
            "exit_index": self.exit_index,
            "exit_ts": self.exit_ts.isoformat(),
            "exit_price": self.exit_price,
            "exit_reason": self.exit_phase.value,
            "pnl_pips": self.pnl_pips,
            "r_multiple": self.r_multiple,
            "units": self.units,
            "duration_bars": self.duration_bars,
            "duration_minutes": self.duration_minutes,
            "mfe_pips": self.mfe_pips,
            "mae_pips": self.mae_pips,
            "capture_ratio": self.capture_ratio,
            "outcome": self.outcome.value,
            "session": self.session.value,
            "regime": self.regime.value,
            "friction": self.friction.to_dict(),
            "governance": self.governance.to_dict(),
            "direction_bias": self.direction.bias.value,
            "direction_confidence": self.direction.confidence,
            "direction_tf_used": (
                self.direction.tf_used.value if self.direction.tf_used else None
            ),
            "confirmation_tf_used": BASE_TIMEFRAME.value,
            "execution_quality_score": self.execution_quality_score,
        }


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

DEFAULT_INSTRUMENTS = (
    "EUR_USD",
    "GBP_USD",
    "USD_JPY",
    "AUD_USD",
    "USD_CAD",
    "EUR_GBP",
    "EUR_JPY",
    "GBP_JPY",
)


class BacktestConfigError(Exception):
    """Invalid backtest configuration, raised before any simulation work."""

    def __init__(
        self, message: str, code: str = "INVALID_CONFIG", details: Optional[dict] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class BacktestConfig(BaseModel):
    """One backtest run. agent_id only names trades and seeds random streams."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    instruments: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INSTRUMENTS),
        min_length=1,
        description="Canonical FX symbols, e.g. EUR_USD",
    )
    start: datetime = Field(..., description="Range start (tz-aware)")
    end: datetime = Field(..., description="Range end, exclusive (tz-aware)")
    account_balance: float = Field(default=100_000.0, gt=0)
    risk_fraction: float = Field(default=0.005, gt=0, le=1)
    tp_pips: float = Field(default=15.0, gt=0)
    sl_pips: float = Field(default=7.0, gt=0)
    max_duration_bars: int = Field(
        default=48, ge=1, description="Max hold, in base (15m) bars"
    )
    variant_id: str = Field(default="baseline", min_length=1)
    agent_id: Optional[str] = Field(default=None)
    data_seed: int = Field(default=0, description="Seed for synthetic candle paths")

    @field_validator("instruments")
    @classmethod
    def _check_instruments(cls, value: list[str]) -> list[str]:
        normalized = [s.strip().upper() for s in value]
        bad = [s for s in normalized if not is_valid_symbol(s)]
        if bad:
            raise ValueError(f"Malformed instrument symbols: {bad}")
        if len(set(normalized)) != len(normalized):
            raise ValueError("Duplicate instruments in config")
        return normalized

    @field_validator("start", "end")
    @classmethod
    def _check_tz(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_range(self) -> BacktestConfig:
        if self.start >= self.end:
            raise ValueError("start must be before end")
        return self

    @property
    def agent_label(self) -> str:
        return self.agent_id or "engine"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class BucketStats:
    trades: int = 0
    wins: int = 0
    net_pips: float = 0.0
    expectancy: float = 0.0
    win_rate: float = 0.0


@dataclass
class BacktestSummary:
    total_trades: int
    win_rate: float
    expectancy_pips: float
    net_pips: float
    profit_factor: float
    max_drawdown_pips: float
    sharpe: float
    longest_win_streak: int
    longest_loss_streak: int
    avg_duration_minutes: float
    total_r: float
    by_instrument: dict[str, BucketStats] = field(default_factory=dict)
    by_session: dict[str, BucketStats] = field(default_factory=dict)
    by_regime: dict[str, BucketStats] = field(default_factory=dict)


@dataclass
class BacktestRunResult:
    trades: list[TradeRecord]
    summary: BacktestSummary
    warnings: list[str] = field(default_factory=list)
    skipped_instruments: list[str] = field(default_factory=list)
    cancelled: bool = False
