"""Trade lifecycle walker: one instrument, one open trade at a time.

    SCANNING -> PENDING_ENTRY -> OPEN -> CLOSED_TP | CLOSED_SL | CLOSED_TIME

At bar i (SCANNING) only candles[: i + 1] and higher-timeframe bars that
closed by bar i's close are read. An accepted candidate becomes a pending
entry that is filled while processing bar i + 1, at that bar's open. After
a close the walker sits out `cooldown_bars` bars, then starts a fresh
lifecycle in SCANNING.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

import structlog

from fxreplay.utils.instruments import pip_size
from fxreplay.utils.time import is_weekend, utc_hour

from .candles import ClosedBarIndex, compute_atr
from .direction import classify_direction
from .friction import apply_friction, classify_session, quote_friction
from .governance import classify_regime, evaluate_governance
from .rng import bar_stream, friction_seed
from .thresholds import DEFAULT_THRESHOLDS, EngineThresholds
from .types import (
    BASE_TIMEFRAME,
    BacktestConfig,
    Candle,
    CandleBundle,
    Decision,
    DirectionCall,
    FrictionQuote,
    GovernanceDecision,
    LifecyclePhase,
    Outcome,
    Regime,
    Session,
    Side,
    Timeframe,
    TradeRecord,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PendingEntry:
    """An accepted candidate waiting for the next bar's open."""

    decision_index: int
    side: Side
    session: Session
    regime: Regime
    friction: FrictionQuote
    governance: GovernanceDecision
    direction: DirectionCall

    @property
    def fill_index(self) -> int:
        return self.decision_index + 1


@dataclass
class OpenPosition:
    pending: PendingEntry
    entry_index: int
    entry_candle: Candle
    mid_price: float
    entry_price: float
    take_profit: float
    stop_loss: float
    pip: float
    mfe_pips: float = 0.0
    mae_pips: float = 0.0
    bars_held: int = 0

    @property
    def side(self) -> Side:
        return self.pending.side

    def update(self, bar: Candle) -> Optional[tuple[LifecyclePhase, float]]:
        """Advance one bar. Returns (closed phase, exit price) on a level breach.

        Excursions include this bar's extremes. The stop is checked before
        the target, so a bar that spans both levels counts as a loss. Exits
        are pinned at the breached level, not at the bar's extreme.
        """
        self.bars_held += 1
        if self.side == Side.LONG:
            self.mfe_pips = max(self.mfe_pips, (bar.high - self.entry_price) / self.pip)
            self.mae_pips = max(self.mae_pips, (self.entry_price - bar.low) / self.pip)
            if bar.low <= self.stop_loss:
                return LifecyclePhase.CLOSED_SL, self.stop_loss
            if bar.high >= self.take_profit:
                return LifecyclePhase.CLOSED_TP, self.take_profit
        else:
            self.mfe_pips = max(self.mfe_pips, (self.entry_price - bar.low) / self.pip)
            self.mae_pips = max(self.mae_pips, (bar.high - self.entry_price) / self.pip)
            if bar.high >= self.stop_loss:
                return LifecyclePhase.CLOSED_SL, self.stop_loss
            if bar.low <= self.take_profit:
                return LifecyclePhase.CLOSED_TP, self.take_profit
        return None


@dataclass
class InstrumentWalk:
    instrument: str
    trades: list[TradeRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    skipped: bool = False


def position_units(balance: float, risk_fraction: float, sl_pips: float, pip: float) -> int:
    """Units such that a stop-out loses balance * risk_fraction (quote currency)."""
    return int(balance * risk_fraction / (sl_pips * pip))


def execution_quality(capture_ratio: float, friction_pips: float, composite: float) -> int:
    raw = 60 + capture_ratio * 20 - friction_pips * 5 + (10 if composite > 1 else 0)
    return round(max(0.0, min(100.0, raw)))


def _advance(current: LifecyclePhase, target: LifecyclePhase) -> LifecyclePhase:
    if not current.can_transition_to(target):
        raise RuntimeError(f"Illegal lifecycle transition {current.value} -> {target.value}")
    return target


class TradeLifecycleWalker:
    """Replays one instrument's base series bar by bar."""

    def __init__(
        self,
        bundle: CandleBundle,
        config: BacktestConfig,
        thresholds: EngineThresholds = DEFAULT_THRESHOLDS,
    ):
        self.instrument = bundle.instrument
        self.candles = bundle.base
        self.config = config
        self.thresholds = thresholds
        self._pip = pip_size(self.instrument)
        self._base_span = timedelta(minutes=BASE_TIMEFRAME.minutes)
        self._h1 = ClosedBarIndex(bundle.candles_1h, Timeframe.H1)
        self._h4 = ClosedBarIndex(bundle.candles_4h, Timeframe.H4)

    def walk(self) -> InstrumentWalk:
        w = self.thresholds.walker
        candles = self.candles
        n = len(candles)
        result = InstrumentWalk(self.instrument)

        if n < w.min_bars:
            logger.warning(
                "Instrument skipped: insufficient data",
                instrument=self.instrument,
                bars=n,
                min_bars=w.min_bars,
            )
            result.skipped = True
            result.warnings.append(
                f"{self.instrument}: insufficient data ({n} bars, need {w.min_bars}); skipped"
            )
            return result

        phase = LifecyclePhase.SCANNING
        pending: Optional[PendingEntry] = None
        position: Optional[OpenPosition] = None
        cooldown = 0

        for j in range(w.warmup_index, n):
            bar = candles[j]

            if phase == LifecyclePhase.SCANNING:
                if cooldown > 0:
                    cooldown -= 1
                    continue
                if j >= n - 1:
                    break  # no next bar to fill on
                pending = self._scan(j)
                if pending is not None:
                    phase = _advance(phase, LifecyclePhase.PENDING_ENTRY)
                continue

            if phase == LifecyclePhase.PENDING_ENTRY:
                position = self._fill(pending, j)
                phase = _advance(phase, LifecyclePhase.OPEN)

            # OPEN: the fill bar itself can already hit a level
            exit_ = position.update(bar)
            if exit_ is None and (
                position.bars_held >= self.config.max_duration_bars or j == n - 1
            ):
                exit_ = (LifecyclePhase.CLOSED_TIME, bar.close)
            if exit_ is None:
                continue

            closed_phase, exit_price = exit_
            _advance(phase, closed_phase)
            result.trades.append(self._close(position, j, closed_phase, exit_price))
            pending = None
            position = None
            cooldown = w.cooldown_bars
            phase = LifecyclePhase.SCANNING

        logger.debug(
            "Instrument walk complete",
            instrument=self.instrument,
            bars=n,
            trade_count=len(result.trades),
        )
        return result

    def _scan(self, i: int) -> Optional[PendingEntry]:
        """Evaluate bar i at its close. Reads nothing after bar i."""
        t = self.thresholds
        w = t.walker
        candles = self.candles
        bar = candles[i]

        if is_weekend(bar.ts):
            return None

        atr = compute_atr(candles[max(0, i - w.atr_window) : i + 1], w.atr_period)
        if atr <= 0:
            return None  # insufficient data, not zero volatility
        avg_window = candles[max(0, i - w.avg_atr_window) : i + 1]
        avg_atr = compute_atr(avg_window, len(avg_window) - 1)

        hour = utc_hour(bar.ts)
        session = classify_session(hour)
        regime = classify_regime(atr, avg_atr, t.regime)
        friction = quote_friction(
            self.instrument,
            hour,
            atr,
            avg_atr,
            friction_seed(self.instrument, i),
            t.friction,
        )

        rng = bar_stream(self.instrument, self.config.variant_id, self.config.agent_label, i)
        gov = evaluate_governance(
            self.instrument,
            atr,
            avg_atr,
            friction.spread.spread_pips,
            session,
            regime,
            rng,
            t.governance,
        )
        if gov.decision == Decision.REJECTED:
            return None
        if (
            gov.decision == Decision.THROTTLED
            and rng.random() >= w.throttle_admission_probability
        ):
            return None

        as_of = bar.ts + self._base_span
        call = classify_direction(
            bar, self._h1.last_closed(as_of), self._h4.last_closed(as_of), rng, t.direction
        )
        side = call.bias.to_side()
        if side is None:
            return None

        return PendingEntry(
            decision_index=i,
            side=side,
            session=session,
            regime=regime,
            friction=friction,
            governance=gov,
            direction=call,
        )

    def _fill(self, pending: PendingEntry, j: int) -> OpenPosition:
        if j != pending.fill_index:
            raise RuntimeError(
                f"Fill at bar {j} for decision at bar {pending.decision_index}; "
                "entries must fill on the next bar"
            )
        bar = self.candles[j]
        mid = bar.open
        entry = apply_friction(pending.side, mid, pending.friction)
        tp_dist = self.config.tp_pips * self._pip
        sl_dist = self.config.sl_pips * self._pip
        if pending.side == Side.LONG:
            tp, sl = entry + tp_dist, entry - sl_dist
        else:
            tp, sl = entry - tp_dist, entry + sl_dist
        return OpenPosition(
            pending=pending,
            entry_index=j,
            entry_candle=bar,
            mid_price=mid,
            entry_price=entry,
            take_profit=tp,
            stop_loss=sl,
            pip=self._pip,
        )

    def _close(
        self,
        position: OpenPosition,
        exit_index: int,
        phase: LifecyclePhase,
        exit_price: float,
    ) -> TradeRecord:
        pending = position.pending
        cfg = self.config
        exit_bar = self.candles[exit_index]

        if position.side == Side.LONG:
            pnl_pips = (exit_price - position.entry_price) / self._pip
        else:
            pnl_pips = (position.entry_price - exit_price) / self._pip

        mfe = position.mfe_pips
        capture = min(1.0, max(0.0, pnl_pips / mfe)) if mfe > 0 else 0.0
        minutes = (exit_bar.ts - position.entry_candle.ts).total_seconds() / 60

        trade_id = (
            f"bt-{self.instrument}-{cfg.variant_id}-{cfg.agent_label}-{pending.decision_index}"
        )
        return TradeRecord(
            trade_id=trade_id,
            instrument=self.instrument,
            side=position.side,
            variant_id=cfg.variant_id,
            agent_id=cfg.agent_id or "backtest-engine",
            decision_index=pending.decision_index,
            decision_ts=self.candles[pending.decision_index].ts,
            entry_index=position.entry_index,
            entry_ts=position.entry_candle.ts,
            mid_price=position.mid_price,
            entry_price=position.entry_price,
            take_profit_price=position.take_profit,
            stop_loss_price=position.stop_loss,
            exit_index=exit_index,
            exit_ts=exit_bar.ts,
            exit_price=exit_price,
            exit_phase=phase,
            pnl_pips=pnl_pips,
            r_multiple=pnl_pips / cfg.sl_pips,
            units=position_units(cfg.account_balance, cfg.risk_fraction, cfg.sl_pips, self._pip),
            duration_bars=position.bars_held,
            duration_minutes=max(1.0, minutes),
            mfe_pips=mfe,
            mae_pips=position.mae_pips,
            capture_ratio=capture,
            outcome=Outcome.WIN if pnl_pips > 0 else Outcome.LOSS,
            session=pending.session,
            regime=pending.regime,
            friction=pending.friction,
            governance=pending.governance,
            direction=pending.direction,
            execution_quality_score=execution_quality(
                capture, pending.friction.total_pips, pending.governance.composite
            ),
        )


def walk_instrument(
    bundle: CandleBundle,
    config: BacktestConfig,
    thresholds: EngineThresholds = DEFAULT_THRESHOLDS,
) -> InstrumentWalk:
    return TradeLifecycleWalker(bundle, config, thresholds).walk()
