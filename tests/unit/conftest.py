"""Shared fixtures for unit tests: candle series, closed trades, configs."""

from datetime import datetime, timedelta, timezone

import pytest

from fxreplay.services.backtest.types import (
    BacktestConfig,
    Bias,
    Candle,
    Decision,
    DirectionCall,
    FrictionQuote,
    GovernanceDecision,
    LifecyclePhase,
    Outcome,
    Regime,
    Session,
    Side,
    SlippageQuote,
    SpreadQuote,
    Timeframe,
    TradeRecord,
)

# Monday 2024-03-04 00:00 UTC
MONDAY = datetime(2024, 3, 4, tzinfo=timezone.utc)


def flat_candles(
    n: int,
    start: datetime = MONDAY,
    price: float = 1.1000,
    half_range: float = 0.0005,
    step_minutes: int = 15,
) -> list[Candle]:
    """n identical bars around `price`, every `step_minutes`."""
    return [
        Candle(
            ts=start + timedelta(minutes=step_minutes * i),
            open=price,
            high=price + half_range,
            low=price - half_range,
            close=price,
            volume=1000.0,
        )
        for i in range(n)
    ]


def make_trade(
    pnl_pips: float,
    instrument: str = "EUR_USD",
    session: Session = Session.LONDON_OPEN,
    regime: Regime = Regime.EXPANSION,
    index: int = 0,
) -> TradeRecord:
    """A closed long trade with the given result; everything else is filler."""
    entry_ts = MONDAY + timedelta(hours=8, minutes=15 * index)
    friction = FrictionQuote(
        session=session,
        spread=SpreadQuote(0.5, 0.00005, 0.85, 1.0),
        slippage=SlippageQuote(0.1, 0.00001, 0.09, 0.0, -0.02),
    )
    return TradeRecord(
        trade_id=f"bt-{instrument}-baseline-engine-{index}",
        instrument=instrument,
        side=Side.LONG,
        variant_id="baseline",
        agent_id="backtest-engine",
        decision_index=index,
        decision_ts=entry_ts - timedelta(minutes=15),
        entry_index=index + 1,
        entry_ts=entry_ts,
        mid_price=1.1,
        entry_price=1.1,
        take_profit_price=1.1015,
        stop_loss_price=1.0993,
        exit_index=index + 3,
        exit_ts=entry_ts + timedelta(minutes=30),
        exit_price=1.1 + pnl_pips * 0.0001,
        exit_phase=LifecyclePhase.CLOSED_TIME,
        pnl_pips=pnl_pips,
        r_multiple=pnl_pips / 7.0,
        units=1000,
        duration_bars=3,
        duration_minutes=30.0,
        mfe_pips=max(pnl_pips, 0.0),
        mae_pips=max(-pnl_pips, 0.0),
        capture_ratio=1.0 if pnl_pips > 0 else 0.0,
        outcome=Outcome.WIN if pnl_pips > 0 else Outcome.LOSS,
        session=session,
        regime=regime,
        friction=friction,
        governance=GovernanceDecision(
            composite=1.2,
            gates=(),
            decision=Decision.APPROVED,
            friction_ratio=8.0,
            multipliers={"session": 1.18},
        ),
        direction=DirectionCall(Bias.BULLISH, 0.8, Timeframe.H1),
        execution_quality_score=80,
    )


@pytest.fixture
def make_candles():
    return flat_candles


@pytest.fixture
def trade_factory():
    return make_trade


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def week_config():
    """One trading week on two pairs."""
    return BacktestConfig(
        instruments=["EUR_USD", "USD_JPY"],
        start=MONDAY,
        end=MONDAY + timedelta(days=5),
    )
