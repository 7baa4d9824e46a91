"""Numeric thresholds and multiplier bands for the replay engine.

Every cutoff the engine branches on lives here, grouped per component, so a
rule change is a one-line diff that can be tested without running a walk.
Tables are frozen; pass a modified copy (dataclasses.replace) into the
component instead of mutating module state.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .types import Regime, Session


def _session_spread_multipliers() -> dict[Session, float]:
    return {
        Session.LONDON_OPEN: 0.85,
        Session.NY_OVERLAP: 0.90,
        Session.ASIAN: 1.30,
        Session.LATE_NY: 1.20,
        Session.ROLLOVER: 1.80,
    }


def _session_slippage_adjustments() -> dict[Session, float]:
    return {
        Session.LONDON_OPEN: -0.02,
        Session.NY_OVERLAP: 0.0,
        Session.ASIAN: 0.05,
        Session.LATE_NY: 0.08,
        Session.ROLLOVER: 0.15,
    }


@dataclass(frozen=True)
class FrictionThresholds:
    # (upper bound on atr/avg_atr, spread multiplier), checked in order
    volatility_bands: tuple[tuple[float, float], ...] = (
        (0.7, 0.90),
        (1.3, 1.00),
        (1.8, 1.15),
    )
    volatility_ceiling_multiplier: float = 1.35
    session_spread_multipliers: dict[Session, float] = field(
        default_factory=_session_spread_multipliers
    )
    session_slippage_adjustments: dict[Session, float] = field(
        default_factory=_session_slippage_adjustments
    )
    spread_jitter_floor: float = 0.92
    spread_jitter_span: float = 0.16
    slippage_base_fraction: float = 0.15
    slippage_volatility_slope: float = 0.1
    slippage_jitter_floor: float = 0.8
    slippage_jitter_span: float = 0.4


@dataclass(frozen=True)
class RegimeThresholds:
    compression_below: float = 0.65
    expansion_below: float = 1.3
    ignition_below: float = 1.8


def _regime_multipliers() -> dict[Regime, float]:
    return {
        Regime.COMPRESSION: 0.55,
        Regime.EXPANSION: 1.25,
        Regime.IGNITION: 1.35,
        Regime.EXHAUSTION: 0.65,
    }


def _exit_efficiency() -> dict[Regime, float]:
    return {
        Regime.IGNITION: 1.20,
        Regime.EXPANSION: 1.15,
        Regime.COMPRESSION: 0.75,
        Regime.EXHAUSTION: 0.75,
    }


def _session_liquidity() -> dict[Session, float]:
    return {
        Session.LONDON_OPEN: 1.18,
        Session.NY_OVERLAP: 1.12,
        Session.ASIAN: 0.78,
        Session.LATE_NY: 0.68,
        Session.ROLLOVER: 0.40,
    }


@dataclass(frozen=True)
class GovernanceThresholds:
    # friction ratio = ATR pips / (spread + base slippage)
    base_slippage_pips: float = 0.15
    min_friction_denominator: float = 0.01
    friction_ratio_gate: float = 3.0
    friction_micro_penalty: float = 0.78

    # MTF alignment score is drawn in [floor, floor + span]
    mtf_score_floor: float = 30.0
    mtf_score_span: float = 70.0
    htf_support_above: float = 55.0
    mtf_confirm_above: float = 45.0
    ltf_clean_above: float = 0.35
    weak_mtf_below: float = 35.0

    spread_stability_floor: float = 40.0
    spread_stability_span: float = 60.0
    spread_instability_below: float = 30.0

    regime_multipliers: dict[Regime, float] = field(default_factory=_regime_multipliers)
    exit_efficiency: dict[Regime, float] = field(default_factory=_exit_efficiency)
    session_liquidity: dict[Session, float] = field(default_factory=_session_liquidity)

    major_multiplier: float = 1.08
    cross_multiplier: float = 0.92

    composite_threshold: float = 0.60
    reject_gate_count: int = 2


@dataclass(frozen=True)
class DirectionThresholds:
    efficiency_cutoff: float = 0.25
    neutral_confidence: float = 0.30
    confidence_base: float = 0.40
    efficiency_weight: float = 0.30
    alignment_bonus: float = 0.15
    jitter_span: float = 0.10
    confidence_cap: float = 0.95


@dataclass(frozen=True)
class WalkerThresholds:
    warmup_index: int = 15
    min_bars: int = 20
    atr_period: int = 14
    atr_window: int = 20
    avg_atr_window: int = 100
    cooldown_bars: int = 2
    throttle_admission_probability: float = 0.30


@dataclass(frozen=True)
class EngineThresholds:
    friction: FrictionThresholds = field(default_factory=FrictionThresholds)
    regime: RegimeThresholds = field(default_factory=RegimeThresholds)
    governance: GovernanceThresholds = field(default_factory=GovernanceThresholds)
    direction: DirectionThresholds = field(default_factory=DirectionThresholds)
    walker: WalkerThresholds = field(default_factory=WalkerThresholds)


DEFAULT_THRESHOLDS = EngineThresholds()
