"""Governance simulation: composite multiplicative score plus hard gates.

The composite is the product of six sub-multipliers:

    mtf alignment x regime x instrument class x microstructure
        x exit efficiency x session liquidity

Each is a deterministic function of the inputs with a bounded perturbation
drawn from the caller's stream. Gates fire independently of the composite.

Decision policy:
    - 2+ gates                          -> rejected
    - exactly 1 gate, or composite < T  -> throttled
    - otherwise                         -> approved

Throttled is returned as-is; admission of throttled candidates is the
walker's call.
"""

from __future__ import annotations

import numpy as np

from fxreplay.utils.instruments import is_major, pip_size

from .thresholds import GovernanceThresholds, RegimeThresholds
from .types import Decision, GateId, GovernanceDecision, Regime, Session

_DEFAULT = GovernanceThresholds()
_DEFAULT_REGIME = RegimeThresholds()


def classify_regime(
    atr: float, avg_atr: float, thresholds: RegimeThresholds = _DEFAULT_REGIME
) -> Regime:
    """Volatility regime from the ATR ratio; expansion when the ratio is undefined."""
    if avg_atr <= 0:
        return Regime.EXPANSION
    ratio = atr / avg_atr
    if ratio < thresholds.compression_below:
        return Regime.COMPRESSION
    if ratio < thresholds.expansion_below:
        return Regime.EXPANSION
    if ratio < thresholds.ignition_below:
        return Regime.IGNITION
    return Regime.EXHAUSTION


def friction_ratio(
    instrument: str, atr: float, spread_pips: float, thresholds: GovernanceThresholds = _DEFAULT
) -> float:
    """How many round-trip friction costs fit inside one ATR."""
    atr_pips = atr / pip_size(instrument)
    total_friction = spread_pips + thresholds.base_slippage_pips
    return atr_pips / max(total_friction, thresholds.min_friction_denominator)


def _mtf_multiplier(score: float, htf: bool, mtf: bool, ltf: bool) -> float:
    s = score / 100
    if htf and mtf and ltf:
        return 1.18 + s * 0.17
    if htf and mtf:
        return 0.98 + s * 0.12
    if htf:
        return 0.82 + s * 0.08
    return 0.55 + s * 0.10


def decide(
    composite: float, gates: tuple[GateId, ...], thresholds: GovernanceThresholds = _DEFAULT
) -> Decision:
    if len(gates) >= thresholds.reject_gate_count:
        return Decision.REJECTED
    if len(gates) == 1 or composite < thresholds.composite_threshold:
        return Decision.THROTTLED
    return Decision.APPROVED


def evaluate_governance(
    instrument: str,
    atr: float,
    avg_atr: float,
    spread_pips: float,
    session: Session,
    regime: Regime,
    rng: np.random.Generator,
    thresholds: GovernanceThresholds = _DEFAULT,
) -> GovernanceDecision:
    """Score a candidate entry. Draws exactly five values from `rng`."""
    t = thresholds
    ratio = friction_ratio(instrument, atr, spread_pips, t)

    # Multi-timeframe alignment
    mtf_score = t.mtf_score_floor + rng.random() * t.mtf_score_span
    htf_supports = mtf_score > t.htf_support_above
    mtf_confirms = mtf_score > t.mtf_confirm_above
    ltf_clean = rng.random() > t.ltf_clean_above
    mtf_mult = _mtf_multiplier(mtf_score, htf_supports, mtf_confirms, ltf_clean)

    regime_mult = t.regime_multipliers[regime] * (0.75 + rng.random() * 0.25)

    if is_major(instrument):
        instrument_mult = t.major_multiplier * (0.90 + rng.random() * 0.15)
    else:
        instrument_mult = t.cross_multiplier * (0.85 + rng.random() * 0.15)

    # Microstructure: spread stability, penalised when friction eats the ATR
    stability = t.spread_stability_floor + rng.random() * t.spread_stability_span
    micro_mult = 0.60 + (stability / 100) * 0.55
    if ratio < t.friction_ratio_gate:
        micro_mult *= t.friction_micro_penalty

    exit_mult = t.exit_efficiency[regime] * (0.88 + (stability / 100) * 0.22)
    session_mult = t.session_liquidity[session]

    multipliers = {
        "mtf": mtf_mult,
        "regime": regime_mult,
        "instrument": instrument_mult,
        "microstructure": micro_mult,
        "exit_efficiency": exit_mult,
        "session": session_mult,
    }
    composite = float(np.prod(list(multipliers.values())))

    gates: list[GateId] = []
    if ratio < t.friction_ratio_gate:
        gates.append(GateId.FRICTION)
    if not htf_supports and mtf_score < t.weak_mtf_below:
        gates.append(GateId.NO_HTF_WEAK_MTF)
    if stability < t.spread_instability_below:
        gates.append(GateId.SPREAD_INSTABILITY)
    if session == Session.ROLLOVER:
        gates.append(GateId.ROLLOVER_SESSION)

    gate_tuple = tuple(gates)
    return GovernanceDecision(
        composite=composite,
        gates=gate_tuple,
        decision=decide(composite, gate_tuple, t),
        friction_ratio=ratio,
        multipliers={k: float(v) for k, v in multipliers.items()},
    )
