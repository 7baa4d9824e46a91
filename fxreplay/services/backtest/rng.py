"""Deterministic random streams.

No component reads a process-global generator. Every draw comes from a
numpy Generator built from a stable hash of the identity of what is being
simulated, so a run gives identical results regardless of scheduling order.
"""

import hashlib

import numpy as np

# Keeps friction seeds small enough that sin/cos jitter stays well-conditioned
_FRICTION_SEED_MODULUS = 100_000


def derive_seed(*parts: object) -> int:
    """Stable 64-bit seed from arbitrary parts.

    Uses sha256 rather than hash() so seeds survive interpreter restarts
    and PYTHONHASHSEED.
    """
    key = "|".join(str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.sha256(key).digest()[:8], "big")


def bar_stream(
    instrument: str, variant_id: str, agent_id: str, index: int
) -> np.random.Generator:
    """Stream for all draws made while evaluating one decision bar."""
    return np.random.default_rng(derive_seed("bar", instrument, variant_id, agent_id, index))


def candle_stream(
    instrument: str, timeframe: str, start_iso: str, seed: int
) -> np.random.Generator:
    """Stream for a synthetic price path. Independent of variant and agent."""
    return np.random.default_rng(
        derive_seed("candles", instrument, timeframe, start_iso, seed)
    )


def friction_seed(instrument: str, index: int) -> int:
    """Integer seed for spread/slippage jitter at a bar. Independent of variant."""
    return (derive_seed("friction", instrument) + index) % _FRICTION_SEED_MODULUS
