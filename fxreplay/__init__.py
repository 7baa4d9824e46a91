"""fxreplay - Deterministic FX Trade Replay

Bar-by-bar replay of a governed trading system over multi-timeframe candle data,
with session/volatility-aware execution friction and performance summaries.
"""

__version__ = "0.1.0"
