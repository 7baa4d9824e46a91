"""Database repositories for the FX replay service."""

from fxreplay.repositories.backtest_trades import BacktestTradesRepository, PersistResult

__all__ = ["BacktestTradesRepository", "PersistResult"]
