"""API routers."""

from fxreplay.routers import backtests, health

__all__ = ["backtests", "health"]
