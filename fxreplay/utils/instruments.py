"""Instrument metadata: pip sizes, spread baselines, synthetic price anchors."""

import re

# Typical interbank spread per pair, in pips
PAIR_SPREAD_BASELINES: dict[str, float] = {
    "EUR_USD": 0.6,
    "GBP_USD": 0.9,
    "USD_JPY": 0.7,
    "AUD_USD": 0.8,
    "USD_CAD": 1.0,
    "EUR_JPY": 1.1,
    "GBP_JPY": 1.5,
    "EUR_GBP": 0.8,
    "NZD_USD": 1.2,
    "AUD_JPY": 1.3,
    "USD_CHF": 1.0,
    "EUR_CHF": 1.2,
    "EUR_AUD": 1.6,
    "GBP_AUD": 2.0,
    "AUD_NZD": 1.8,
}
DEFAULT_SPREAD_BASELINE = 1.5

# Starting mid price for synthetic candle paths
BASE_PRICES: dict[str, float] = {
    "EUR_USD": 1.0850,
    "GBP_USD": 1.2650,
    "USD_JPY": 149.50,
    "AUD_USD": 0.6550,
    "USD_CAD": 1.3650,
    "EUR_GBP": 0.8580,
    "EUR_JPY": 162.20,
    "GBP_JPY": 189.10,
    "NZD_USD": 0.6050,
    "AUD_JPY": 97.80,
    "USD_CHF": 0.8780,
    "EUR_CHF": 0.9530,
    "EUR_AUD": 1.6560,
    "GBP_AUD": 1.9310,
    "AUD_NZD": 1.0820,
}
DEFAULT_BASE_PRICE = 1.0

MAJOR_PAIRS = frozenset({"EUR_USD", "GBP_USD", "USD_JPY", "AUD_USD", "USD_CAD"})

_SYMBOL_RE = re.compile(r"^[A-Z]{3}_[A-Z]{3}$")


def is_valid_symbol(symbol: str) -> bool:
    """True for canonical BASE_QUOTE symbols such as "EUR_USD"."""
    return bool(_SYMBOL_RE.match(symbol))


def is_jpy_pair(symbol: str) -> bool:
    return "JPY" in symbol.upper()


def pip_size(symbol: str) -> float:
    """Price increment of one pip.

    JPY-quoted pairs carry two decimals, everything else four.

    >>> pip_size("USD_JPY")
    0.01
    >>> pip_size("EUR_USD")
    0.0001
    """
    return 0.01 if is_jpy_pair(symbol) else 0.0001


def spread_baseline(symbol: str) -> float:
    """Baseline spread in pips; unknown pairs get a conservative default."""
    return PAIR_SPREAD_BASELINES.get(symbol.upper(), DEFAULT_SPREAD_BASELINE)


def base_price(symbol: str) -> float:
    return BASE_PRICES.get(symbol.upper(), DEFAULT_BASE_PRICE)


def synthetic_atr_pips(symbol: str) -> float:
    """Average bar range used to scale synthetic price paths."""
    return 15.0 if is_jpy_pair(symbol) else 8.0


def is_major(symbol: str) -> bool:
    return symbol.upper() in MAJOR_PAIRS
