"""Core utilities shared by the optimizer packages."""

from .logging_setup import configure_worker_logging, setup_logging, teardown_logging
from .market_metadata import (
    INSTRUMENT_ALIASES,
    SUPPORTED_TIMEFRAMES,
    TIMEFRAME_ALIASES,
    TIMEFRAME_MINUTES,
    get_pip_value,
    get_pips_per_price_unit,
    normalize_instrument,
    normalize_timeframe,
    resolve_instrument_alias,
    timeframe_minutes,
)

__all__ = [
    "setup_logging",
    "configure_worker_logging",
    "teardown_logging",
    "INSTRUMENT_ALIASES",
    "TIMEFRAME_ALIASES",
    "TIMEFRAME_MINUTES",
    "SUPPORTED_TIMEFRAMES",
    "resolve_instrument_alias",
    "normalize_instrument",
    "normalize_timeframe",
    "timeframe_minutes",
    "get_pip_value",
    "get_pips_per_price_unit",
]
