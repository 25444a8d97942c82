"""Shared market metadata and normalization helpers."""

from __future__ import annotations

import re

# User-facing aliases for common symbols.
INSTRUMENT_ALIASES: dict[str, str] = {
    "GOLD": "XAU_USD",
    "SILVER": "XAG_USD",
    "OIL": "WTICO_USD",
    "BTC": "BTC_USD",
    "ETH": "ETH_USD",
}

# Canonical timeframe aliases accepted in configs and on the command line.
TIMEFRAME_ALIASES: dict[str, str] = {
    "1m": "M1",
    "m1": "M1",
    "5m": "M5",
    "m5": "M5",
    "15m": "M15",
    "m15": "M15",
    "30m": "M30",
    "m30": "M30",
    "1h": "H1",
    "h1": "H1",
    "4h": "H4",
    "h4": "H4",
    "1d": "D",
    "d": "D",
    "d1": "D",
    "daily": "D",
}

TIMEFRAME_MINUTES: dict[str, int] = {
    "M1": 1,
    "M5": 5,
    "M15": 15,
    "M30": 30,
    "H1": 60,
    "H4": 240,
    "D": 1440,
}

SUPPORTED_TIMEFRAMES = set(TIMEFRAME_MINUTES)

_PAIR_RE = re.compile(r"^[A-Z0-9]{3,}_[A-Z0-9]{3,}$")
# Broker account suffixes seen on tick exports, e.g. XAUUSDm / EURUSD.r
_BROKER_SUFFIX_RE = re.compile(r"^([A-Z0-9]{6})(?:M|\.[A-Z]+)$")


def resolve_instrument_alias(raw: str) -> str:
    """Resolve user alias to canonical instrument if available."""
    key = raw.strip().upper()
    return INSTRUMENT_ALIASES.get(key, key)


def normalize_instrument(raw: str, *, allow_aliases: bool = True) -> str:
    """
    Normalize user input to canonical instrument format.

    Examples:
    - xauusd -> XAU_USD
    - XAUUSDm -> XAU_USD
    - eur/usd -> EUR_USD
    - gold -> XAU_USD
    """
    if not raw or not raw.strip():
        raise ValueError("Instrument is required.")

    normalized = raw.strip().upper().replace("/", "_").replace("-", "_")
    normalized = normalized.replace(" ", "")

    if allow_aliases:
        normalized = resolve_instrument_alias(normalized)

    suffixed = _BROKER_SUFFIX_RE.match(normalized)
    if suffixed and "_" not in normalized:
        normalized = suffixed.group(1)

    if "_" not in normalized and len(normalized) == 6 and normalized.isalnum():
        normalized = f"{normalized[:3]}_{normalized[3:]}"

    if not _PAIR_RE.match(normalized):
        raise ValueError(f"Invalid instrument format: {raw}")

    return normalized


def normalize_timeframe(raw: str | int) -> str:
    """Normalize timeframe aliases (or a minute count) to canonical form (M1/M5/M15/M30/H1/H4/D)."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        for name, minutes in TIMEFRAME_MINUTES.items():
            if minutes == raw:
                return name
        raise ValueError(f"Unsupported timeframe: {raw} minutes.")

    if not raw or not str(raw).strip():
        raise ValueError("Timeframe is required.")

    key = str(raw).strip().lower()
    if key in TIMEFRAME_ALIASES:
        return TIMEFRAME_ALIASES[key]
    if key.isdigit():
        return normalize_timeframe(int(key))

    normalized = str(raw).strip().upper()
    if normalized in SUPPORTED_TIMEFRAMES:
        return normalized

    raise ValueError(
        f"Unsupported timeframe: {raw}. "
        "Supported aliases: 1m/m1, 5m/m5, 15m/m15, 30m/m30, 1h/h1, 4h/h4, 1d/d1 or a minute count."
    )


def timeframe_minutes(raw: str | int) -> int:
    """Return the bar duration in minutes for any accepted timeframe spelling."""
    return TIMEFRAME_MINUTES[normalize_timeframe(raw)]


def get_pip_value(instrument: str) -> float:
    """Get pip size (price units per pip) for instrument."""
    inst = normalize_instrument(instrument, allow_aliases=True)
    if inst.endswith("_JPY") or inst.startswith("XAU_") or inst.startswith("XAG_") or inst.startswith("WTICO_"):
        return 0.01
    return 0.0001


def get_pips_per_price_unit(instrument: str) -> float:
    """Number of pips in one whole unit of price (100 for gold, 10000 for EUR_USD)."""
    return round(1.0 / get_pip_value(instrument), 6)

