"""Data models shared by the tick loader, simulator, search and reporting layers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd

from core.market_metadata import normalize_instrument, timeframe_minutes

LONG = "LONG"
SHORT = "SHORT"
EXIT_STOP_LOSS = "STOP_LOSS"
EXIT_TAKE_PROFIT = "TAKE_PROFIT"

# Score assigned to trials whose bar history is shorter than their RSI warm-up.
SENTINEL_SCORE = -99999.0

LEDGER_COLUMNS: tuple[str, ...] = (
    "status",
    "direction",
    "lots",
    "entry_time",
    "exit_time",
    "entry_price",
    "exit_price",
    "pnl_usd",
    "running_balance",
)


def iso_utc(value: Any) -> Optional[str]:
    """Serialize datetime-like values to ISO8601 UTC string when possible."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if hasattr(value, "isoformat"):
        try:
            return value.isoformat().replace("+00:00", "Z")
        except TypeError:
            return str(value)
    return str(value)


def ns_to_datetime(value: int) -> datetime:
    return pd.Timestamp(int(value), tz="UTC").to_pydatetime()


@dataclass(frozen=True)
class Tick:
    timestamp: datetime
    mid_price: float


@dataclass(frozen=True)
class Bar:
    """Closed OHLC bar. ``volatility_pips`` is the high-low range in pips."""

    time: datetime
    open: float
    high: float
    low: float
    close: float
    volatility_pips: float


@dataclass(frozen=True)
class BarSet:
    """Immutable columnar bar container shipped to each search worker."""

    instrument: str
    timeframe_minutes: int
    pips_per_price_unit: float
    time_ns: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volatility_pips: np.ndarray

    @property
    def rows(self) -> int:
        return int(self.time_ns.size)

    @property
    def chart_key(self) -> str:
        return f"{self.instrument}-{self.timeframe_minutes}min"

    @property
    def start_time_utc(self) -> str | None:
        if self.rows == 0:
            return None
        return iso_utc(ns_to_datetime(int(self.time_ns[0])))

    @property
    def end_time_utc(self) -> str | None:
        if self.rows == 0:
            return None
        return iso_utc(ns_to_datetime(int(self.time_ns[-1])))


@dataclass(frozen=True)
class StrategyParameters:
    instrument: str
    timeframe_minutes: int
    target_ratio: float
    pullback_limit: float
    multi_timeframe_period: int
    rsi_period: int
    rsi_entry_threshold: float
    stop_loss_atr_multiplier: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument,
            "timeframe_minutes": int(self.timeframe_minutes),
            "target_ratio": float(self.target_ratio),
            "pullback_limit": float(self.pullback_limit),
            "multi_timeframe_period": int(self.multi_timeframe_period),
            "rsi_period": int(self.rsi_period),
            "rsi_entry_threshold": float(self.rsi_entry_threshold),
            "stop_loss_atr_multiplier": float(self.stop_loss_atr_multiplier),
        }


@dataclass(frozen=True)
class TradeRecord:
    direction: str
    lots: float
    entry_time: datetime
    exit_time: datetime
    entry_price: float
    exit_price: float
    profit_and_loss: float
    exit_reason: str


@dataclass(frozen=True)
class BacktestResult:
    score: float
    final_balance: float
    trade_count: int
    trade_ledger: tuple[TradeRecord, ...] = ()


@dataclass(frozen=True)
class TrialResult:
    """One sampled parameter set joined with its simulated outcome."""

    parameters: StrategyParameters
    result: BacktestResult

    @property
    def score(self) -> float:
        return self.result.score

    def to_dict(self) -> dict[str, Any]:
        """Flatten for the results document; the trade ledger is left out."""
        payload = self.parameters.to_dict()
        payload["simulated_final_balance"] = round(float(self.result.final_balance), 2)
        payload["simulated_total_trades"] = int(self.result.trade_count)
        payload["optimization_score"] = round(float(self.result.score), 2)
        return payload


def _parse_timeframes(raw_value: Any) -> tuple[int, ...]:
    items = raw_value if isinstance(raw_value, (list, tuple)) else [raw_value]
    minutes: list[int] = []
    for item in items:
        value = timeframe_minutes(item)
        if value not in minutes:
            minutes.append(value)
    if not minutes:
        raise ValueError("timeframes must contain at least one timeframe")
    return tuple(sorted(minutes))


def _positive(name: str, value: Any) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"{name} must be positive")
    return number


@dataclass(frozen=True)
class OptimizerConfig:
    """Fixed inputs of an optimization run, passed by value into every worker."""

    data_dir: Path
    report_dir: Path = Path("reports/optimizer_run")
    tick_files: tuple[str, ...] = ()
    instruments: tuple[str, ...] = ()
    timeframes: tuple[int, ...] = (5, 15, 30, 60, 240)
    samples_per_chart: int = 10_000
    max_bars_per_chart: int = 10_000
    max_ticks_per_file: int = 500_000
    min_bars: int = 50
    top_k: int = 10
    initial_balance: float = 10.0
    max_risk_fraction: float = 0.02
    min_lot: float = 0.01
    max_lot: float = 5.0
    dollar_per_pip_per_lot: float = 10.0
    spread_pips: float = 2.0
    commission_per_lot: float = 7.0
    max_workers: Optional[int] = None
    seed: Optional[int] = None
    _config_dir: Optional[Path] = field(default=None, repr=False, compare=False)

    @property
    def resolved_workers(self) -> int:
        if self.max_workers is not None:
            return max(1, int(self.max_workers))
        return max(1, os.cpu_count() or 1)

    @classmethod
    def from_dict(
        cls,
        payload: dict[str, Any],
        *,
        config_dir: Path | None = None,
    ) -> "OptimizerConfig":
        if not isinstance(payload, dict):
            raise ValueError("Optimizer config must be a JSON object")

        data_dir = str(payload.get("data_dir") or "").strip()
        if not data_dir:
            raise ValueError("data_dir is required")

        min_lot = _positive("min_lot", payload.get("min_lot", 0.01))
        max_lot = _positive("max_lot", payload.get("max_lot", 5.0))
        if max_lot < min_lot:
            raise ValueError("max_lot must not be smaller than min_lot")

        risk = float(payload.get("max_risk_fraction", 0.02))
        if not 0 < risk <= 1:
            raise ValueError("max_risk_fraction must be in (0, 1]")

        max_workers = payload.get("max_workers")
        seed = payload.get("seed")

        return cls(
            data_dir=Path(data_dir),
            report_dir=Path(payload.get("report_dir") or "reports/optimizer_run"),
            tick_files=tuple(str(item) for item in (payload.get("tick_files") or [])),
            instruments=tuple(normalize_instrument(str(item)) for item in (payload.get("instruments") or [])),
            timeframes=_parse_timeframes(payload.get("timeframes") or [5, 15, 30, 60, 240]),
            samples_per_chart=int(_positive("samples_per_chart", payload.get("samples_per_chart", 10_000))),
            max_bars_per_chart=int(_positive("max_bars_per_chart", payload.get("max_bars_per_chart", 10_000))),
            max_ticks_per_file=int(_positive("max_ticks_per_file", payload.get("max_ticks_per_file", 500_000))),
            min_bars=int(payload.get("min_bars", 50)),
            top_k=int(_positive("top_k", payload.get("top_k", 10))),
            initial_balance=_positive("initial_balance", payload.get("initial_balance", 10.0)),
            max_risk_fraction=risk,
            min_lot=min_lot,
            max_lot=max_lot,
            dollar_per_pip_per_lot=_positive("dollar_per_pip_per_lot", payload.get("dollar_per_pip_per_lot", 10.0)),
            spread_pips=float(payload.get("spread_pips", 2.0)),
            commission_per_lot=float(payload.get("commission_per_lot", 7.0)),
            max_workers=None if max_workers in (None, "", "None") else int(_positive("max_workers", max_workers)),
            seed=None if seed in (None, "", "None") else int(seed),
            _config_dir=config_dir,
        )

    @classmethod
    def from_path(cls, path: str | Path) -> "OptimizerConfig":
        config_path = Path(path)
        payload = json.loads(config_path.read_text(encoding="utf-8"))
        config = cls.from_dict(payload, config_dir=config_path.parent)
        updates: dict[str, Any] = {}
        if not config.data_dir.is_absolute():
            updates["data_dir"] = (config_path.parent / config.data_dir).resolve()
        if not config.report_dir.is_absolute():
            updates["report_dir"] = (config_path.parent / config.report_dir).resolve()
        return replace(config, **updates) if updates else config

    def with_overrides(self, **overrides: Any) -> "OptimizerConfig":
        """Return a copy with the non-None overrides applied (CLI flags)."""
        updates = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **updates) if updates else self

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "report_dir": str(self.report_dir),
            "tick_files": list(self.tick_files),
            "instruments": list(self.instruments),
            "timeframes": list(self.timeframes),
            "samples_per_chart": int(self.samples_per_chart),
            "max_bars_per_chart": int(self.max_bars_per_chart),
            "max_ticks_per_file": int(self.max_ticks_per_file),
            "min_bars": int(self.min_bars),
            "top_k": int(self.top_k),
            "initial_balance": float(self.initial_balance),
            "max_risk_fraction": float(self.max_risk_fraction),
            "min_lot": float(self.min_lot),
            "max_lot": float(self.max_lot),
            "dollar_per_pip_per_lot": float(self.dollar_per_pip_per_lot),
            "spread_pips": float(self.spread_pips),
            "commission_per_lot": float(self.commission_per_lot),
            "max_workers": self.resolved_workers,
            "seed": self.seed,
        }
