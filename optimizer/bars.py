"""Tick to fixed-interval OHLC bar aggregation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np

from core.market_metadata import get_pips_per_price_unit, normalize_instrument

from .models import Bar, BarSet, OptimizerConfig, Tick, ns_to_datetime

logger = logging.getLogger(__name__)

_EPOCH_UTC = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NS_PER_MINUTE = 60_000_000_000


def _datetime_to_ns(value: datetime) -> int:
    dt_value = value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    delta = dt_value - _EPOCH_UTC
    return int((delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000)


def bucket_start_ns(timestamp_ns: int, duration_ns: int) -> int:
    """Snap a timestamp down to the start of its bar bucket."""
    return (int(timestamp_ns) // duration_ns) * duration_ns


def _close_bar(bucket_ns: int, ohlc: list[float], pips_per_price_unit: float) -> Bar:
    open_, high, low, close = ohlc
    return Bar(
        time=ns_to_datetime(bucket_ns),
        open=open_,
        high=high,
        low=low,
        close=close,
        volatility_pips=round(abs(high - low) * pips_per_price_unit, 2),
    )


def aggregate_bars(
    ticks: Iterable[Tick],
    timeframe_minutes: int,
    pips_per_price_unit: float,
    max_bars: Optional[int] = None,
) -> Iterator[Bar]:
    """
    Fold time-ordered ticks into closed bars of ``timeframe_minutes``.

    A bar closes when a tick lands in a later bucket; the in-progress bar is
    flushed when the ticks run out. Once ``max_bars`` bars have closed no
    further ticks are consumed. Bars whose range rounds to zero pips are
    counted against the cap but not yielded.
    """
    if timeframe_minutes <= 0:
        raise ValueError("timeframe_minutes must be positive")
    duration_ns = int(timeframe_minutes) * _NS_PER_MINUTE

    current_bucket: Optional[int] = None
    ohlc: list[float] = []
    closed = 0

    for tick in ticks:
        price = float(tick.mid_price)
        bucket = bucket_start_ns(_datetime_to_ns(tick.timestamp), duration_ns)

        if current_bucket is None or bucket > current_bucket:
            if current_bucket is not None:
                bar = _close_bar(current_bucket, ohlc, pips_per_price_unit)
                closed += 1
                if bar.volatility_pips > 0:
                    yield bar
                if max_bars is not None and closed >= max_bars:
                    return
            current_bucket = bucket
            ohlc = [price, price, price, price]
            continue

        ohlc[1] = max(ohlc[1], price)
        ohlc[2] = min(ohlc[2], price)
        ohlc[3] = price

    if current_bucket is not None:
        bar = _close_bar(current_bucket, ohlc, pips_per_price_unit)
        if bar.volatility_pips > 0:
            yield bar


class BarAggregator:
    """Restartable bar sequence: every iteration re-runs the fold over the same ticks."""

    def __init__(
        self,
        ticks: Sequence[Tick],
        timeframe_minutes: int,
        pips_per_price_unit: float,
        max_bars: Optional[int] = None,
    ):
        # Source order is not guaranteed; sorted() is stable for equal timestamps.
        self._ticks = sorted(ticks, key=lambda tick: tick.timestamp)
        self.timeframe_minutes = int(timeframe_minutes)
        self.pips_per_price_unit = float(pips_per_price_unit)
        self.max_bars = max_bars

    def __iter__(self) -> Iterator[Bar]:
        return aggregate_bars(
            self._ticks,
            self.timeframe_minutes,
            self.pips_per_price_unit,
            max_bars=self.max_bars,
        )


def _readonly(values: list[float] | list[int], dtype: type) -> np.ndarray:
    array = np.asarray(values, dtype=dtype)
    array.setflags(write=False)
    return array


def bars_to_bar_set(
    bars: Iterable[Bar],
    instrument: str,
    timeframe_minutes: int,
    pips_per_price_unit: float,
) -> BarSet:
    """Materialize bars into the columnar container used by the simulator."""
    times: list[int] = []
    opens: list[float] = []
    highs: list[float] = []
    lows: list[float] = []
    closes: list[float] = []
    volatility: list[float] = []
    for bar in bars:
        times.append(_datetime_to_ns(bar.time))
        opens.append(bar.open)
        highs.append(bar.high)
        lows.append(bar.low)
        closes.append(bar.close)
        volatility.append(bar.volatility_pips)

    return BarSet(
        instrument=instrument,
        timeframe_minutes=int(timeframe_minutes),
        pips_per_price_unit=float(pips_per_price_unit),
        time_ns=_readonly(times, np.int64),
        open=_readonly(opens, np.float64),
        high=_readonly(highs, np.float64),
        low=_readonly(lows, np.float64),
        close=_readonly(closes, np.float64),
        volatility_pips=_readonly(volatility, np.float64),
    )


def build_bar_set(
    instrument: str,
    ticks: Sequence[Tick],
    timeframe_minutes: int,
    max_bars: Optional[int] = None,
    pips_per_price_unit: Optional[float] = None,
) -> BarSet:
    """Aggregate one instrument's ticks into a BarSet for one timeframe."""
    inst = normalize_instrument(instrument)
    pppu = float(pips_per_price_unit) if pips_per_price_unit is not None else get_pips_per_price_unit(inst)
    aggregator = BarAggregator(ticks, timeframe_minutes, pppu, max_bars=max_bars)
    return bars_to_bar_set(aggregator, inst, timeframe_minutes, pppu)


def build_chart_bar_sets(
    ticks_by_instrument: dict[str, list[Tick]],
    config: OptimizerConfig,
) -> dict[tuple[str, int], BarSet]:
    """Build one BarSet per configured (instrument, timeframe) chart."""
    charts: dict[tuple[str, int], BarSet] = {}
    for instrument in sorted(ticks_by_instrument):
        ticks = ticks_by_instrument[instrument]
        for minutes in config.timeframes:
            bar_set = build_bar_set(instrument, ticks, minutes, max_bars=config.max_bars_per_chart)
            charts[(bar_set.instrument, minutes)] = bar_set
            logger.info(
                "Generated %s %sm bars for %s (%s to %s)",
                bar_set.rows,
                minutes,
                bar_set.instrument,
                bar_set.start_time_utc,
                bar_set.end_time_utc,
            )
    return charts
