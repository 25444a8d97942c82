"""Shared fixtures: synthetic ticks, bars and configs built in code."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from optimizer.bars import build_bar_set
from optimizer.models import OptimizerConfig, StrategyParameters, Tick

START = datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)


def ticks_from_bar_prices(bar_prices, timeframe_minutes=5, start=START):
    """One list of mid prices per bar; ticks are spaced 10 seconds apart inside each bucket."""
    ticks = []
    for bar_index, prices in enumerate(bar_prices):
        bucket_start = start + timedelta(minutes=timeframe_minutes * bar_index)
        for tick_index, price in enumerate(prices):
            ticks.append(Tick(timestamp=bucket_start + timedelta(seconds=10 * tick_index), mid_price=float(price)))
    return ticks


def random_walk_ticks(bars=120, ticks_per_bar=6, timeframe_minutes=5, seed=7, start_price=2000.0):
    rng = np.random.default_rng(seed)
    price = start_price
    bar_prices = []
    for _ in range(bars):
        prices = []
        for _ in range(ticks_per_bar):
            price = round(price + float(rng.normal(0.0, 0.4)), 2)
            prices.append(price)
        bar_prices.append(prices)
    return ticks_from_bar_prices(bar_prices, timeframe_minutes=timeframe_minutes)


def make_config(tmp_path=None, **overrides):
    values = {
        "data_dir": tmp_path if tmp_path is not None else "data",
        "report_dir": (tmp_path / "reports") if tmp_path is not None else "reports",
        "timeframes": [5],
        "samples_per_chart": 8,
        "max_workers": 2,
        "seed": 1234,
    }
    values.update(overrides)
    return OptimizerConfig.from_dict(values)


def make_params(**overrides):
    values = {
        "instrument": "XAU_USD",
        "timeframe_minutes": 5,
        "target_ratio": 1.0,
        "pullback_limit": 0.5,
        "multi_timeframe_period": 15,
        "rsi_period": 2,
        "rsi_entry_threshold": 30.0,
        "stop_loss_atr_multiplier": 1.5,
    }
    values.update(overrides)
    return StrategyParameters(**values)


# Four falling closes drive RSI(2) to 0, so bar 4 opens a long at 1997.00.
FALLING_THEN_STOP = [
    [2000.0, 2000.5, 1999.5, 1999.8],
    [1999.8, 1999.0],
    [1999.0, 1998.0],
    [1998.0, 1997.0],
    [1997.0, 1998.0],
    [1998.0, 1995.0],
]

FALLING_THEN_TARGET = FALLING_THEN_STOP[:5] + [[1998.0, 1999.0]]

# Mirror image: rising closes push RSI(2) to its ceiling and bar 4 opens a short at 2003.00.
RISING_THEN_STOP = [
    [2000.0, 2000.2],
    [2000.2, 2001.0],
    [2001.0, 2002.0],
    [2002.0, 2003.0],
    [2003.0, 2002.0],
    [2002.0, 2005.0],
]


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def walk_bar_set():
    return build_bar_set("XAU_USD", random_walk_ticks(), 5)


@pytest.fixture
def stop_scenario_bars():
    return build_bar_set("XAU_USD", ticks_from_bar_prices(FALLING_THEN_STOP), 5)
