"""Momentum indicators evaluated over bar closes."""

from __future__ import annotations

from typing import Sequence

import numpy as np

NEUTRAL_RSI = 50.0
# Gain/loss ratio used when the window holds no losses; keeps RSI just under 100.
SATURATED_RS = 200.0


def rsi(closes: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    """
    Simple-average RSI aligned 1:1 with ``closes``.

    Indices up to and including ``period`` hold the neutral value 50 instead
    of raising on short histories. Each later index averages the ``period``
    close-to-close changes ending at that bar.
    """
    if int(period) < 1:
        raise ValueError("RSI period must be at least 1")
    period = int(period)

    values = np.asarray(closes, dtype=np.float64)
    out = np.full(values.size, NEUTRAL_RSI, dtype=np.float64)
    if values.size <= period + 1:
        return out

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas > 0, 0.0, -deltas)

    # Rolling sums over `period` deltas; window k covers deltas[k : k + period].
    window = np.ones(period, dtype=np.float64)
    avg_gain = np.convolve(gains, window, mode="valid") / period
    avg_loss = np.convolve(losses, window, mode="valid") / period

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = np.where(avg_loss == 0, SATURATED_RS, avg_gain / avg_loss)
    values_rsi = 100.0 - (100.0 / (1.0 + rs))

    # Window ending at delta index i-1 (bar i) starts at i - period; bar i = k + period.
    out[period + 1:] = values_rsi[1:]
    return out
