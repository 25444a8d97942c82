"""Random strategy-parameter draws."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .models import StrategyParameters

TARGET_RATIOS: tuple[float, ...] = (0.382, 0.5, 0.618, 0.786, 1.0, 1.272, 1.618, 2.618)
PULLBACK_LIMITS: tuple[float, ...] = (0.382, 0.5, 0.618)
RSI_PERIOD_RANGE: tuple[int, int] = (7, 21)
OVERSOLD_RANGE: tuple[float, float] = (15.0, 30.0)
OVERBOUGHT_RANGE: tuple[float, float] = (70.0, 85.0)
STOP_LOSS_ATR_RANGE: tuple[float, float] = (1.5, 3.5)


class ParameterSampler:
    """Draw independent StrategyParameters from the documented bounds.

    ``seed`` may be an int, a ``numpy.random.SeedSequence`` or None (fresh
    entropy). Two samplers built from the same seed produce the same draws.
    """

    def __init__(
        self,
        timeframes: Sequence[int] = (),
        seed: Optional[int | np.random.SeedSequence] = None,
    ):
        self.timeframes = tuple(sorted(int(item) for item in timeframes))
        self._rng = np.random.default_rng(seed)

    def _multi_timeframe_period(self, timeframe_minutes: int) -> int:
        candidates = [item for item in self.timeframes if item >= timeframe_minutes]
        if not candidates:
            return int(timeframe_minutes)
        return int(candidates[int(self._rng.integers(len(candidates)))])

    def sample(self, instrument: str, timeframe_minutes: int) -> StrategyParameters:
        rng = self._rng
        low, high = RSI_PERIOD_RANGE
        overbought = round(float(rng.uniform(*OVERBOUGHT_RANGE)), 2)
        oversold = round(float(rng.uniform(*OVERSOLD_RANGE)), 2)
        threshold = overbought if rng.random() < 0.5 else oversold

        return StrategyParameters(
            instrument=instrument,
            timeframe_minutes=int(timeframe_minutes),
            target_ratio=float(TARGET_RATIOS[int(rng.integers(len(TARGET_RATIOS)))]),
            pullback_limit=float(PULLBACK_LIMITS[int(rng.integers(len(PULLBACK_LIMITS)))]),
            multi_timeframe_period=self._multi_timeframe_period(int(timeframe_minutes)),
            rsi_period=int(rng.integers(low, high + 1)),
            rsi_entry_threshold=threshold,
            stop_loss_atr_multiplier=round(float(rng.uniform(*STOP_LOSS_ATR_RANGE)), 1),
        )
