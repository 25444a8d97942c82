import numpy as np
import pytest

from optimizer.indicators import NEUTRAL_RSI, rsi


def test_output_length_matches_input():
    closes = np.linspace(100.0, 110.0, 40)
    assert rsi(closes, 14).shape == (40,)


def test_warm_up_values_are_neutral():
    closes = np.cumsum(np.random.default_rng(3).normal(0, 1, 60)) + 100.0
    values = rsi(closes, 14)
    assert np.all(values[:15] == NEUTRAL_RSI)


def test_short_history_is_all_neutral():
    assert np.all(rsi([1.0, 2.0, 3.0], 14) == NEUTRAL_RSI)
    assert np.all(rsi([1.0, 2.0, 3.0], 2) == NEUTRAL_RSI)


def test_values_stay_in_range():
    closes = np.cumsum(np.random.default_rng(11).normal(0, 1, 500)) + 1000.0
    values = rsi(closes, 7)
    assert np.all(values >= 0.0)
    assert np.all(values <= 100.0)


def test_only_gains_saturate_below_100():
    values = rsi(np.arange(1.0, 30.0), 5)
    assert values[-1] == pytest.approx(100.0 - 100.0 / 201.0)
    assert np.all(values < 100.0)


def test_only_losses_give_zero():
    values = rsi(np.arange(30.0, 1.0, -1.0), 5)
    assert values[-1] == pytest.approx(0.0)


def test_simple_average_window():
    closes = [10.0, 11.0, 10.0, 12.0, 11.0]
    values = rsi(closes, 2)
    # Index 3 averages the deltas -1 and +2; index 4 averages +2 and -1.
    assert values[3] == pytest.approx(100.0 - 100.0 / (1.0 + 2.0))
    assert values[4] == pytest.approx(100.0 - 100.0 / (1.0 + 2.0))


def test_period_below_one_raises():
    with pytest.raises(ValueError):
        rsi([1.0, 2.0], 0)
