import numpy as np

from optimizer.sampler import PULLBACK_LIMITS, TARGET_RATIOS, ParameterSampler

TIMEFRAMES = (5, 15, 30, 60, 240)


def test_samples_stay_within_bounds():
    sampler = ParameterSampler(TIMEFRAMES, seed=99)
    for _ in range(500):
        params = sampler.sample("XAU_USD", 15)
        assert params.instrument == "XAU_USD"
        assert params.timeframe_minutes == 15
        assert params.target_ratio in TARGET_RATIOS
        assert params.pullback_limit in PULLBACK_LIMITS
        assert 7 <= params.rsi_period <= 21
        assert isinstance(params.rsi_period, int)
        assert 70.0 <= params.rsi_entry_threshold <= 85.0 or 15.0 <= params.rsi_entry_threshold <= 30.0
        assert round(params.rsi_entry_threshold, 2) == params.rsi_entry_threshold
        assert 1.5 <= params.stop_loss_atr_multiplier <= 3.5
        assert round(params.stop_loss_atr_multiplier, 1) == params.stop_loss_atr_multiplier
        assert params.multi_timeframe_period in (15, 30, 60, 240)


def test_both_threshold_bands_are_drawn():
    sampler = ParameterSampler(TIMEFRAMES, seed=5)
    thresholds = [sampler.sample("XAU_USD", 5).rsi_entry_threshold for _ in range(200)]
    assert any(value > 50 for value in thresholds)
    assert any(value < 50 for value in thresholds)


def test_same_seed_reproduces_draws():
    first = ParameterSampler(TIMEFRAMES, seed=42)
    second = ParameterSampler(TIMEFRAMES, seed=42)
    assert [first.sample("XAU_USD", 5) for _ in range(20)] == [second.sample("XAU_USD", 5) for _ in range(20)]


def test_seed_sequence_children_differ():
    left, right = np.random.SeedSequence(7).spawn(2)
    sampler_left = ParameterSampler(TIMEFRAMES, seed=left)
    sampler_right = ParameterSampler(TIMEFRAMES, seed=right)
    draws_left = [sampler_left.sample("XAU_USD", 5) for _ in range(5)]
    draws_right = [sampler_right.sample("XAU_USD", 5) for _ in range(5)]
    assert draws_left != draws_right


def test_multi_timeframe_period_falls_back_to_chart_timeframe():
    assert ParameterSampler((), seed=1).sample("XAU_USD", 60).multi_timeframe_period == 60
    assert ParameterSampler(TIMEFRAMES, seed=1).sample("XAU_USD", 240).multi_timeframe_period == 240
