import pytest

from conftest import (
    FALLING_THEN_TARGET,
    RISING_THEN_STOP,
    make_config,
    make_params,
    random_walk_ticks,
    ticks_from_bar_prices,
)
from optimizer.bars import build_bar_set
from optimizer.models import EXIT_STOP_LOSS, EXIT_TAKE_PROFIT, LONG, SENTINEL_SCORE, SHORT
from optimizer.ranking import build_equity_curve, compute_portfolio_metrics
from optimizer.simulator import compute_score, entry_signal, position_size, risk_lot_size, simulate


def _expected_pnl(price_move, lots, config):
    return price_move * 100.0 * config.dollar_per_pip_per_lot * lots - lots * config.commission_per_lot


def test_long_entry_then_stop_loss(tmp_path, stop_scenario_bars):
    config = make_config(tmp_path, initial_balance=1000.0)
    result = simulate(make_params(), stop_scenario_bars, config)

    assert result.trade_count == 1
    trade = result.trade_ledger[0]
    lots = position_size(1000.0, 150.0, config)
    assert trade.direction == LONG
    assert trade.exit_reason == EXIT_STOP_LOSS
    assert trade.lots == pytest.approx(lots)
    assert trade.entry_price == pytest.approx(1997.01)
    assert trade.exit_price == pytest.approx(1995.50)
    assert trade.profit_and_loss < 0
    assert trade.profit_and_loss == pytest.approx(_expected_pnl(-1.51, lots, config))
    assert result.final_balance == pytest.approx(1000.0 + trade.profit_and_loss)
    assert result.score == pytest.approx(compute_score(trade.profit_and_loss, 1))
    assert trade.exit_time > trade.entry_time


def test_long_entry_then_take_profit(tmp_path):
    config = make_config(tmp_path, initial_balance=1000.0)
    bars = build_bar_set("XAU_USD", ticks_from_bar_prices(FALLING_THEN_TARGET), 5)
    result = simulate(make_params(), bars, config)

    assert result.trade_count == 1
    trade = result.trade_ledger[0]
    assert trade.exit_reason == EXIT_TAKE_PROFIT
    assert trade.exit_price == pytest.approx(1998.50)
    assert trade.profit_and_loss == pytest.approx(_expected_pnl(1.49, trade.lots, config))
    assert result.final_balance > 1000.0


def test_short_entry_then_stop_loss(tmp_path):
    config = make_config(tmp_path, initial_balance=1000.0)
    bars = build_bar_set("XAU_USD", ticks_from_bar_prices(RISING_THEN_STOP), 5)
    result = simulate(make_params(rsi_entry_threshold=70.0), bars, config)

    assert result.trade_count == 1
    trade = result.trade_ledger[0]
    assert trade.direction == SHORT
    assert trade.exit_reason == EXIT_STOP_LOSS
    assert trade.entry_price == pytest.approx(2002.99)
    assert trade.exit_price == pytest.approx(2004.50)
    assert trade.profit_and_loss == pytest.approx(_expected_pnl(-1.51, trade.lots, config))


def test_threshold_on_wrong_side_never_trades(tmp_path, stop_scenario_bars):
    config = make_config(tmp_path, initial_balance=1000.0)
    result = simulate(make_params(rsi_entry_threshold=70.0), stop_scenario_bars, config)
    assert result.trade_count == 0
    assert result.final_balance == 1000.0
    assert result.score == 0.0


def test_wiped_account_is_floored_to_zero(tmp_path, stop_scenario_bars):
    config = make_config(tmp_path, initial_balance=10.0)
    result = simulate(make_params(), stop_scenario_bars, config)

    assert result.trade_count == 1
    assert result.trade_ledger[0].lots == pytest.approx(0.01)
    assert result.final_balance == 0.0
    assert result.score == pytest.approx(compute_score(-10.0, 1))
    assert result.trade_ledger[0].profit_and_loss == pytest.approx(-10.0)


def test_wiped_account_metrics_agree_with_floored_balance(tmp_path, stop_scenario_bars):
    config = make_config(tmp_path, initial_balance=10.0)
    result = simulate(make_params(), stop_scenario_bars, config)
    metrics = compute_portfolio_metrics(result.trade_ledger, config.initial_balance)
    curve = build_equity_curve(result.trade_ledger, config.initial_balance)

    assert metrics.final_balance == pytest.approx(result.final_balance)
    assert metrics.max_drawdown_pct == pytest.approx(100.0)
    assert curve["running_balance"].min() >= 0.0


@pytest.mark.parametrize("multiplier", [0.0, -1.5])
def test_non_positive_stop_multiplier_returns_sentinel(tmp_path, stop_scenario_bars, multiplier):
    config = make_config(tmp_path, initial_balance=1000.0)
    result = simulate(make_params(stop_loss_atr_multiplier=multiplier), stop_scenario_bars, config)

    assert result.score == SENTINEL_SCORE
    assert result.trade_count == 0
    assert result.final_balance == config.initial_balance


def test_insufficient_bars_return_sentinel(tmp_path):
    config = make_config(tmp_path)
    bars = build_bar_set("XAU_USD", random_walk_ticks(bars=5), 5)
    result = simulate(make_params(rsi_period=14), bars, config)

    assert result.score == SENTINEL_SCORE
    assert result.trade_count == 0
    assert result.trade_ledger == ()
    assert result.final_balance == config.initial_balance


def test_simulation_is_idempotent(tmp_path, walk_bar_set):
    config = make_config(tmp_path, initial_balance=1000.0)
    params = make_params(rsi_period=7, rsi_entry_threshold=40.0, target_ratio=1.618)
    assert simulate(params, walk_bar_set, config) == simulate(params, walk_bar_set, config)


def test_ledger_balances_add_up(tmp_path, walk_bar_set):
    config = make_config(tmp_path, initial_balance=1000.0)
    result = simulate(make_params(rsi_period=3, rsi_entry_threshold=45.0), walk_bar_set, config)

    total = sum(trade.profit_and_loss for trade in result.trade_ledger)
    assert result.final_balance == pytest.approx(1000.0 + total)
    for previous, current in zip(result.trade_ledger, result.trade_ledger[1:]):
        assert current.entry_time >= previous.exit_time


def test_risk_sizing_is_clamped_to_min_lot(tmp_path):
    config = make_config(tmp_path)
    assert risk_lot_size(10.0, 0.02, 20.0, 10.0) == pytest.approx(0.001)
    assert position_size(10.0, 20.0, config) == 0.01


def test_risk_sizing_is_clamped_to_max_lot(tmp_path):
    config = make_config(tmp_path)
    assert position_size(1_000_000.0, 10.0, config) == config.max_lot


def test_score_is_monotonic():
    assert compute_score(10.0, 3) > compute_score(5.0, 3)
    assert compute_score(10.0, 4) > compute_score(10.0, 3)
    assert compute_score(10.0, 2) == pytest.approx(25.0)


def test_entry_signal_directions():
    assert entry_signal(20.0, 30.0) == LONG
    assert entry_signal(35.0, 30.0) is None
    assert entry_signal(80.0, 75.0) == SHORT
    assert entry_signal(60.0, 75.0) is None
    assert entry_signal(10.0, 75.0) is None
