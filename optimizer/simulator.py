"""Bar-by-bar trade lifecycle simulation for one parameter set."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .indicators import rsi
from .models import (
    EXIT_STOP_LOSS,
    EXIT_TAKE_PROFIT,
    LONG,
    SENTINEL_SCORE,
    SHORT,
    BacktestResult,
    BarSet,
    OptimizerConfig,
    StrategyParameters,
    TradeRecord,
    ns_to_datetime,
)

RSI_MIDLINE = 50.0
# An account at or below one cent cannot keep trading.
BALANCE_FLOOR = 0.01
PROFIT_WEIGHT = 0.5
TRADE_COUNT_WEIGHT = 10.0


def compute_score(net_profit: float, trade_count: int) -> float:
    """Optimization score: half the net profit plus ten points per closed trade."""
    return float(net_profit) * PROFIT_WEIGHT + int(trade_count) * TRADE_COUNT_WEIGHT


def risk_lot_size(
    balance: float,
    max_risk_fraction: float,
    stop_distance_pips: float,
    dollar_per_pip_per_lot: float,
) -> float:
    """Lots that lose ``balance * max_risk_fraction`` if the stop is hit (unclamped)."""
    return (float(balance) * float(max_risk_fraction)) / (float(stop_distance_pips) * float(dollar_per_pip_per_lot))


def position_size(balance: float, stop_distance_pips: float, config: OptimizerConfig) -> float:
    raw = risk_lot_size(balance, config.max_risk_fraction, stop_distance_pips, config.dollar_per_pip_per_lot)
    return max(min(raw, config.max_lot), config.min_lot)


def entry_signal(previous_rsi: float, threshold: float) -> Optional[str]:
    """
    Direction implied by the previous bar's RSI.

    A threshold under the midline only ever yields longs, one above it only
    shorts, so each parameter draw trades a single direction.
    """
    if threshold < RSI_MIDLINE and previous_rsi < threshold:
        return LONG
    if threshold > RSI_MIDLINE and previous_rsi > threshold:
        return SHORT
    return None


@dataclass
class Position:
    direction: str
    entry_price: float
    stop_loss: float
    take_profit: float
    lots: float
    entry_time_ns: int


def _check_exit(position: Position, high: float, low: float) -> tuple[Optional[float], Optional[str]]:
    # Stop-loss wins when both levels sit inside the same bar.
    if position.direction == LONG:
        if low <= position.stop_loss:
            return position.stop_loss, EXIT_STOP_LOSS
        if high >= position.take_profit:
            return position.take_profit, EXIT_TAKE_PROFIT
    else:
        if high >= position.stop_loss:
            return position.stop_loss, EXIT_STOP_LOSS
        if low <= position.take_profit:
            return position.take_profit, EXIT_TAKE_PROFIT
    return None, None


def sentinel_result(config: OptimizerConfig) -> BacktestResult:
    """Result for a trial that cannot run; always ranks below real trials."""
    return BacktestResult(
        score=SENTINEL_SCORE,
        final_balance=float(config.initial_balance),
        trade_count=0,
        trade_ledger=(),
    )


def simulate(parameters: StrategyParameters, bars: BarSet, config: OptimizerConfig) -> BacktestResult:
    """
    Replay ``bars`` under ``parameters`` and return the scored outcome.

    Per bar the open position is checked for an exit first, then a flat book
    may open a new position at the bar's open. Spread is charged half on
    entry and half on exit; commission is charged per lot on exit. A
    position still open after the last bar is not realized. A loss that takes
    the balance to the floor is recorded as the remaining balance and ends the run.
    """
    if bars.rows < parameters.rsi_period + 1:
        return sentinel_result(config)
    if parameters.stop_loss_atr_multiplier <= 0:
        return sentinel_result(config)

    pips_per_unit = float(bars.pips_per_price_unit)
    half_spread = (float(config.spread_pips) / pips_per_unit) / 2.0
    value_per_price_unit = pips_per_unit * float(config.dollar_per_pip_per_lot)

    time_ns = bars.time_ns.tolist()
    opens = bars.open.tolist()
    highs = bars.high.tolist()
    lows = bars.low.tolist()
    volatility = bars.volatility_pips.tolist()
    rsi_values = rsi(bars.close, parameters.rsi_period).tolist()

    balance = float(config.initial_balance)
    ledger: list[TradeRecord] = []
    position: Optional[Position] = None

    for i in range(1, len(time_ns)):
        if position is not None:
            level, reason = _check_exit(position, highs[i], lows[i])
            if level is not None:
                if position.direction == LONG:
                    fill = level - half_spread
                    price_move = fill - position.entry_price
                else:
                    fill = level + half_spread
                    price_move = position.entry_price - fill

                pnl = price_move * value_per_price_unit * position.lots
                pnl -= abs(position.lots) * float(config.commission_per_lot)
                wiped_out = balance + pnl <= BALANCE_FLOOR
                if wiped_out:
                    # The ledger records only what the account could lose.
                    pnl = -balance
                balance = 0.0 if wiped_out else balance + pnl
                ledger.append(
                    TradeRecord(
                        direction=position.direction,
                        lots=position.lots,
                        entry_time=ns_to_datetime(position.entry_time_ns),
                        exit_time=ns_to_datetime(time_ns[i]),
                        entry_price=position.entry_price,
                        exit_price=fill,
                        profit_and_loss=pnl,
                        exit_reason=reason,
                    )
                )
                position = None
                if wiped_out:
                    break

        if position is not None or i < parameters.rsi_period:
            continue

        stop_pips = float(parameters.stop_loss_atr_multiplier) * volatility[i]
        if stop_pips <= 0:
            continue

        lots = position_size(balance, stop_pips, config)
        direction = entry_signal(rsi_values[i - 1], float(parameters.rsi_entry_threshold))
        if direction is None or lots < config.min_lot:
            continue

        stop_distance = stop_pips / pips_per_unit
        target_distance = stop_distance * float(parameters.target_ratio)
        if direction == LONG:
            entry_price = opens[i] + half_spread
            stop_loss = entry_price - stop_distance
            take_profit = entry_price + target_distance
        else:
            entry_price = opens[i] - half_spread
            stop_loss = entry_price + stop_distance
            take_profit = entry_price - target_distance

        position = Position(
            direction=direction,
            entry_price=entry_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            lots=lots,
            entry_time_ns=time_ns[i],
        )

    return BacktestResult(
        score=compute_score(balance - float(config.initial_balance), len(ledger)),
        final_balance=balance,
        trade_count=len(ledger),
        trade_ledger=tuple(ledger),
    )
