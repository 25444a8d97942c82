"""Result ranking and portfolio metrics for the winning trade ledger."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import pandas as pd

from .models import EXIT_STOP_LOSS, EXIT_TAKE_PROFIT, LEDGER_COLUMNS, TradeRecord, TrialResult, iso_utc

_STATUS_CODES = {EXIT_STOP_LOSS: "SL", EXIT_TAKE_PROFIT: "TP"}


def rank_results(results: Sequence[TrialResult], top_k: int = 10) -> list[TrialResult]:
    """Top ``top_k`` trials by score, descending; equal scores keep their input order."""
    if top_k <= 0:
        return []
    return sorted(results, key=lambda trial: trial.score, reverse=True)[:top_k]


def build_equity_curve(ledger: Sequence[TradeRecord], initial_balance: float) -> pd.DataFrame:
    """Ledger as a table with the running balance after each exit."""
    rows: list[dict[str, Any]] = []
    balance = float(initial_balance)
    for trade in ledger:
        balance += float(trade.profit_and_loss)
        rows.append(
            {
                "status": _STATUS_CODES.get(trade.exit_reason, trade.exit_reason),
                "direction": trade.direction,
                "lots": float(trade.lots),
                "entry_time": pd.Timestamp(trade.entry_time),
                "exit_time": pd.Timestamp(trade.exit_time),
                "entry_price": float(trade.entry_price),
                "exit_price": float(trade.exit_price),
                "pnl_usd": float(trade.profit_and_loss),
                "running_balance": balance,
            }
        )
    return pd.DataFrame(rows, columns=list(LEDGER_COLUMNS))


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit over gross loss; inf when there are only wins, 0 when nothing was made or lost."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    return math.inf if gross_profit > 0 else 0.0


def max_drawdown(balances: pd.Series, initial_balance: float) -> tuple[float, float]:
    """Largest peak-to-trough fall of the running balance, in currency and in percent of the peak."""
    if balances.empty:
        return 0.0, 0.0
    series = pd.concat([pd.Series([float(initial_balance)]), balances.astype(float)], ignore_index=True)
    peaks = series.cummax()
    drawdowns = peaks - series
    percents = (drawdowns / peaks.where(peaks > 0)).fillna(0.0) * 100.0
    return float(drawdowns.max()), float(percents.max())


@dataclass(frozen=True)
class PortfolioMetrics:
    initial_balance: float
    final_balance: float
    net_profit: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    gross_profit: float
    gross_loss: float
    profit_factor: float
    max_drawdown_usd: float
    max_drawdown_pct: float
    first_exit_date: Optional[str]
    last_exit_date: Optional[str]

    @property
    def date_range(self) -> str:
        return f"{self.first_exit_date} to {self.last_exit_date}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "initial_balance": self.initial_balance,
            "final_balance": self.final_balance,
            "net_profit": self.net_profit,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "win_rate": self.win_rate,
            "gross_profit": self.gross_profit,
            "gross_loss": self.gross_loss,
            "profit_factor": self.profit_factor,
            "max_drawdown_usd": self.max_drawdown_usd,
            "max_drawdown_pct": self.max_drawdown_pct,
            "date_range": self.date_range,
        }

    def kpi_rows(self) -> list[dict[str, str]]:
        """Display rows for the report's KPI table, money rounded to cents."""
        pf = "inf" if math.isinf(self.profit_factor) else f"{self.profit_factor:.2f}"
        return [
            {"metric": "Initial Balance", "value": f"${self.initial_balance:.2f}"},
            {"metric": "Final Balance", "value": f"${self.final_balance:.2f}"},
            {"metric": "Net Profit", "value": f"${self.net_profit:.2f}"},
            {"metric": "Total Trades", "value": str(self.total_trades)},
            {"metric": "Win Rate", "value": f"{self.win_rate * 100:.2f}%"},
            {"metric": "Profit Factor", "value": pf},
            {"metric": "Gross Profit", "value": f"${self.gross_profit:.2f}"},
            {"metric": "Gross Loss", "value": f"${self.gross_loss:.2f}"},
            {"metric": "Max Drawdown (USD)", "value": f"${self.max_drawdown_usd:.2f}"},
            {"metric": "Max Drawdown (%)", "value": f"{self.max_drawdown_pct:.2f}%"},
            {"metric": "Date Range", "value": self.date_range},
        ]


def compute_portfolio_metrics(
    ledger: Sequence[TradeRecord],
    initial_balance: float,
) -> Optional[PortfolioMetrics]:
    """Summarize one trade ledger; None when it holds no trades."""
    if not ledger:
        return None

    curve = build_equity_curve(ledger, initial_balance)
    pnl = curve["pnl_usd"]
    wins = pnl[pnl > 0]
    losses = pnl[pnl < 0]
    gross_profit = float(wins.sum())
    gross_loss = float(losses.abs().sum())
    drawdown_usd, drawdown_pct = max_drawdown(curve["running_balance"], initial_balance)
    final_balance = float(curve["running_balance"].iloc[-1])

    return PortfolioMetrics(
        initial_balance=float(initial_balance),
        final_balance=final_balance,
        net_profit=final_balance - float(initial_balance),
        total_trades=int(len(curve)),
        winning_trades=int(len(wins)),
        losing_trades=int(len(losses)),
        win_rate=float(len(wins)) / float(len(curve)),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        profit_factor=profit_factor(gross_profit, gross_loss),
        max_drawdown_usd=drawdown_usd,
        max_drawdown_pct=drawdown_pct,
        first_exit_date=iso_utc(ledger[0].exit_time.date()),
        last_exit_date=iso_utc(ledger[-1].exit_time.date()),
    )
