"""Random-search strategy optimizer over tick-derived OHLC bars."""

from .bars import BarAggregator, aggregate_bars, build_bar_set, build_chart_bar_sets
from .indicators import rsi
from .models import (
    LONG,
    SENTINEL_SCORE,
    SHORT,
    BacktestResult,
    Bar,
    BarSet,
    OptimizerConfig,
    StrategyParameters,
    Tick,
    TradeRecord,
    TrialResult,
)
from .ranking import PortfolioMetrics, build_equity_curve, compute_portfolio_metrics, rank_results
from .reporting import write_optimization_artifacts
from .sampler import ParameterSampler
from .search import OptimizationError, SearchOrchestrator, SearchOutcome, describe_outcome
from .simulator import compute_score, position_size, simulate
from .tick_source import TickFeeder, TickLoad

__all__ = [
    "LONG",
    "SHORT",
    "SENTINEL_SCORE",
    "Tick",
    "Bar",
    "BarSet",
    "StrategyParameters",
    "TradeRecord",
    "BacktestResult",
    "TrialResult",
    "OptimizerConfig",
    "TickFeeder",
    "TickLoad",
    "aggregate_bars",
    "BarAggregator",
    "build_bar_set",
    "build_chart_bar_sets",
    "rsi",
    "ParameterSampler",
    "simulate",
    "position_size",
    "compute_score",
    "SearchOrchestrator",
    "SearchOutcome",
    "OptimizationError",
    "describe_outcome",
    "rank_results",
    "compute_portfolio_metrics",
    "build_equity_curve",
    "PortfolioMetrics",
    "write_optimization_artifacts",
]
