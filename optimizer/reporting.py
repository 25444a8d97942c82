"""Result document, winner ledger and report artifacts for an optimization run."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.dates as mdates  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
from matplotlib.ticker import FuncFormatter  # noqa: E402

from .models import OptimizerConfig, TrialResult, iso_utc  # noqa: E402
from .ranking import PortfolioMetrics, build_equity_curve, compute_portfolio_metrics  # noqa: E402

logger = logging.getLogger(__name__)

RESULTS_DESCRIPTION = "Top strategy parameter sets from random search over tick-derived bars"
_MONEY_COLUMNS = ("entry_price", "exit_price", "pnl_usd", "running_balance", "lots")


def _json_default(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat().replace("+00:00", "Z")
    if hasattr(value, "isoformat"):
        try:
            return value.isoformat()
        except TypeError:
            return str(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def _finite_or_none(value: float) -> Optional[float]:
    return None if math.isinf(value) or math.isnan(value) else round(float(value), 2)


def build_results_document(
    top_results: Sequence[TrialResult],
    outcome_summary: dict[str, Any],
    generated_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Results payload: run metadata plus the ranked parameter sets (ledgers left out)."""
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "metadata": {
            "description": RESULTS_DESCRIPTION,
            "total_trials": int(outcome_summary.get("total_trials", 0)),
            "elapsed_seconds": outcome_summary.get("elapsed_seconds"),
            "output_timestamp": iso_utc(generated_at),
            "seed": outcome_summary.get("seed"),
            "charts_searched": list(outcome_summary.get("charts_searched", [])),
            "skipped_charts": dict(outcome_summary.get("skipped_charts", {})),
        },
        "top_results": [trial.to_dict() for trial in top_results],
    }


def ledger_frame(trial: TrialResult, initial_balance: float) -> pd.DataFrame:
    """Winner's ledger with running balance, money columns rounded to cents."""
    df = build_equity_curve(trial.result.trade_ledger, initial_balance)
    for col in _MONEY_COLUMNS:
        df[col] = df[col].astype(float).round(2)
    for col in ("entry_time", "exit_time"):
        df[col] = pd.to_datetime(df[col], utc=True).dt.strftime("%Y-%m-%dT%H:%M:%SZ")
    return df


def _md_table(rows: list[dict[str, Any]], columns: list[str]) -> str:
    if not rows:
        return "_No rows_\n"
    header = "| " + " | ".join(columns) + " |"
    sep = "| " + " | ".join(["---"] * len(columns)) + " |"
    body: list[str] = []
    for row in rows:
        values: list[str] = []
        for col in columns:
            value = row.get(col)
            if isinstance(value, float):
                values.append(f"{value:.2f}")
            elif value is None:
                values.append("")
            else:
                values.append(str(value))
        body.append("| " + " | ".join(values) + " |")
    return "\n".join([header, sep, *body]) + "\n"


def plot_equity_curve(
    ledger_df: pd.DataFrame,
    initial_balance: float,
    path: Path,
    title: str,
) -> Path:
    """Save the running balance against exit time as a PNG."""
    times = pd.to_datetime(ledger_df["exit_time"], utc=True).dt.tz_convert(None)
    fig, ax = plt.subplots(figsize=(12, 6))
    try:
        ax.plot(times, ledger_df["running_balance"], linewidth=2, color="k", label="Balance")
        ax.axhline(float(initial_balance), linestyle="--", linewidth=1, color="r", label="Initial balance")
        ax.grid(True, linestyle=":")
        ax.xaxis.set_major_formatter(mdates.DateFormatter("%Y-%m-%d"))
        ax.yaxis.set_major_formatter(FuncFormatter(lambda x, _: f"${x:,.2f}"))
        ax.set_ylabel("Balance ($)")
        ax.set_xlabel("Exit time (UTC)")
        ax.set_title(title)
        ax.legend()
        fig.autofmt_xdate()
        fig.tight_layout()
        fig.savefig(path, dpi=150, bbox_inches="tight")
    finally:
        plt.close(fig)
    return path


def _write_markdown_report(
    report_path: Path,
    winner: TrialResult,
    metrics: PortfolioMetrics,
    ledger_df: pd.DataFrame,
    plot_name: str,
) -> None:
    params = winner.parameters
    sections: list[str] = []
    sections.append("# Strategy Optimization Report")
    sections.append("")
    sections.append("## Best Parameters")
    sections.append("")
    sections.append(_md_table(
        [{"parameter": key, "value": value} for key, value in params.to_dict().items()]
        + [{"parameter": "optimization_score", "value": round(float(winner.score), 2)}],
        ["parameter", "value"],
    ).rstrip())
    sections.append("")
    sections.append("## Performance")
    sections.append("")
    sections.append(_md_table(metrics.kpi_rows(), ["metric", "value"]).rstrip())
    sections.append("")
    sections.append("## Equity Curve")
    sections.append("")
    sections.append(f"![Equity curve]({plot_name})")
    sections.append("")
    sections.append("## Trade Ledger")
    sections.append("")
    sections.append(_md_table(ledger_df.to_dict(orient="records"), list(ledger_df.columns)).rstrip())
    sections.append("")

    report_path.write_text("\n".join(sections), encoding="utf-8")


def write_optimization_artifacts(
    top_results: Sequence[TrialResult],
    outcome_summary: dict[str, Any],
    config: OptimizerConfig,
    report_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Write results JSON and, when the winner traded, ledger CSV, report and equity curve."""
    out_dir = Path(report_dir or config.report_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    results_path = out_dir / "optimization_results.json"
    run_cfg_path = out_dir / "run_config.json"
    document = build_results_document(top_results, outcome_summary)
    results_path.write_text(json.dumps(document, indent=2, default=_json_default), encoding="utf-8")
    run_cfg_path.write_text(json.dumps(config.to_dict(), indent=2, default=_json_default), encoding="utf-8")
    logger.info("Saved top %s results to %s", len(top_results), results_path)

    paths: dict[str, str] = {
        "report_dir": str(out_dir),
        "results_json": str(results_path),
        "run_config_json": str(run_cfg_path),
    }
    artifacts: dict[str, Any] = {"results": document, "metrics": None, "paths": paths}

    if not top_results:
        logger.warning("No results to report")
        return artifacts

    winner = top_results[0]
    metrics = compute_portfolio_metrics(winner.result.trade_ledger, config.initial_balance)
    if metrics is None:
        logger.warning("Best parameter set made no trades; skipping ledger and report")
        return artifacts

    ledger_df = ledger_frame(winner, config.initial_balance)
    ledger_path = out_dir / "best_trade_ledger.csv"
    plot_path = out_dir / "equity_curve.png"
    report_path = out_dir / "report.md"

    ledger_df.to_csv(ledger_path, index=False)
    params = winner.parameters
    plot_equity_curve(
        ledger_df,
        config.initial_balance,
        plot_path,
        title=(
            f"{params.instrument} {params.timeframe_minutes}min | "
            f"Net: ${metrics.net_profit:,.2f} | Max DD: {metrics.max_drawdown_pct:.1f}%"
        ),
    )
    _write_markdown_report(report_path, winner, metrics, ledger_df, plot_path.name)

    metrics_payload = metrics.to_dict()
    metrics_payload["profit_factor"] = _finite_or_none(metrics.profit_factor)
    artifacts["metrics"] = metrics_payload
    paths.update(
        {
            "ledger_csv": str(ledger_path),
            "report_md": str(report_path),
            "equity_curve_png": str(plot_path),
        }
    )
    logger.info("Wrote ledger (%s trades) and report to %s", metrics.total_trades, out_dir)
    return artifacts
