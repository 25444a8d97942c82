"""CLI for the random-search strategy optimizer and tick-data inspection."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

_HERE = Path(__file__).parent
if str(_HERE) not in sys.path:
    sys.path.insert(0, str(_HERE))

from core.logging_setup import setup_logging  # noqa: E402
from optimizer import (  # noqa: E402
    OptimizationError,
    OptimizerConfig,
    SearchOrchestrator,
    TickFeeder,
    build_chart_bar_sets,
    describe_outcome,
    rank_results,
    write_optimization_artifacts,
)

EXIT_CONFIG_ERROR = 2
EXIT_OPTIMIZATION_ERROR = 3
EXIT_NO_TICK_DATA = 4


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Random-search strategy optimizer over tick history")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument("--logs-dir", help="Directory for the rotating log file (default: ./logs)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    optimize_parser = subparsers.add_parser("optimize", help="Run the parameter search from a JSON config")
    optimize_parser.add_argument("--config", required=True, help="Path to the optimizer JSON config")
    optimize_parser.add_argument("--seed", type=int, help="Root RNG seed (overrides config)")
    optimize_parser.add_argument("--workers", type=int, help="Worker process count (overrides config)")
    optimize_parser.add_argument("--samples", type=int, help="Samples per chart (overrides config)")
    optimize_parser.add_argument("--data-dir", help="Tick data directory (overrides config)")
    optimize_parser.add_argument("--report-dir", help="Output directory (overrides config)")

    inspect_parser = subparsers.add_parser("inspect-data", help="Summarize tick files without optimizing")
    inspect_parser.add_argument("--data-dir", required=True, help="Directory containing tick files")
    inspect_parser.add_argument("--files", nargs="+", metavar="FILE", help="Optional subset of tick files")
    inspect_parser.add_argument(
        "--max-ticks-per-file",
        type=int,
        default=500_000,
        help="Per-file tick cap applied while reading",
    )

    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> OptimizerConfig:
    config = OptimizerConfig.from_path(args.config)
    return config.with_overrides(
        seed=args.seed,
        max_workers=args.workers,
        samples_per_chart=args.samples,
        data_dir=Path(args.data_dir) if args.data_dir else None,
        report_dir=Path(args.report_dir) if args.report_dir else None,
    )


def _run_optimize(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    config_path = Path(args.config)
    if not config_path.exists():
        logger.error("config does not exist: %s", config_path)
        return EXIT_CONFIG_ERROR

    try:
        config = _load_config(args)
    except ValueError as exc:
        logger.error("Invalid config %s: %s", config_path, exc)
        return EXIT_CONFIG_ERROR

    logger.info(
        "Starting optimization: data_dir=%s samples/chart=%s timeframes=%s workers=%s",
        config.data_dir,
        config.samples_per_chart,
        list(config.timeframes),
        config.resolved_workers,
    )

    feeder = TickFeeder(config.data_dir, max_ticks_per_file=config.max_ticks_per_file)
    ticks_by_instrument = feeder.load_all(config.tick_files, config.instruments)
    if not ticks_by_instrument:
        logger.error("No tick data loaded from %s", config.data_dir)
        return EXIT_NO_TICK_DATA

    charts = build_chart_bar_sets(ticks_by_instrument, config)
    orchestrator = SearchOrchestrator(config)
    try:
        outcome = orchestrator.run(charts)
    except OptimizationError as exc:
        logger.error("Optimization aborted: %s", exc)
        return EXIT_OPTIMIZATION_ERROR

    top_results = rank_results(outcome.results, top_k=config.top_k)
    artifacts = write_optimization_artifacts(top_results, describe_outcome(outcome), config)

    logger.info("Total trials: %s (%.1fs)", outcome.total_trials, outcome.elapsed_seconds)
    if top_results:
        best = top_results[0]
        logger.info(
            "Best: %s %smin score=%.2f final_balance=%.2f trades=%s",
            best.parameters.instrument,
            best.parameters.timeframe_minutes,
            best.score,
            best.result.final_balance,
            best.result.trade_count,
        )
    logger.info("Report dir: %s", artifacts["paths"]["report_dir"])
    return 0


def _run_inspect_data(args: argparse.Namespace) -> int:
    logger = logging.getLogger(__name__)
    data_dir = Path(args.data_dir)
    if not data_dir.exists():
        logger.error("data-dir does not exist: %s", data_dir)
        return EXIT_NO_TICK_DATA

    feeder = TickFeeder(data_dir, max_ticks_per_file=args.max_ticks_per_file)
    manifest = feeder.build_manifest(args.files)
    print(json.dumps(manifest, indent=2))
    if manifest["ticks_total"] == 0:
        logger.error("No valid ticks found in %s", data_dir)
        return EXIT_NO_TICK_DATA
    return 0


def _run(args: argparse.Namespace) -> int:
    if args.command == "optimize":
        return _run_optimize(args)
    if args.command == "inspect-data":
        return _run_inspect_data(args)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    setup_logging(log_level=args.log_level, logs_dir=Path(args.logs_dir) if args.logs_dir else None)
    raise SystemExit(_run(args))


if __name__ == "__main__":
    main()
