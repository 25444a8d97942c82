"""Parallel random search over strategy parameters, one process pool per run."""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import Executor, ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np

from core.logging_setup import configure_worker_logging

from .models import BarSet, OptimizerConfig, TrialResult
from .sampler import ParameterSampler
from .simulator import simulate

logger = logging.getLogger(__name__)


def _process_pool(workers: int) -> Executor:
    return ProcessPoolExecutor(max_workers=workers, initializer=configure_worker_logging)


class OptimizationError(RuntimeError):
    """A worker chunk failed; the run is aborted rather than completed partially."""

    def __init__(self, chart_key: str, chunk_index: int, cause: BaseException):
        super().__init__(f"Worker chunk {chunk_index} for {chart_key} failed: {type(cause).__name__}: {cause}")
        self.chart_key = chart_key
        self.chunk_index = chunk_index


@dataclass(frozen=True)
class SearchChunk:
    """One unit of work: ``sample_count`` trials on a single chart."""

    chart_key: str
    chunk_index: int
    bars: BarSet
    sample_count: int
    seed: np.random.SeedSequence


@dataclass
class SearchOutcome:
    results: list[TrialResult]
    elapsed_seconds: float
    chunks_completed: int
    charts_searched: list[str] = field(default_factory=list)
    skipped_charts: dict[str, int] = field(default_factory=dict)
    seed_entropy: Optional[int] = None

    @property
    def total_trials(self) -> int:
        return len(self.results)


def run_chunk(chunk: SearchChunk, config: OptimizerConfig) -> list[TrialResult]:
    """Worker entry point: sample and simulate ``chunk.sample_count`` parameter sets."""
    sampler = ParameterSampler(config.timeframes, seed=chunk.seed)
    bars = chunk.bars
    results: list[TrialResult] = []
    for _ in range(chunk.sample_count):
        params = sampler.sample(bars.instrument, bars.timeframe_minutes)
        results.append(TrialResult(parameters=params, result=simulate(params, bars, config)))
    return results


def partition_samples(total_samples: int, workers: int) -> list[int]:
    """Equal per-worker chunk sizes, ``ceil(total / workers)`` each."""
    if total_samples <= 0 or workers <= 0:
        return []
    per_worker = math.ceil(total_samples / workers)
    return [per_worker] * workers


class SearchOrchestrator:
    """
    Fan sampling/simulation chunks out to a fixed worker pool and gather the results.

    Every eligible chart is split into one chunk per worker. Each chunk carries
    its own copy of the bars, the frozen config and an independent child seed,
    so workers never share mutable state. Results are accumulated on the
    calling thread only.
    """

    def __init__(
        self,
        config: OptimizerConfig,
        executor_factory: Optional[Callable[[int], Executor]] = None,
    ):
        self.config = config
        self.workers = config.resolved_workers
        self._executor_factory = executor_factory or _process_pool
        self._seed_sequence = np.random.SeedSequence(config.seed)

    @property
    def seed_entropy(self) -> int:
        return int(self._seed_sequence.entropy)

    def eligible_charts(
        self,
        charts: dict[tuple[str, int], BarSet],
    ) -> tuple[list[BarSet], dict[str, int]]:
        eligible: list[BarSet] = []
        skipped: dict[str, int] = {}
        for key in sorted(charts):
            bar_set = charts[key]
            if bar_set.rows < self.config.min_bars:
                logger.warning(
                    "Skipping %s: only %s valid bars found (need %s).",
                    bar_set.chart_key,
                    bar_set.rows,
                    self.config.min_bars,
                )
                skipped[bar_set.chart_key] = bar_set.rows
                continue
            eligible.append(bar_set)
        return eligible, skipped

    def build_chunks(self, charts: list[BarSet]) -> list[SearchChunk]:
        sizes = partition_samples(self.config.samples_per_chart, self.workers)
        child_seeds = self._seed_sequence.spawn(len(charts) * len(sizes))
        chunks: list[SearchChunk] = []
        for chart_index, bar_set in enumerate(charts):
            for chunk_index, sample_count in enumerate(sizes):
                chunks.append(
                    SearchChunk(
                        chart_key=bar_set.chart_key,
                        chunk_index=chunk_index,
                        bars=bar_set,
                        sample_count=sample_count,
                        seed=child_seeds[chart_index * len(sizes) + chunk_index],
                    )
                )
        return chunks

    def run(self, charts: dict[tuple[str, int], BarSet]) -> SearchOutcome:
        start = time.perf_counter()
        eligible, skipped = self.eligible_charts(charts)
        chunks = self.build_chunks(eligible)
        if not chunks:
            logger.warning("No charts with enough bars; nothing to optimize")
            return SearchOutcome(
                results=[],
                elapsed_seconds=time.perf_counter() - start,
                chunks_completed=0,
                skipped_charts=skipped,
                seed_entropy=self.seed_entropy,
            )

        planned_trials = sum(chunk.sample_count for chunk in chunks)
        logger.info(
            "Dispatching %s chunks (%s trials) over %s charts to %s workers",
            len(chunks),
            planned_trials,
            len(eligible),
            self.workers,
        )

        by_chunk: dict[int, list[TrialResult]] = {}
        trials_done = 0
        completed = 0
        with self._executor_factory(min(self.workers, len(chunks))) as pool:
            future_map = {pool.submit(run_chunk, chunk, self.config): position for position, chunk in enumerate(chunks)}
            for future in as_completed(future_map):
                position = future_map[future]
                chunk = chunks[position]
                try:
                    chunk_results = future.result()
                except Exception as exc:
                    for pending in future_map:
                        pending.cancel()
                    raise OptimizationError(chunk.chart_key, chunk.chunk_index, exc) from exc

                by_chunk[position] = chunk_results
                trials_done += len(chunk_results)
                completed += 1
                logger.info(
                    "Progress: %.2f%% | chunks done: %s/%s | trials: %s",
                    100.0 * trials_done / planned_trials,
                    completed,
                    len(chunks),
                    trials_done,
                )

        # Dispatch order, not completion order.
        results = [trial for position in sorted(by_chunk) for trial in by_chunk[position]]
        elapsed = time.perf_counter() - start
        logger.info("Search finished: %s trials in %.1fs", len(results), elapsed)
        return SearchOutcome(
            results=results,
            elapsed_seconds=elapsed,
            chunks_completed=completed,
            charts_searched=[bar_set.chart_key for bar_set in eligible],
            skipped_charts=skipped,
            seed_entropy=self.seed_entropy,
        )


def describe_outcome(outcome: SearchOutcome) -> dict[str, Any]:
    return {
        "total_trials": outcome.total_trials,
        "elapsed_seconds": round(outcome.elapsed_seconds, 3),
        "chunks_completed": outcome.chunks_completed,
        "charts_searched": list(outcome.charts_searched),
        "skipped_charts": dict(outcome.skipped_charts),
        "seed": outcome.seed_entropy,
    }
