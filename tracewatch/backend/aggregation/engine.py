"""
aggregation/engine.py

AggregationEngine — windowed keyed aggregation with threshold detection.

A job is registered with configure(): a set of metrics, an epoch length,
a threshold function, a threshold and a result function. Observations are
folded into the job's EpochTable as they arrive. Once per epoch the job
rolls over:

  1. Swap in a fresh EpochTable (atomic, under the job lock)
  2. For every key in the detached table, finalize its metrics and call
     threshold_fn(key, snapshot) → gate
  3. If gate >= threshold, call result_fn(rollover_ts, key, snapshot)

Callbacks run against the detached table, so observations that arrive
meanwhile land in the next epoch and are never lost or counted twice.
A failing callback is logged and isolated to its key.

Scheduling:
  - Each job owns one asyncio task that sleeps until the next epoch
    boundary (loop.time() based, no drift) and then calls rollover().
  - observe() and rollover() may also be called from other threads;
    the job lock only guards the table swap, so observe() never waits
    on callback execution.
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from typing import Hashable, Iterable

from .epoch_table import EpochTable
from .models import MetricKind, MetricSpec, ResultFn, ThresholdFn, ThresholdResult

logger = logging.getLogger(__name__)

_CALLBACK_SLOW_MS = 50.0


class AggregationJob:
    """
    One named detection job with its own EpochTable and epoch timer.

    Args:
        name:          Unique job name.
        metrics:       MetricSpecs (or bare names, whose kind is inferred
                       from the first observed value).
        epoch_seconds: Window length; must be > 0.
        threshold_fn:  (key, snapshot) → gate value.
        result_fn:     (timestamp, key, snapshot) → None, called on crossing.
        threshold:     Gate values >= threshold fire result_fn.
    """

    def __init__(
        self,
        name: str,
        metrics: Iterable[MetricSpec | str],
        epoch_seconds: float,
        threshold_fn: ThresholdFn,
        result_fn: ResultFn,
        threshold: float = 1.0,
    ) -> None:
        metrics = list(metrics)
        specs = [m if isinstance(m, MetricSpec) else MetricSpec(m) for m in metrics]
        _validate(name, specs, epoch_seconds, threshold, threshold_fn, result_fn)

        self.name = name
        self.metrics: frozenset[str] = frozenset(s.name for s in specs)
        self.epoch_seconds = float(epoch_seconds)
        self.threshold = float(threshold)
        self.threshold_fn = threshold_fn
        self.result_fn = result_fn

        # Bare names are left out so their kind is inferred per value
        self._kinds: dict[str, MetricKind] = {
            m.name: m.kind for m in metrics if isinstance(m, MetricSpec)
        }
        self._table = EpochTable(self._kinds)
        self._lock = threading.Lock()            # guards self._table
        self._rollover_lock = threading.Lock()   # one rollover (or teardown) at a time
        self._task: asyncio.Task | None = None
        self._closed = False

        self.stats: dict[str, int] = {
            "observations": 0,
            "observations_dropped": 0,
            "active_keys": 0,
            "rollovers": 0,
            "keys_evaluated": 0,
            "thresholds_crossed": 0,
            "callback_errors": 0,
        }
        logger.info(
            "Job %r configured — metrics=%s epoch=%.1fs threshold=%s",
            name,
            sorted(self.metrics),
            self.epoch_seconds,
            self.threshold,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def observe(self, metric: str, key: Hashable, value: object) -> None:
        """Fold one observation into the current epoch. Never raises."""
        with self._lock:
            if self._closed:
                self.stats["observations_dropped"] += 1
                return
            try:
                self._table.observe(metric, key, value)
            except (TypeError, ValueError) as exc:
                self.stats["observations_dropped"] += 1
                logger.debug(
                    "Job %r dropped %s=%r for key %r: %s",
                    self.name, metric, value, key, exc,
                )
                return
            self.stats["observations"] += 1
            self.stats["active_keys"] = len(self._table)

    @property
    def active_keys(self) -> int:
        with self._lock:
            return len(self._table)

    # ------------------------------------------------------------------
    # Rollover
    # ------------------------------------------------------------------

    def rollover(self, now: float | None = None) -> list[ThresholdResult]:
        """
        Close the current epoch and evaluate every key that has data.

        Returns the ThresholdResults that crossed the threshold (the result
        function has already been called for each of them).
        """
        with self._rollover_lock:
            with self._lock:
                table, self._table = self._table, EpochTable(self._kinds)
                self.stats["active_keys"] = 0
            return self._evaluate_table(table, now if now is not None else time.time())

    def _evaluate_table(self, table: EpochTable, ts: float) -> list[ThresholdResult]:
        t0 = time.monotonic()
        self.stats["rollovers"] += 1
        crossed: list[ThresholdResult] = []

        for key in table:
            result = self._evaluate_key(ts, key, table.snapshot(key))
            if result is not None and result.crossed:
                crossed.append(result)

        evaluated = len(table)
        table.clear()
        elapsed_ms = (time.monotonic() - t0) * 1000
        logger.info(
            "Job %r rollover — keys=%d crossed=%d (%.1fms)",
            self.name, evaluated, len(crossed), elapsed_ms,
        )
        return crossed

    def _evaluate_key(self, ts: float, key: Hashable, snapshot: dict) -> ThresholdResult | None:
        self.stats["keys_evaluated"] += 1
        try:
            gate = float(self.threshold_fn(key, snapshot))
        except Exception as exc:
            self.stats["callback_errors"] += 1
            logger.exception(
                "Job %r threshold function raised for key %r: %s", self.name, key, exc
            )
            return None

        result = ThresholdResult(
            timestamp=ts,
            key=key,
            snapshot=snapshot,
            gate=gate,
            crossed=gate >= self.threshold,
        )
        if not result.crossed:
            return result

        self.stats["thresholds_crossed"] += 1
        t0 = time.monotonic()
        try:
            self.result_fn(ts, key, snapshot)
        except Exception as exc:
            self.stats["callback_errors"] += 1
            logger.exception(
                "Job %r result function raised for key %r: %s", self.name, key, exc
            )
        elapsed_ms = (time.monotonic() - t0) * 1000
        if elapsed_ms > _CALLBACK_SLOW_MS:
            logger.warning(
                "Job %r result function took %.1fms for key %r", self.name, elapsed_ms, key
            )
        return result

    # ------------------------------------------------------------------
    # Epoch timer
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Roll over once per epoch until cancelled."""
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.epoch_seconds
        logger.info("Job %r timer started — epoch=%.1fs", self.name, self.epoch_seconds)
        try:
            while True:
                await asyncio.sleep(max(0.0, next_at - loop.time()))
                next_at += self.epoch_seconds
                self.rollover()
        except asyncio.CancelledError:
            logger.info("Job %r timer cancelled", self.name)
            raise

    def start(self) -> asyncio.Task:
        """Schedule the epoch timer on the running loop. Raises RuntimeError once closed."""
        if self._closed:
            raise RuntimeError(f"job {self.name!r} has been torn down and cannot be restarted")
        if self._task is not None and not self._task.done():
            logger.warning("Job %r start() called but timer already running", self.name)
            return self._task
        self._task = asyncio.create_task(self.run(), name=f"epoch:{self.name}")
        return self._task

    async def stop(self) -> None:
        """Halt the timer and discard the current epoch."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self.close()

    def close(self) -> None:
        """
        Discard the current EpochTable and refuse further observations.

        Waits for an in-progress rollover so already-detected results
        are still delivered.
        """
        with self._rollover_lock:
            with self._lock:
                discarded = len(self._table)
                self._table = EpochTable(self._kinds)
                self.stats["active_keys"] = 0
                self._closed = True
        logger.info("Job %r torn down — discarded %d key(s)", self.name, discarded)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def __repr__(self) -> str:
        return (
            f"AggregationJob({self.name!r} epoch={self.epoch_seconds}s "
            f"threshold={self.threshold} running={self.is_running})"
        )


class AggregationEngine:
    """
    Registry of independent aggregation jobs.

    Jobs never share state: each has its own EpochTable, lock and timer.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, AggregationJob] = {}

    def configure(
        self,
        name: str,
        metrics: Iterable[MetricSpec | str],
        epoch_seconds: float,
        threshold_fn: ThresholdFn,
        result_fn: ResultFn,
        threshold: float = 1.0,
    ) -> AggregationJob:
        """Register a job. Raises ValueError on invalid configuration."""
        if name in self.jobs:
            raise ValueError(f"job {name!r} is already configured")
        job = AggregationJob(
            name,
            metrics,
            epoch_seconds=epoch_seconds,
            threshold_fn=threshold_fn,
            result_fn=result_fn,
            threshold=threshold,
        )
        self.jobs[name] = job
        return job

    def get(self, name: str) -> AggregationJob:
        try:
            return self.jobs[name]
        except KeyError:
            raise KeyError(f"no job named {name!r}") from None

    def observe(self, metric: str, key: Hashable, value: object) -> None:
        """Route an observation to every job that declared this metric."""
        for job in self.jobs.values():
            if metric in job.metrics:
                job.observe(metric, key, value)

    def start(self) -> list[asyncio.Task]:
        return [job.start() for job in self.jobs.values()]

    async def stop(self) -> None:
        for job in self.jobs.values():
            await job.stop()

    @property
    def stats(self) -> dict[str, dict[str, int]]:
        return {name: dict(job.stats) for name, job in self.jobs.items()}


# ---------------------------------------------------------------------------
# Configuration checks
# ---------------------------------------------------------------------------

def _validate(
    name: str,
    specs: list[MetricSpec],
    epoch_seconds: float,
    threshold: float,
    threshold_fn: ThresholdFn,
    result_fn: ResultFn,
) -> None:
    if not name:
        raise ValueError("job name must not be empty")
    if not specs:
        raise ValueError(f"job {name!r}: metric set must not be empty")
    if not all(s.name for s in specs):
        raise ValueError(f"job {name!r}: metric names must not be empty")
    seen: set[str] = set()
    for s in specs:
        if s.name in seen:
            raise ValueError(f"job {name!r}: metric {s.name!r} declared more than once")
        seen.add(s.name)
    if not math.isfinite(epoch_seconds) or epoch_seconds <= 0:
        raise ValueError(f"job {name!r}: epoch must be positive, got {epoch_seconds!r}")
    # Gate 0 means "no signal"; a zero threshold would fire on every key
    if not math.isfinite(threshold) or threshold <= 0:
        raise ValueError(f"job {name!r}: threshold must be positive, got {threshold!r}")
    if not callable(threshold_fn) or not callable(result_fn):
        raise ValueError(f"job {name!r}: threshold and result functions must be callable")
