"""
detection/base.py

Abstract base class for detection policies.

A policy is the strategy injected into an AggregationEngine job: which
metrics it tracks, how it turns a key's snapshot into a gate value, and
what it does when that gate crosses the threshold.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Hashable

from ..aggregation.engine import AggregationEngine, AggregationJob
from ..aggregation.models import MetricSpec, Snapshot


class BasePolicy(ABC):
    """
    Contract that every detection policy must satisfy.

    Class-level attributes:
        name    — unique job name registered with the engine
        metrics — MetricSpecs the job tracks

    threshold_value() must handle snapshots with metrics missing; a key can
    reach rollover with only some of its metrics observed.
    """

    name: str = ""
    metrics: tuple[MetricSpec, ...] = ()

    def __init__(self, epoch_seconds: float, threshold: float) -> None:
        self.epoch_seconds = epoch_seconds
        self.threshold = threshold
        self.job: AggregationJob | None = None

    @abstractmethod
    def threshold_value(self, key: Hashable, snapshot: Snapshot) -> float:
        """Gate value for key at rollover; compared with self.threshold."""
        ...

    @abstractmethod
    def on_crossed(self, timestamp: float, key: Hashable, snapshot: Snapshot) -> None:
        """Called once per rollover for every key whose gate crossed the threshold."""
        ...

    def install(self, engine: AggregationEngine) -> AggregationJob:
        """Register this policy as a job on engine. Raises ValueError on bad config."""
        self.job = engine.configure(
            self.name,
            self.metrics,
            epoch_seconds=self.epoch_seconds,
            threshold_fn=self.threshold_value,
            result_fn=self.on_crossed,
            threshold=self.threshold,
        )
        return self.job

    def observe(self, metric: str, key: Hashable, value: object) -> None:
        if self.job is None:
            raise RuntimeError(f"Policy {self.name!r} is not installed — call install() first")
        self.job.observe(metric, key, value)

    def __repr__(self) -> str:
        return f"<Policy:{self.name} threshold={self.threshold} epoch={self.epoch_seconds}s>"
