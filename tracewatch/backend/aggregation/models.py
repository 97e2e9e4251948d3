"""
aggregation/models.py

Data models for the windowed keyed-aggregation engine.

MetricKind       — which reducer a metric folds into (SUM or UNIQUE)
MetricSpec       — a named metric registered with a job
MetricSnapshot   — read-only finalized value of one (key, metric) reducer
ThresholdResult  — one key's evaluation outcome at an epoch boundary

Keys are opaque to the engine: any hashable value works. Policies define
their own key types (see detection/models.py).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Hashable, Mapping


# ---------------------------------------------------------------------------
# Metric declarations
# ---------------------------------------------------------------------------

class MetricKind(str, Enum):
    SUM    = "SUM"
    UNIQUE = "UNIQUE"


@dataclass(frozen=True, slots=True)
class MetricSpec:
    """A metric tracked by a job: its observe() name and its reducer kind."""

    name: str
    kind: MetricKind = MetricKind.SUM

    def __repr__(self) -> str:
        return f"MetricSpec({self.name!r} {self.kind.value})"


# ---------------------------------------------------------------------------
# MetricSnapshot — finalized reducer value handed to policy callbacks
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class MetricSnapshot:
    """
    Finalized value of one reducer at rollover.

    Only the fields matching the reducer kind are populated:
        SUM    — sum
        UNIQUE — count (cardinality) and unique_values

    A metric that never received an observation for a key has no snapshot
    at all, so callbacks can tell "never observed" apart from "observed 0".
    """

    kind: MetricKind
    sum: float | None = None
    count: int | None = None
    unique_values: frozenset[str] | None = None


Snapshot = Mapping[str, MetricSnapshot]
"""Per-key view at rollover: metric name → finalized value."""

ThresholdFn = Callable[[Hashable, Snapshot], float]
ResultFn = Callable[[float, Hashable, Snapshot], Any]


# ---------------------------------------------------------------------------
# ThresholdResult
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ThresholdResult:
    """Outcome of evaluating one key at an epoch boundary."""

    timestamp: float
    """Wall-clock time of the rollover that produced this result."""

    key: Hashable
    snapshot: dict[str, MetricSnapshot] = field(default_factory=dict)

    gate: float = 0.0
    """Value returned by the job's threshold function."""

    crossed: bool = False

    def __repr__(self) -> str:
        return (
            f"ThresholdResult(key={self.key!r} gate={self.gate:.2f} "
            f"crossed={self.crossed} metrics={sorted(self.snapshot)})"
        )
