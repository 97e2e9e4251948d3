"""
aggregation/reducer.py

Per-(key, metric) accumulators for the current epoch.

SumState    — running total of numeric increments
UniqueState — set of distinct string values, cardinality = set size

Both folds are commutative and associative, so the finalized value does not
depend on the order observations arrived in.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import MetricKind, MetricSnapshot


@dataclass(slots=True)
class SumState:
    total: float = 0.0

    @property
    def kind(self) -> MetricKind:
        return MetricKind.SUM


@dataclass(slots=True)
class UniqueState:
    values: set[str] = field(default_factory=set)

    @property
    def kind(self) -> MetricKind:
        return MetricKind.UNIQUE


ReducerState = SumState | UniqueState


def new_state(kind: MetricKind) -> ReducerState:
    if kind is MetricKind.UNIQUE:
        return UniqueState()
    return SumState()


def infer_kind(value: object) -> MetricKind:
    """Reducer kind for a metric the job never declared: strings are tracked for distinctness."""
    return MetricKind.UNIQUE if isinstance(value, str) else MetricKind.SUM


def apply_sum(state: SumState, delta: float) -> SumState:
    state.total += delta
    return state


def apply_unique(state: UniqueState, value: str) -> UniqueState:
    state.values.add(value)
    return state


def apply(state: ReducerState, value: object) -> ReducerState:
    """Fold one observed value into state, dispatching on the reducer kind."""
    if isinstance(state, UniqueState):
        return apply_unique(state, str(value))
    return apply_sum(state, float(value))  # type: ignore[arg-type]


def finalize(state: ReducerState) -> MetricSnapshot:
    """Read-only snapshot; the caller may keep it after the table is cleared."""
    if isinstance(state, UniqueState):
        return MetricSnapshot(
            kind=MetricKind.UNIQUE,
            count=len(state.values),
            unique_values=frozenset(state.values),
        )
    return MetricSnapshot(kind=MetricKind.SUM, sum=state.total)
