"""
aggregation/epoch_table.py

EpochTable — key → {metric name → reducer state} for exactly one epoch.

Design constraints:
  - Entries are created on a key's first observation and never removed
    mid-epoch; the whole table is discarded at rollover.
  - No observation is retained after it has been folded into a reducer.
  - Metric kinds come from the owning job's MetricSpecs. Undeclared metric
    names get a reducer inferred from the value instead of an error.

Thread safety: NOT thread-safe. The owning AggregationJob serialises access.
"""

from __future__ import annotations

import logging
from typing import Hashable, Iterator, Mapping

from .models import MetricKind, MetricSnapshot
from .reducer import ReducerState, apply, finalize, infer_kind, new_state

logger = logging.getLogger(__name__)


class EpochTable:
    """
    Per-epoch aggregation state for one job.

    Args:
        kinds: metric name → MetricKind for the job's declared metrics.
    """

    def __init__(self, kinds: Mapping[str, MetricKind] | None = None) -> None:
        self._kinds: Mapping[str, MetricKind] = kinds or {}
        self._entries: dict[Hashable, dict[str, ReducerState]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def observe(self, metric: str, key: Hashable, value: object) -> None:
        """Fold value into the (key, metric) reducer, creating it on first use."""
        metrics = self._entries.get(key)
        state = metrics.get(metric) if metrics is not None else None
        if state is not None:
            apply(state, value)
            return

        # Fold before inserting so a rejected value leaves no empty entry behind
        state = new_state(self._kinds.get(metric) or infer_kind(value))
        apply(state, value)
        if metrics is None:
            metrics = self._entries[key] = {}
            logger.debug("New key in epoch: %r (keys: %d)", key, len(self._entries))
        metrics[metric] = state

    def snapshot(self, key: Hashable) -> dict[str, MetricSnapshot]:
        """Finalized per-metric values for key. Metrics never observed are absent."""
        return {
            metric: finalize(state)
            for metric, state in self._entries.get(key, {}).items()
        }

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"EpochTable(keys={len(self._entries)})"
