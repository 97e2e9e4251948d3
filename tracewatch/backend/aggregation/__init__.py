"""
aggregation/__init__.py

Public API for the aggregation sub-package.
"""

from .engine import AggregationEngine, AggregationJob
from .epoch_table import EpochTable
from .models import MetricKind, MetricSnapshot, MetricSpec, ThresholdResult

__all__ = [
    "AggregationEngine",
    "AggregationJob",
    "EpochTable",
    "MetricKind",
    "MetricSnapshot",
    "MetricSpec",
    "ThresholdResult",
]
