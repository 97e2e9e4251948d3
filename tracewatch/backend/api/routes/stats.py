"""
api/routes/stats.py

GET /api/stats — ingestion/detection counters plus per-job engine stats
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...aggregation.engine import AggregationEngine
from ...metrics import METRICS
from ..serializers import StatsResponse

router = APIRouter(prefix="/stats", tags=["stats"])


def _get_engine() -> AggregationEngine:
    from ..main import get_engine
    return get_engine()


@router.get("", response_model=StatsResponse)
async def get_stats(
    engine: AggregationEngine = Depends(_get_engine),
) -> StatsResponse:
    return StatsResponse(metrics=METRICS.as_dict(), jobs=engine.stats)
