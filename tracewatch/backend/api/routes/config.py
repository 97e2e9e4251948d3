"""
api/routes/config.py

GET /api/config — effective traceroute detection settings

Read-only: thresholds and the epoch are fixed when the job is configured.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...detection.traceroute import TraceroutePolicy
from ..serializers import ConfigResponse

router = APIRouter(prefix="/config", tags=["config"])


def _get_policy() -> TraceroutePolicy:
    from ..main import get_policy
    return get_policy()


@router.get("", response_model=ConfigResponse)
async def read_config(
    policy: TraceroutePolicy = Depends(_get_policy),
) -> ConfigResponse:
    return ConfigResponse(
        require_low_ttl_precursor=policy.require_low_ttl,
        threshold=policy.threshold,
        epoch_seconds=policy.epoch_seconds,
        notice_suppress_seconds=policy.notice_suppress_seconds,
    )
