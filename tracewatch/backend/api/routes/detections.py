"""
api/routes/detections.py

GET /api/detections  — most recent detection records, newest first
GET /api/notices     — most recent traceroute notices, newest first
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ...detection.sinks import DetectionLog
from ..serializers import DetectionResponse, NoticeResponse

router = APIRouter(tags=["detections"])


def _get_log() -> DetectionLog:
    from ..main import get_policy
    writer = get_policy().writer
    if not isinstance(writer, DetectionLog):
        raise HTTPException(status_code=404, detail="Detections are not kept in memory")
    return writer


@router.get("/detections", response_model=list[DetectionResponse])
async def list_detections(
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    log: DetectionLog = Depends(_get_log),
) -> list[DetectionResponse]:
    return [DetectionResponse(**d.to_dict()) for d in log.recent_detections(limit)]


@router.get("/notices", response_model=list[NoticeResponse])
async def list_notices(
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    log: DetectionLog = Depends(_get_log),
) -> list[NoticeResponse]:
    return [NoticeResponse(**n.to_dict()) for n in log.recent_notices(limit)]
