"""
api/routes/events.py

POST /api/events/low-ttl        — a probe matched the low-TTL signature
POST /api/events/time-exceeded  — a time-exceeded reply referenced a probe

Bodies are validated by pydantic (malformed addresses → 422). Accepted
events are folded into the current epoch synchronously; no I/O is done.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...ingest import EventIngestor
from ...models import LowTTLSignatureMatch, TimeExceededNotification
from ..serializers import EventAcceptedResponse, LowTTLEventRequest, TimeExceededEventRequest

router = APIRouter(prefix="/events", tags=["events"])


def _get_ingestor() -> EventIngestor:
    """FastAPI dependency — replaced in tests via app.dependency_overrides."""
    from ..main import get_ingestor
    return get_ingestor()


@router.post(
    "/low-ttl",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def post_low_ttl(
    body: LowTTLEventRequest,
    ingestor: EventIngestor = Depends(_get_ingestor),
) -> EventAcceptedResponse:
    event = LowTTLSignatureMatch(
        src_ip=str(body.src_ip),
        dst_ip=str(body.dst_ip),
        proto=body.proto,
        ttl=body.ttl,
    )
    return EventAcceptedResponse(accepted=ingestor.submit(event))


@router.post(
    "/time-exceeded",
    response_model=EventAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def post_time_exceeded(
    body: TimeExceededEventRequest,
    ingestor: EventIngestor = Depends(_get_ingestor),
) -> EventAcceptedResponse:
    event = TimeExceededNotification(
        src_ip=str(body.src_ip),
        dst_ip=str(body.dst_ip),
        proto=body.proto,
        responder_ip=str(body.responder_ip),
    )
    return EventAcceptedResponse(accepted=ingestor.submit(event))
