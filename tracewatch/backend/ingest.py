"""
backend/ingest.py

EventIngestor — turns classified network events into engine observations.

    LowTTLSignatureMatch      → observe("low_ttl_count", key, 1)
    TimeExceededNotification  → observe("time_exceeded_sources", key, responder)

An event whose key material does not parse (bad address text) is rejected
on its own: it is counted, logged at DEBUG and dropped. Nothing on this
path raises to the caller.
"""

from __future__ import annotations

import logging

from .detection.traceroute import TraceroutePolicy
from .metrics import METRICS
from .models import LowTTLSignatureMatch, TimeExceededNotification

logger = logging.getLogger(__name__)


class EventIngestor:
    """
    Feeds events from the surrounding runtime into a TraceroutePolicy.

    Args:
        policy: An installed TraceroutePolicy.
    """

    def __init__(self, policy: TraceroutePolicy) -> None:
        self._policy = policy

    def submit(self, event: LowTTLSignatureMatch | TimeExceededNotification) -> bool:
        """
        Fold one event into the current epoch.

        Returns:
            True  — the event produced an observation.
            False — the event was rejected (malformed or unknown type).
        """
        METRICS.events_received.inc()
        try:
            if isinstance(event, LowTTLSignatureMatch):
                self._policy.low_ttl_packet(event.src_ip, event.dst_ip, event.proto, event.ttl)
            elif isinstance(event, TimeExceededNotification):
                self._policy.time_exceeded(
                    event.src_ip, event.dst_ip, event.proto, event.responder_ip
                )
            else:
                METRICS.events_rejected.inc()
                logger.debug("Unsupported event type %s — dropped", type(event).__name__)
                return False
        except ValueError as exc:
            METRICS.events_rejected.inc()
            logger.debug("Rejected %r: %s", event, exc)
            return False

        METRICS.events_accepted.inc()
        return True
