"""
detection/traceroute.py

Traceroute Detection Policy.

Flags hosts running traceroute by correlating two weak signals per
(src_ip, dst_ip, proto) key within one epoch:

    low_ttl_count          SUM     outbound probes matching the low-TTL signature
    time_exceeded_sources  UNIQUE  routers that answered with time-exceeded

Gate value:
    0                         if the low-TTL precursor is required and absent
    |time_exceeded_sources|   otherwise (0 when none were seen)

On crossing, one TracerouteDetection is written per distinct responder,
plus one TracerouteNotice per (src_ip, proto) unless an identical notice
was raised within the suppression interval.
"""

from __future__ import annotations

import ipaddress
import logging

from ..aggregation.models import Snapshot
from ..metrics import METRICS
from .base import BasePolicy
from .models import (
    LOW_TTL_COUNT,
    TIME_EXCEEDED_SOURCES,
    TRACEROUTE_METRICS,
    TracerouteDetection,
    TracerouteKey,
    TracerouteNotice,
    transport_label,
)
from .sinks import DetectionLog, DetectionWriter

logger = logging.getLogger(__name__)


def canonical_ip(value: str) -> str:
    """Canonical text form of an IPv4/IPv6 address. Raises ValueError if malformed."""
    return str(ipaddress.ip_address(str(value).strip()))


class TraceroutePolicy(BasePolicy):
    """Detects traceroute probing from low-TTL probes and time-exceeded replies."""

    name = "traceroute"
    metrics = TRACEROUTE_METRICS

    def __init__(
        self,
        writer: DetectionWriter | None = None,
        require_low_ttl: bool = True,
        threshold: float = 1.0,
        epoch_seconds: float = 180.0,
        notice_suppress_seconds: float = 3600.0,
    ) -> None:
        super().__init__(epoch_seconds=epoch_seconds, threshold=threshold)
        self.writer: DetectionWriter = writer if writer is not None else DetectionLog()
        self.require_low_ttl = require_low_ttl
        self.notice_suppress_seconds = notice_suppress_seconds

        # Notice suppression: "src_ip/proto" → timestamp of last notice
        self._last_notice: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Key construction
    # ------------------------------------------------------------------

    @staticmethod
    def make_key(src_ip: str, dst_ip: str, proto: str | int | None) -> TracerouteKey:
        """Build a normalised key. Raises ValueError on malformed addresses."""
        return TracerouteKey(canonical_ip(src_ip), canonical_ip(dst_ip), transport_label(proto))

    # ------------------------------------------------------------------
    # Signal intake
    # ------------------------------------------------------------------

    def low_ttl_packet(self, src_ip: str, dst_ip: str, proto: str | int | None, ttl: int) -> None:
        """Count one probe; the TTL itself only confirms the match."""
        key = self.make_key(src_ip, dst_ip, proto)
        logger.debug("Low-TTL probe %r ttl=%s", key, ttl)
        self.observe(LOW_TTL_COUNT, key, 1)

    def time_exceeded(
        self,
        src_ip: str,
        dst_ip: str,
        proto: str | int | None,
        responder_ip: str,
    ) -> None:
        key = self.make_key(src_ip, dst_ip, proto)
        responder = canonical_ip(responder_ip)
        self.observe(TIME_EXCEEDED_SOURCES, key, responder)

    # ------------------------------------------------------------------
    # BasePolicy interface
    # ------------------------------------------------------------------

    def threshold_value(self, key: TracerouteKey, snapshot: Snapshot) -> float:
        if self.require_low_ttl:
            low_ttl = snapshot.get(LOW_TTL_COUNT)
            if low_ttl is None or not low_ttl.sum:
                return 0.0
        responders = snapshot.get(TIME_EXCEEDED_SOURCES)
        if responders is None:
            return 0.0
        return float(responders.count or 0)

    def on_crossed(self, timestamp: float, key: TracerouteKey, snapshot: Snapshot) -> None:
        src_ip, dst_ip, proto = key
        responders = snapshot.get(TIME_EXCEEDED_SOURCES)
        values = sorted(responders.unique_values or ()) if responders is not None else []

        for responder_ip in values:
            self.writer.write_detection(
                TracerouteDetection(
                    timestamp=timestamp,
                    src_ip=src_ip,
                    dst_ip=dst_ip,
                    proto=proto,
                    responder_ip=responder_ip,
                )
            )
        self._raise_notice(timestamp, src_ip, proto, len(values))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _raise_notice(self, timestamp: float, src_ip: str, proto: str, responders: int) -> None:
        notice = TracerouteNotice(
            src_ip=src_ip, proto=proto, responders=responders, timestamp=timestamp
        )
        last = self._last_notice.get(notice.identifier)
        if last is not None and timestamp - last < self.notice_suppress_seconds:
            METRICS.notices_suppressed.inc()
            logger.debug(
                "Notice suppressed for %r (%.0fs remaining)",
                notice.identifier,
                self.notice_suppress_seconds - (timestamp - last),
            )
            return
        self._prune_notices(timestamp)
        self._last_notice[notice.identifier] = timestamp
        self.writer.write_notice(notice)

    def _prune_notices(self, now: float) -> None:
        """Forget notices whose suppression interval has already run out."""
        expired = [
            ident for ident, ts in self._last_notice.items()
            if now - ts >= self.notice_suppress_seconds
        ]
        for ident in expired:
            del self._last_notice[ident]
