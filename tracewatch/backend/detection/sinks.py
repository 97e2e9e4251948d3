"""
detection/sinks.py

DetectionLog — bounded in-memory writer for detection records and notices.

Each record is logged at WARNING as it arrives and kept in a ring buffer
(oldest dropped first) so the API can serve the most recent entries.
Durable persistence belongs to whatever consumes these records downstream.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Protocol

from ..metrics import METRICS
from .models import TracerouteDetection, TracerouteNotice

logger = logging.getLogger(__name__)


class DetectionWriter(Protocol):
    def write_detection(self, detection: TracerouteDetection) -> None: ...

    def write_notice(self, notice: TracerouteNotice) -> None: ...


class DetectionLog:
    """
    Ring buffer of recent detections and notices.

    Thread safety: a lock guards both buffers, since rollover may run on
    a different thread from the API handlers that read them.
    """

    def __init__(self, maxlen: int = 1000) -> None:
        self._detections: deque[TracerouteDetection] = deque(maxlen=maxlen)
        self._notices: deque[TracerouteNotice] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self.maxlen = maxlen

    def write_detection(self, detection: TracerouteDetection) -> None:
        with self._lock:
            self._detections.append(detection)
        METRICS.detections_emitted.inc()
        logger.warning(
            "DETECTION [traceroute] src=%s dst=%s proto=%s responder=%s",
            detection.src_ip,
            detection.dst_ip,
            detection.proto,
            detection.responder_ip,
        )

    def write_notice(self, notice: TracerouteNotice) -> None:
        with self._lock:
            self._notices.append(notice)
        METRICS.notices_emitted.inc()
        logger.warning("NOTICE [traceroute] %s (responders=%d)", notice.message, notice.responders)

    def recent_detections(self, limit: int = 100) -> list[TracerouteDetection]:
        """Newest first."""
        with self._lock:
            items = list(self._detections)
        return items[::-1][:limit]

    def recent_notices(self, limit: int = 100) -> list[TracerouteNotice]:
        """Newest first."""
        with self._lock:
            items = list(self._notices)
        return items[::-1][:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._detections)
