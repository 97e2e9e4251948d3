"""
backend/metrics.py

Lightweight thread-safe counters for event ingestion and detection output.
No external dependencies — uses Python's threading.Lock.

Usage:
    from backend.metrics import METRICS
    METRICS.events_received.inc()
    print(METRICS.as_dict())
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class Metrics:
    """Singleton holding all service counters."""

    def __init__(self) -> None:
        # --- Ingestion ---
        self.events_received: Counter = Counter()
        """Low-TTL and time-exceeded events handed to the ingestor."""

        self.events_accepted: Counter = Counter()
        """Events that produced an observation."""

        self.events_rejected: Counter = Counter()
        """Events dropped because their key material was malformed."""

        # --- Detection output ---
        self.detections_emitted: Counter = Counter()
        """Per-responder detection records written."""

        self.notices_emitted: Counter = Counter()
        """Traceroute notices written."""

        self.notices_suppressed: Counter = Counter()
        """Notices withheld because the same src/proto fired recently."""

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            name: attr.value
            for name, attr in vars(self).items()
            if isinstance(attr, Counter)
        }

    def reset_all(self) -> None:
        """Reset every counter to zero (useful in tests)."""
        for attr in vars(self).values():
            if isinstance(attr, Counter):
                attr.reset()


# Module-level singleton — import from here everywhere
METRICS = Metrics()
