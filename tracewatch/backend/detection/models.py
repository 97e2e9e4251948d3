"""
detection/models.py

Key, metric and output models for traceroute detection.

TracerouteKey       — (src_ip, dst_ip, proto) correlation group
TracerouteDetection — one record per distinct responder per crossing
TracerouteNotice    — one operator-facing notice per crossing
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, NamedTuple

from ..aggregation.models import MetricKind, MetricSpec


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

LOW_TTL_COUNT = "low_ttl_count"
TIME_EXCEEDED_SOURCES = "time_exceeded_sources"

TRACEROUTE_METRICS: tuple[MetricSpec, ...] = (
    MetricSpec(LOW_TTL_COUNT, MetricKind.SUM),
    MetricSpec(TIME_EXCEEDED_SOURCES, MetricKind.UNIQUE),
)


# ---------------------------------------------------------------------------
# Transport labels
# ---------------------------------------------------------------------------

_PROTO_NUMBERS = {1: "icmp", 6: "tcp", 17: "udp", 58: "icmp"}
_PROTO_ALIASES = {"icmp6": "icmp", "icmpv6": "icmp", "ipv6-icmp": "icmp"}


def transport_label(proto: str | int | None) -> str:
    """
    Normalise a transport classification to 'tcp' | 'udp' | 'icmp' | 'unknown'.

    Accepts labels in any case ('TCP', 'udp') and IANA protocol numbers.
    """
    if proto is None or isinstance(proto, bool):
        return "unknown"
    if isinstance(proto, int):
        return _PROTO_NUMBERS.get(proto, "unknown")
    label = str(proto).strip().lower()
    if label.isdigit():
        return _PROTO_NUMBERS.get(int(label), "unknown")
    label = _PROTO_ALIASES.get(label, label)
    return label if label in ("tcp", "udp", "icmp") else "unknown"


# ---------------------------------------------------------------------------
# TracerouteKey
# ---------------------------------------------------------------------------

class TracerouteKey(NamedTuple):
    """
    Correlation group for one prober → target pair over one transport.

    Fields are stored already normalised (canonical address text, lower-case
    label), so equal triples always hash and compare equal. Being a tuple,
    no separator character can make two different triples collide.
    """

    src_ip: str
    dst_ip: str
    proto: str

    def __repr__(self) -> str:
        return f"{self.src_ip}→{self.dst_ip}/{self.proto}"


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TracerouteDetection:
    """Log record: src_ip probed dst_ip over proto and responder_ip answered."""

    timestamp: float
    src_ip: str
    dst_ip: str
    proto: str
    responder_ip: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TracerouteNotice:
    """Operator notice raised once per crossing, subject to suppression."""

    src_ip: str
    proto: str
    responders: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def identifier(self) -> str:
        return f"{self.src_ip}/{self.proto}"

    @property
    def message(self) -> str:
        return f"{self.src_ip} seems to be running traceroute using {self.proto}"

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["message"] = self.message
        return d
