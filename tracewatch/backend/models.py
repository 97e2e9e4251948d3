"""
backend/models.py

Events delivered by the surrounding network-analysis runtime.

Packet capture, header parsing and signature matching happen upstream;
by the time an event reaches this service it has already been classified.
Addresses arrive as text and are validated by ingest.py before they are
used as key material.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class LowTTLSignatureMatch:
    """An outbound packet matched the low-TTL traceroute signature."""

    src_ip: str
    """Host that sent the probe, e.g. '192.168.1.5'."""

    dst_ip: str
    """Probe target."""

    proto: str | int
    """Transport classification of the destination port ('tcp', 'UDP', 17, ...)."""

    ttl: int
    """IP TTL / hop limit of the matching packet."""


@dataclass(frozen=True, slots=True)
class TimeExceededNotification:
    """A time-exceeded response referencing a tracked probe arrived."""

    src_ip: str
    """Original prober, taken from the quoted packet inside the ICMP message."""

    dst_ip: str
    """Original probe target, from the quoted packet."""

    proto: str | int

    responder_ip: str
    """Router that emitted the time-exceeded message."""
