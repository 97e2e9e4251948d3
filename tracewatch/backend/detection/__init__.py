"""detection/__init__.py"""
from .base import BasePolicy
from .models import TracerouteDetection, TracerouteKey, TracerouteNotice, transport_label
from .sinks import DetectionLog
from .traceroute import TraceroutePolicy

__all__ = [
    "BasePolicy",
    "DetectionLog",
    "TracerouteDetection",
    "TracerouteKey",
    "TracerouteNotice",
    "TraceroutePolicy",
    "transport_label",
]
