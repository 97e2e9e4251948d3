"""
api/serializers.py

Request/response models for the HTTP surface.
"""

from __future__ import annotations

from ipaddress import IPv4Address, IPv6Address

from pydantic import BaseModel, Field


class LowTTLEventRequest(BaseModel):
    src_ip: IPv4Address | IPv6Address
    dst_ip: IPv4Address | IPv6Address
    proto: str | int
    ttl: int = Field(ge=0, le=255)


class TimeExceededEventRequest(BaseModel):
    src_ip: IPv4Address | IPv6Address
    dst_ip: IPv4Address | IPv6Address
    proto: str | int
    responder_ip: IPv4Address | IPv6Address


class EventAcceptedResponse(BaseModel):
    accepted: bool


class DetectionResponse(BaseModel):
    timestamp: float
    src_ip: str
    dst_ip: str
    proto: str
    responder_ip: str

    model_config = {"from_attributes": True}


class NoticeResponse(BaseModel):
    timestamp: float
    src_ip: str
    proto: str
    responders: int
    message: str

    model_config = {"from_attributes": True}


class StatsResponse(BaseModel):
    metrics: dict[str, int]
    jobs: dict[str, dict[str, int]]


class ConfigResponse(BaseModel):
    require_low_ttl_precursor: bool
    threshold: float
    epoch_seconds: float
    notice_suppress_seconds: float
