"""
api/main.py

FastAPI application factory.

The detection pipeline is built in main.py and handed over with
set_pipeline(); routes reach it through the get_*() dependencies, which
tests replace via app.dependency_overrides or by calling set_pipeline()
with their own objects.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..aggregation.engine import AggregationEngine
from ..detection.traceroute import TraceroutePolicy
from ..ingest import EventIngestor
from .routes import config as config_router
from .routes import detections as detections_router
from .routes import events as events_router
from .routes import stats as stats_router

logger = logging.getLogger(__name__)

_engine: AggregationEngine | None = None
_policy: TraceroutePolicy | None = None
_ingestor: EventIngestor | None = None


def set_pipeline(
    engine: AggregationEngine,
    policy: TraceroutePolicy,
    ingestor: EventIngestor,
) -> None:
    global _engine, _policy, _ingestor
    _engine = engine
    _policy = policy
    _ingestor = ingestor


def get_engine() -> AggregationEngine:
    if _engine is None:
        raise RuntimeError("Pipeline not initialised — call set_pipeline() first")
    return _engine


def get_policy() -> TraceroutePolicy:
    if _policy is None:
        raise RuntimeError("Pipeline not initialised — call set_pipeline() first")
    return _policy


def get_ingestor() -> EventIngestor:
    if _ingestor is None:
        raise RuntimeError("Pipeline not initialised — call set_pipeline() first")
    return _ingestor


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        yield
        logger.info("FastAPI shutdown")

    app = FastAPI(
        title="TraceWatch — Traceroute Detector",
        version="1.0.0",
        description="Windowed correlation of low-TTL probes and time-exceeded replies",
        lifespan=lifespan,
    )

    app.include_router(events_router.router,     prefix="/api")
    app.include_router(detections_router.router, prefix="/api")
    app.include_router(stats_router.router,      prefix="/api")
    app.include_router(config_router.router,     prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        jobs = {}
        if _engine is not None:
            jobs = {name: job.is_running for name, job in _engine.jobs.items()}
        return {"status": "ok", "jobs": jobs}

    return app
