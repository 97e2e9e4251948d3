from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import NoReturn

import uvicorn

from .aggregation import AggregationEngine
from .api.main import create_app, set_pipeline
from .config import settings
from .detection import DetectionLog, TraceroutePolicy
from .ingest import EventIngestor
from .metrics import METRICS

logger = logging.getLogger("tracewatch.main")


def build_pipeline(
    require_low_ttl: bool,
    threshold: float,
    epoch_seconds: float,
) -> tuple[AggregationEngine, TraceroutePolicy, EventIngestor]:
    """Wire engine → traceroute policy → ingestor. Raises ValueError on bad config."""
    engine = AggregationEngine()
    policy = TraceroutePolicy(
        writer=DetectionLog(maxlen=settings.DETECTION_LOG_MAX),
        require_low_ttl=require_low_ttl,
        threshold=threshold,
        epoch_seconds=epoch_seconds,
        notice_suppress_seconds=settings.NOTICE_SUPPRESS_SECONDS,
    )
    policy.install(engine)
    return engine, policy, EventIngestor(policy)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

async def run(
    host: str,
    port: int,
    require_low_ttl: bool,
    threshold: float,
    epoch_seconds: float,
) -> None:
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_handler(_signum, _frame) -> None:
        logger.info("Shutdown signal received")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    engine, policy, ingestor = build_pipeline(require_low_ttl, threshold, epoch_seconds)
    set_pipeline(engine, policy, ingestor)

    app = create_app()
    uv_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        loop="none",
    )
    uv_server = uvicorn.Server(uv_config)

    epoch_tasks = engine.start()
    api_task = asyncio.create_task(uv_server.serve(), name="api")

    logger.info(
        "TraceWatch — API=http://%s:%d  epoch=%.0fs threshold=%s precursor=%s",
        host, port, epoch_seconds, threshold, require_low_ttl,
    )

    await shutdown_event.wait()

    uv_server.should_exit = True
    await engine.stop()
    await asyncio.gather(api_task, *epoch_tasks, return_exceptions=True)
    logger.info("Final stats — metrics=%s engine=%s", METRICS.as_dict(), engine.stats)
    logger.info("TraceWatch stopped cleanly")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="TraceWatch traceroute detector")
    parser.add_argument("--host", default=settings.API_HOST)
    parser.add_argument("--port", type=int, default=settings.API_PORT)
    parser.add_argument("--epoch", type=float, default=settings.EPOCH_SECONDS,
                        help="aggregation window in seconds")
    parser.add_argument("--threshold", type=float, default=settings.DETECTION_THRESHOLD,
                        help="distinct time-exceeded responders needed to fire")
    parser.add_argument("--no-precursor", action="store_true",
                        help="do not require a low-TTL probe before time-exceeded replies count")
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL, type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args()


def main() -> NoReturn:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    require_low_ttl = settings.REQUIRE_LOW_TTL_PRECURSOR and not args.no_precursor

    # Fail fast on bad configuration before anything starts listening
    try:
        build_pipeline(require_low_ttl, args.threshold, args.epoch)
    except ValueError as e:
        print(f"ERROR: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    asyncio.run(
        run(
            host=args.host,
            port=args.port,
            require_low_ttl=require_low_ttl,
            threshold=args.threshold,
            epoch_seconds=args.epoch,
        )
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
