from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Sequence

from prometheus_client import start_http_server
from sqlalchemy.exc import SQLAlchemyError

from alldownloads.catalog.service import CatalogService
from alldownloads.core.config import Settings, get_settings
from alldownloads.core.logging import configure_logging
from alldownloads.db.init_db import initialize_database
from alldownloads.db.session import get_session_factory
from alldownloads.jobs.enqueuer import RefreshEnqueuer
from alldownloads.jobs.queue import QueueError, get_job_queue
from alldownloads.jobs.scheduler import RefreshScheduler
from alldownloads.jobs.service import FetchJobService
from alldownloads.sources.http import SourceHttpClient
from alldownloads.sources.registry import PRODUCT_DEFINITIONS, build_default_registry
from alldownloads.worker.metrics import PrometheusMetricsSink, get_metrics_sink
from alldownloads.worker.pool import WorkerPool

logger = logging.getLogger("alldownloads.worker")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="alldownloads-worker", description="Run the download metadata fetch workers.")
    parser.add_argument("--concurrency", type=int, default=None, help="number of worker threads")
    parser.add_argument("--no-scheduler", action="store_true", help="do not enqueue periodic refreshes")
    parser.add_argument("--refresh-now", action="store_true", help="enqueue a refresh for every product at startup")
    return parser.parse_args(argv)


def _start_metrics_exporter(settings: Settings, sink: PrometheusMetricsSink) -> None:
    if settings.metrics_port == 0:
        logger.info("metrics exporter disabled")
        return
    try:
        start_http_server(settings.metrics_port, addr=settings.metrics_host, registry=sink.registry)
    except OSError as exc:
        logger.error("failed to start metrics exporter on %s:%d: %s", settings.metrics_host, settings.metrics_port, exc)
        return
    logger.info("metrics exporter listening on http://%s:%d/metrics", settings.metrics_host, settings.metrics_port)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        initialize_database()
    except SQLAlchemyError:
        logger.exception("failed to initialize database")
        return 1

    queue = get_job_queue()
    try:
        queue.ping()
    except QueueError as exc:
        logger.error("%s", exc)
        return 1

    session_factory = get_session_factory()
    catalog = CatalogService(session_factory)
    synced = catalog.sync_products(PRODUCT_DEFINITIONS)
    logger.info("synced product definitions count=%d", synced)

    http_client = SourceHttpClient(
        user_agent=settings.http_user_agent,
        timeout_seconds=settings.http_timeout_seconds,
    )
    registry = build_default_registry(settings, client=http_client)
    metrics = get_metrics_sink()
    _start_metrics_exporter(settings, metrics)
    pool = WorkerPool(
        settings,
        session_factory,
        queue,
        registry,
        metrics,
        concurrency=args.concurrency,
    )
    enqueuer = RefreshEnqueuer(catalog, FetchJobService(settings=settings, session_factory=session_factory), queue)

    def _shutdown(signum, _frame) -> None:  # type: ignore[no-untyped-def]
        logger.info("received signal %s, shutting down", signal.Signals(signum).name)
        pool.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    if args.refresh_now:
        enqueuer.enqueue_all()

    scheduler: RefreshScheduler | None = None
    if settings.refresh_scheduler_enabled and not args.no_scheduler:
        scheduler = RefreshScheduler(enqueuer, settings.refresh_interval_seconds, pool.stop_event)
        scheduler.start()

    try:
        pool.run_forever()
    finally:
        if scheduler is not None:
            scheduler.stop()
            scheduler.join(5.0)
        http_client.close()
        queue.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
