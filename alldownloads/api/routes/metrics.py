from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from alldownloads.api.routes.jobs import get_queue
from alldownloads.jobs.queue import JobQueue, QueueError
from alldownloads.worker.metrics import PrometheusMetricsSink, get_metrics_sink

logger = logging.getLogger(__name__)

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def get_metrics(
    queue: JobQueue = Depends(get_queue),
    sink: PrometheusMetricsSink = Depends(get_metrics_sink),
) -> Response:
    try:
        sink.queue_state(queue.queue_depth(), queue.processing_count())
    except QueueError as exc:
        logger.warning("queue gauges not refreshed: %s", exc)
    return Response(content=sink.render(), media_type=CONTENT_TYPE_LATEST)
