from alldownloads.worker.metrics import MetricsSink, NullMetricsSink, PrometheusMetricsSink, get_metrics_sink
from alldownloads.worker.pool import JobOutcome, JobStatusUpdateError, WorkerPool

__all__ = [
    "WorkerPool",
    "JobOutcome",
    "JobStatusUpdateError",
    "MetricsSink",
    "NullMetricsSink",
    "PrometheusMetricsSink",
    "get_metrics_sink",
]
