from __future__ import annotations

from typing import Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class MetricsSink(Protocol):
    def job_finished(self, status: str) -> None:
        ...

    def product_versions(self, product_id: str, count: int) -> None:
        ...

    def queue_state(self, depth: int, processing: int) -> None:
        ...


class NullMetricsSink:
    def job_finished(self, status: str) -> None:
        return

    def product_versions(self, product_id: str, count: int) -> None:
        return

    def queue_state(self, depth: int, processing: int) -> None:
        return


class PrometheusMetricsSink:
    """Prometheus-backed sink with its own registry, so tests can build many."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self._fetch_jobs = Counter(
            "fetch_jobs_total",
            "Total number of fetch jobs by outcome",
            ["status"],
            registry=self.registry,
        )
        self._product_versions = Gauge(
            "product_versions_total",
            "Number of versions returned by the last successful fetch",
            ["product_id"],
            registry=self.registry,
        )
        self._queue_depth = Gauge("queue_depth", "Envelopes waiting in the fetch queue", registry=self.registry)
        self._queue_processing = Gauge(
            "queue_processing",
            "Envelopes popped and not yet acknowledged",
            registry=self.registry,
        )

    def job_finished(self, status: str) -> None:
        self._fetch_jobs.labels(status=status).inc()

    def product_versions(self, product_id: str, count: int) -> None:
        self._product_versions.labels(product_id=product_id).set(count)

    def queue_state(self, depth: int, processing: int) -> None:
        self._queue_depth.set(depth)
        self._queue_processing.set(processing)

    def render(self) -> bytes:
        return generate_latest(self.registry)


_sink: PrometheusMetricsSink | None = None


def get_metrics_sink() -> PrometheusMetricsSink:
    global _sink
    if _sink is None:
        _sink = PrometheusMetricsSink()
    return _sink
