from __future__ import annotations

import logging
import threading
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from alldownloads.catalog.service import CatalogService, InvalidVersionRecordError, ProductNotFoundError
from alldownloads.core.config import Settings
from alldownloads.jobs.queue import JobMessage, JobQueue, MalformedJobMessageError, QueueError
from alldownloads.jobs.service import FetchJobNotFoundError, FetchJobService, InvalidFetchJobStateError
from alldownloads.sources.base import FetchCancelledError, FetchContext, VersionRecord
from alldownloads.sources.registry import CapabilityNotFoundError, CapabilityRegistry
from alldownloads.worker.metrics import MetricsSink, NullMetricsSink

logger = logging.getLogger(__name__)

_STATUS_WRITE_ERRORS = (SQLAlchemyError, FetchJobNotFoundError, InvalidFetchJobStateError)
_DEQUEUE_BACKOFF_SECONDS = 1.0


class JobStatusUpdateError(RuntimeError):
    pass


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    # Status could not be written; the envelope stays in the processing set.
    STRANDED = "stranded"


class _JobFailure(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class WorkerPool:
    def __init__(
        self,
        settings: Settings,
        session_factory: sessionmaker[Session],
        queue: JobQueue,
        registry: CapabilityRegistry,
        metrics: MetricsSink | None = None,
        *,
        concurrency: int | None = None,
    ):
        self._settings = settings
        self._queue = queue
        self._registry = registry
        self._metrics: MetricsSink = metrics or NullMetricsSink()
        self._jobs = FetchJobService(settings=settings, session_factory=session_factory)
        self._catalog = CatalogService(session_factory)
        self.concurrency = concurrency if concurrency is not None else settings.worker_concurrency
        if self.concurrency < 1:
            raise ValueError("Worker concurrency must be >= 1")

        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    @property
    def is_running(self) -> bool:
        with self._lock:
            return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        with self._lock:
            if any(thread.is_alive() for thread in self._threads):
                raise RuntimeError("Worker pool is already running")
            self._stop_event.clear()
            self._threads = [
                threading.Thread(
                    target=self._run_worker,
                    args=(f"worker-{index}",),
                    name=f"alldownloads-worker-{index}",
                    daemon=True,
                )
                for index in range(self.concurrency)
            ]
            for thread in self._threads:
                thread.start()
        logger.info("worker pool started concurrency=%d", self.concurrency)

    def stop(self) -> None:
        if not self._stop_event.is_set():
            logger.info("worker pool stopping")
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every worker thread; returns ``True`` when all have exited."""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in threads)

    def run_forever(self) -> None:
        self.start()
        while not self._stop_event.wait(1.0):
            pass
        # A worker finishes the job in hand before it notices the stop event.
        self.join(self._settings.fetch_timeout_seconds + self._settings.dequeue_timeout_seconds)
        logger.info("worker pool stopped")

    def _run_worker(self, worker_name: str) -> None:
        logger.info("worker started name=%s", worker_name)
        while not self._stop_event.is_set():
            try:
                message = self._queue.dequeue(self._settings.dequeue_timeout_seconds)
            except MalformedJobMessageError as exc:
                logger.error("dropping malformed envelope worker=%s: %s", worker_name, exc)
                continue
            except QueueError as exc:
                logger.error("dequeue failed worker=%s: %s", worker_name, exc)
                self._stop_event.wait(_DEQUEUE_BACKOFF_SECONDS)
                continue

            if message is None:
                continue

            try:
                self.process_message(message, worker_name)
            except Exception:
                logger.exception("unhandled error processing job_id=%s worker=%s", message.id, worker_name)
            self._refresh_queue_state()
        logger.info("worker stopped name=%s", worker_name)

    def process_message(self, message: JobMessage, worker_name: str = "worker-0") -> JobOutcome:
        logger.info("processing job job_id=%s retries=%d worker=%s", message.id, message.retries, worker_name)
        try:
            return self._handle(message, worker_name)
        except JobStatusUpdateError as exc:
            logger.error("job status update failed job_id=%s worker=%s: %s", message.id, worker_name, exc)
            self._metrics.job_finished(JobOutcome.FAILED.value)
            return JobOutcome.STRANDED

    def _handle(self, message: JobMessage, worker_name: str) -> JobOutcome:
        job_id = message.id
        self._write_status(job_id, lambda: self._jobs.mark_running(job_id))

        try:
            product_id, records = self._fetch(job_id)
        except _JobFailure as failure:
            logger.error("job failed job_id=%s worker=%s: %s", job_id, worker_name, failure.reason)
            self._write_status(job_id, lambda: self._jobs.mark_failed(job_id, failure.reason))
            try:
                self._queue.retry_job(message)
            except QueueError as exc:
                logger.error("failed to retry job_id=%s: %s", job_id, exc)
            self._metrics.job_finished(JobOutcome.FAILED.value)
            return JobOutcome.FAILED

        stored = self._store_versions(product_id, records)
        try:
            promoted = self._catalog.promote_latest_versions(product_id)
        except (ProductNotFoundError, SQLAlchemyError) as exc:
            logger.error("failed to promote latest versions product_id=%s: %s", product_id, exc)
        else:
            logger.info("promoted latest versions product_id=%s count=%d", product_id, promoted)

        self._write_status(job_id, lambda: self._jobs.mark_completed(job_id))
        try:
            self._queue.mark_completed(job_id)
        except QueueError as exc:
            logger.error("failed to acknowledge job_id=%s: %s", job_id, exc)

        self._metrics.job_finished(JobOutcome.COMPLETED.value)
        self._metrics.product_versions(product_id, len(records))
        logger.info(
            "job completed job_id=%s product_id=%s versions=%d stored=%d worker=%s",
            job_id,
            product_id,
            len(records),
            stored,
            worker_name,
        )
        return JobOutcome.COMPLETED

    def _write_status(self, job_id: str, write) -> None:  # type: ignore[no-untyped-def]
        try:
            write()
        except _STATUS_WRITE_ERRORS as exc:
            raise JobStatusUpdateError(f"Failed to update status of job {job_id}: {exc}") from exc

    def _fetch(self, job_id: str) -> tuple[str, list[VersionRecord]]:
        try:
            job = self._jobs.get_job(job_id)
            product = self._catalog.get_product(job.product_id)
        except (FetchJobNotFoundError, ProductNotFoundError) as exc:
            raise _JobFailure(f"failed to get product: {exc}") from exc
        except SQLAlchemyError as exc:
            raise _JobFailure(f"failed to load job: {exc}") from exc

        try:
            capability = self._registry.require(product.id)
        except CapabilityNotFoundError as exc:
            raise _JobFailure(str(exc)) from exc

        ctx = FetchContext.with_timeout(self._settings.fetch_timeout_seconds, cancel_event=self._stop_event)
        try:
            records = capability.fetch(ctx)
        except FetchCancelledError as exc:
            raise _JobFailure(f"fetch cancelled: {exc}") from exc
        except Exception as exc:
            logger.debug("fetch raised for product_id=%s", product.id, exc_info=True)
            raise _JobFailure(f"failed to fetch versions: {exc}") from exc
        return product.id, list(records)

    def _store_versions(self, product_id: str, records: list[VersionRecord]) -> int:
        stored = 0
        for record in records:
            try:
                self._catalog.upsert_version(product_id, record)
            except (InvalidVersionRecordError, SQLAlchemyError) as exc:
                logger.error(
                    "failed to store version product_id=%s version=%s platform=%s arch=%s: %s",
                    product_id,
                    record.version,
                    record.platform,
                    record.architecture,
                    exc,
                )
                continue
            stored += 1
        return stored

    def _refresh_queue_state(self) -> None:
        try:
            depth = self._queue.queue_depth()
            processing = self._queue.processing_count()
        except QueueError as exc:
            logger.debug("failed to read queue state: %s", exc)
            return
        self._metrics.queue_state(depth, processing)
