from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from alldownloads.catalog.service import CatalogService
from alldownloads.jobs.queue import JobQueue, QueueError
from alldownloads.jobs.service import FetchJobService, UnknownProductError

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    job_ids: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def jobs_queued(self) -> int:
        return len(self.job_ids)


class RefreshEnqueuer:
    """Creates a pending job row per product and pushes its id onto the queue."""

    def __init__(self, catalog: CatalogService, jobs: FetchJobService, queue: JobQueue):
        self._catalog = catalog
        self._jobs = jobs
        self._queue = queue

    def enqueue_all(self) -> RefreshResult:
        result = RefreshResult()
        for product in self._catalog.list_products():
            self._enqueue_into(result, product.id)
        logger.info("refresh enqueued jobs=%d skipped=%d", len(result.job_ids), len(result.skipped))
        return result

    def enqueue_product(self, product_id: str) -> RefreshResult:
        result = RefreshResult()
        self._enqueue_into(result, product_id)
        return result

    def _enqueue_into(self, result: RefreshResult, product_id: str) -> None:
        try:
            job = self._jobs.create_job(product_id)
        except (UnknownProductError, SQLAlchemyError) as exc:
            logger.error("failed to create fetch job product_id=%s: %s", product_id, exc)
            result.skipped.append(product_id)
            return

        try:
            self._queue.enqueue(job.id)
        except QueueError as exc:
            # The row stays pending; nothing will pick it up.
            logger.error("failed to enqueue fetch job job_id=%s product_id=%s: %s", job.id, product_id, exc)
            result.skipped.append(product_id)
            return
        result.job_ids.append(job.id)
