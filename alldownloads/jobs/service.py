from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from alldownloads.core.config import Settings
from alldownloads.db.models import FetchJob, FetchJobStatus, Product
from alldownloads.jobs.types import FetchJobSnapshot


class FetchJobNotFoundError(RuntimeError):
    pass


class InvalidFetchJobStateError(RuntimeError):
    pass


class UnknownProductError(RuntimeError):
    pass


@dataclass(frozen=True)
class FetchJobListResult:
    items: list[FetchJobSnapshot]
    next_cursor: str | None


# Envelopes can be redelivered after a failure, and the same job id may be
# enqueued more than once with deliveries overlapping, so once a job has left
# PENDING any status may be written over any other.
_STARTED_STATES = {FetchJobStatus.RUNNING, FetchJobStatus.COMPLETED, FetchJobStatus.FAILED}
ALLOWED_TRANSITIONS: dict[FetchJobStatus, set[FetchJobStatus]] = {
    FetchJobStatus.PENDING: {FetchJobStatus.RUNNING},
    FetchJobStatus.RUNNING: set(_STARTED_STATES),
    FetchJobStatus.FAILED: set(_STARTED_STATES),
    FetchJobStatus.COMPLETED: set(_STARTED_STATES),
}


class FetchJobService:
    def __init__(self, settings: Settings, session_factory: sessionmaker[Session]):
        self._settings = settings
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _enforce_transition(self, from_status: FetchJobStatus, to_status: FetchJobStatus) -> None:
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidFetchJobStateError(f"Illegal transition: {from_status.value} -> {to_status.value}")

    def create_job(self, product_id: str) -> FetchJobSnapshot:
        with self._session_factory() as session:
            if session.get(Product, product_id) is None:
                raise UnknownProductError(f"Product not found: {product_id}")
            now = self._now()
            job = FetchJob(
                id=str(uuid4()),
                product_id=product_id,
                status=FetchJobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            return self._to_snapshot(job)

    def get_job(self, job_id: str) -> FetchJobSnapshot:
        with self._session_factory() as session:
            job = session.get(FetchJob, job_id)
            if job is None:
                raise FetchJobNotFoundError(f"Fetch job not found: {job_id}")
            return self._to_snapshot(job)

    def list_jobs(
        self,
        *,
        limit: int | None = None,
        cursor: str | None = None,
        status: FetchJobStatus | None = None,
        product_id: str | None = None,
    ) -> FetchJobListResult:
        requested = self._settings.default_page_size if limit is None else limit
        bounded_limit = max(1, min(requested, self._settings.max_page_size))
        with self._session_factory() as session:
            stmt = select(FetchJob).order_by(FetchJob.created_at.desc(), FetchJob.id.desc()).limit(bounded_limit + 1)
            if status is not None:
                stmt = stmt.where(FetchJob.status == status)
            if product_id is not None:
                stmt = stmt.where(FetchJob.product_id == product_id)
            if cursor:
                anchor_exists = session.scalar(select(FetchJob.id).where(FetchJob.id == cursor))
                if anchor_exists is None:
                    raise ValueError(f"Invalid pagination cursor: {cursor}")
                anchor_created_at = select(FetchJob.created_at).where(FetchJob.id == cursor).scalar_subquery()
                stmt = stmt.where(
                    or_(
                        FetchJob.created_at < anchor_created_at,
                        and_(FetchJob.created_at == anchor_created_at, FetchJob.id < cursor),
                    )
                )
            rows = list(session.scalars(stmt).all())
            items = rows[:bounded_limit]
            next_cursor = items[-1].id if len(rows) > bounded_limit and items else None
            return FetchJobListResult(items=[self._to_snapshot(row) for row in items], next_cursor=next_cursor)

    def _transition(
        self,
        job_id: str,
        to_status: FetchJobStatus,
        *,
        error: str | None = None,
    ) -> FetchJobSnapshot:
        with self._session_factory() as session:
            job = session.get(FetchJob, job_id)
            if job is None:
                raise FetchJobNotFoundError(f"Fetch job not found: {job_id}")
            self._enforce_transition(job.status, to_status)
            now = self._now()
            job.status = to_status
            if to_status == FetchJobStatus.RUNNING:
                job.started_at = now
                job.completed_at = None
                job.error = None
            else:
                job.completed_at = now
                job.error = error
            job.updated_at = now
            session.commit()
            session.refresh(job)
            return self._to_snapshot(job)

    def mark_running(self, job_id: str) -> FetchJobSnapshot:
        return self._transition(job_id, FetchJobStatus.RUNNING)

    def mark_completed(self, job_id: str) -> FetchJobSnapshot:
        return self._transition(job_id, FetchJobStatus.COMPLETED)

    def mark_failed(self, job_id: str, error: str) -> FetchJobSnapshot:
        message = error.strip() or "unknown error"
        return self._transition(job_id, FetchJobStatus.FAILED, error=message)

    def job_counts(self) -> dict[str, int]:
        with self._session_factory() as session:
            rows = session.execute(select(FetchJob.status, func.count()).group_by(FetchJob.status)).all()
        counts = {status.value: 0 for status in FetchJobStatus}
        for status, total in rows:
            counts[FetchJobStatus(status).value] = int(total)
        return counts

    def _to_snapshot(self, job: FetchJob) -> FetchJobSnapshot:
        return FetchJobSnapshot(
            id=job.id,
            product_id=job.product_id,
            status=job.status,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


def snapshot_to_dict(snapshot: FetchJobSnapshot) -> dict[str, Any]:
    return {
        "id": snapshot.id,
        "product_id": snapshot.product_id,
        "status": snapshot.status.value,
        "started_at": snapshot.started_at,
        "completed_at": snapshot.completed_at,
        "error": snapshot.error,
        "created_at": snapshot.created_at,
        "updated_at": snapshot.updated_at,
    }
