"""Redis-backed FIFO of fetch-job envelopes.

Layout:
    <queue_key>       LIST of JSON envelopes; producers LPUSH, workers BRPOP
    <processing_key>  SET of job ids popped and not yet acknowledged

The processing set is for observability only. Nothing reclaims ids left in it
by a worker that died mid-job.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import redis
from redis.exceptions import RedisError

from alldownloads.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class QueueError(RuntimeError):
    pass


class MalformedJobMessageError(QueueError):
    pass


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class JobMessage:
    id: str
    retries: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    def to_json(self) -> str:
        return json.dumps(
            {
                "id": self.id,
                "retries": self.retries,
                "created_at": self.created_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> "JobMessage":
        try:
            payload: Any = json.loads(raw)
            job_id = payload["id"]
            retries = int(payload.get("retries", 0))
            created_raw = payload.get("created_at")
            created_at = datetime.fromisoformat(created_raw) if created_raw else _utcnow()
        except (ValueError, TypeError, KeyError) as exc:
            raise MalformedJobMessageError(f"Malformed job message: {raw!r}") from exc
        if not isinstance(job_id, str) or not job_id:
            raise MalformedJobMessageError(f"Malformed job message: {raw!r}")
        return cls(id=job_id, retries=retries, created_at=created_at)


class JobQueue:
    def __init__(
        self,
        client: redis.Redis,
        *,
        queue_key: str = "fetch_jobs",
        processing_key: str = "fetch_jobs:processing",
        retry_limit: int = 3,
        retry_delay_seconds: int = 300,
    ):
        self._client = client
        self.queue_key = queue_key
        self.processing_key = processing_key
        self.retry_limit = retry_limit
        # Declared for configuration parity; retry_job re-pushes immediately.
        self.retry_delay_seconds = retry_delay_seconds

    @classmethod
    def from_settings(cls, settings: Settings, client: redis.Redis | None = None) -> "JobQueue":
        if client is None:
            client = redis.Redis.from_url(
                settings.redis_url,
                socket_timeout=settings.redis_socket_timeout_seconds + settings.dequeue_timeout_seconds,
                socket_connect_timeout=settings.redis_socket_timeout_seconds,
                health_check_interval=30,
            )
        return cls(
            client,
            queue_key=settings.queue_key,
            processing_key=settings.processing_key,
            retry_limit=settings.queue_retry_limit,
            retry_delay_seconds=settings.queue_retry_delay_seconds,
        )

    def ping(self) -> None:
        try:
            self._client.ping()
        except RedisError as exc:
            raise QueueError(f"Failed to connect to Redis: {exc}") from exc

    def close(self) -> None:
        self._client.close()

    def enqueue(self, job_id: str) -> JobMessage:
        message = JobMessage(id=job_id)
        try:
            self._client.lpush(self.queue_key, message.to_json())
        except RedisError as exc:
            raise QueueError(f"Failed to enqueue job {job_id}: {exc}") from exc
        logger.info("job enqueued job_id=%s", job_id)
        return message

    def dequeue(self, timeout: float) -> JobMessage | None:
        """Block up to ``timeout`` seconds for the oldest envelope.

        Returns ``None`` when nothing arrived in time.
        """
        # BRPOP treats 0 as "block forever"; whole seconds keep older servers happy.
        wait = max(1, math.ceil(timeout))
        try:
            result = self._client.brpop([self.queue_key], timeout=wait)
        except RedisError as exc:
            raise QueueError(f"Failed to dequeue job: {exc}") from exc
        if result is None:
            return None

        _key, raw = result
        message = JobMessage.from_json(raw)

        try:
            self._client.sadd(self.processing_key, message.id)
        except RedisError as exc:
            logger.error("failed to add job to processing set job_id=%s: %s", message.id, exc)
        return message

    def mark_completed(self, job_id: str) -> None:
        try:
            self._client.srem(self.processing_key, job_id)
        except RedisError as exc:
            raise QueueError(f"Failed to remove job {job_id} from processing set: {exc}") from exc
        logger.info("job acknowledged job_id=%s", job_id)

    def retry_job(self, message: JobMessage) -> bool:
        """Requeue ``message`` at the head of the list, or drop it once the limit is reached.

        Returns ``True`` when the envelope was requeued.
        """
        if message.retries >= self.retry_limit:
            logger.error("job exceeded retry limit job_id=%s retries=%d", message.id, message.retries)
            self.mark_completed(message.id)
            return False

        message.retries += 1
        try:
            self._client.lpush(self.queue_key, message.to_json())
        except RedisError as exc:
            raise QueueError(f"Failed to retry job {message.id}: {exc}") from exc

        try:
            self._client.srem(self.processing_key, message.id)
        except RedisError as exc:
            logger.error("failed to remove job from processing set during retry job_id=%s: %s", message.id, exc)

        logger.info("job retried job_id=%s retries=%d", message.id, message.retries)
        return True

    def queue_depth(self) -> int:
        try:
            return int(self._client.llen(self.queue_key))
        except RedisError as exc:
            raise QueueError(f"Failed to read queue depth: {exc}") from exc

    def processing_count(self) -> int:
        try:
            return int(self._client.scard(self.processing_key))
        except RedisError as exc:
            raise QueueError(f"Failed to read processing count: {exc}") from exc

    def is_processing(self, job_id: str) -> bool:
        try:
            return bool(self._client.sismember(self.processing_key, job_id))
        except RedisError as exc:
            raise QueueError(f"Failed to read processing state of job {job_id}: {exc}") from exc


_queue: JobQueue | None = None


def get_job_queue() -> JobQueue:
    global _queue
    if _queue is not None:
        return _queue
    _queue = JobQueue.from_settings(get_settings())
    return _queue
