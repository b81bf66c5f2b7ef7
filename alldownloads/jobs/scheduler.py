from __future__ import annotations

import logging
import threading

from alldownloads.jobs.enqueuer import RefreshEnqueuer

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs ``enqueue_all`` every ``interval_seconds`` on a daemon thread."""

    def __init__(
        self,
        enqueuer: RefreshEnqueuer,
        interval_seconds: float,
        stop_event: threading.Event | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError("Refresh interval must be > 0")
        self._enqueuer = enqueuer
        self.interval_seconds = interval_seconds
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._thread: threading.Thread | None = None
        self.cycles = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Refresh scheduler is already running")
        self._thread = threading.Thread(target=self._run, name="alldownloads-refresh", daemon=True)
        self._thread.start()
        logger.info("refresh scheduler started interval=%ss", self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run_cycle(self) -> None:
        try:
            self._enqueuer.enqueue_all()
        except Exception:
            logger.exception("refresh cycle failed")
        finally:
            self.cycles += 1

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.run_cycle()
        logger.info("refresh scheduler stopped")
