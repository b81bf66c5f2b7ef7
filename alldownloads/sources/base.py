from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable


class FetchError(RuntimeError):
    pass


class FetchCancelledError(FetchError):
    pass


@dataclass(frozen=True)
class VersionRecord:
    version: str
    platform: str
    architecture: str
    download_url: str
    filename: str
    file_size: int = 0
    checksum: str = ""
    checksum_type: str = ""
    etag: str = ""


@dataclass
class FetchContext:
    """Operation budget handed to a capability for one fetch.

    The deadline bounds the whole fetch; the cancel event is the worker pool's
    shutdown signal. Capabilities check both between network calls.
    """

    deadline: float
    cancel_event: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def with_timeout(
        cls,
        timeout_seconds: float,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "FetchContext":
        return cls(
            deadline=clock() + timeout_seconds,
            cancel_event=cancel_event if cancel_event is not None else threading.Event(),
            clock=clock,
        )

    def remaining(self) -> float:
        return max(0.0, self.deadline - self.clock())

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise FetchCancelledError("Fetch cancelled by shutdown")
        if self.expired:
            raise FetchCancelledError("Fetch exceeded its time budget")

    def request_timeout(self, default: float) -> float:
        self.raise_if_cancelled()
        return min(default, self.remaining())


@runtime_checkable
class FetchCapability(Protocol):
    product_id: str

    def fetch(self, ctx: FetchContext) -> list[VersionRecord]:
        ...
