from __future__ import annotations

import signal
from pathlib import Path

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

import alldownloads.db.session as db_session_module
import alldownloads.worker.runner as runner_module
from alldownloads.core.config import get_settings
from alldownloads.jobs.queue import JobQueue
from alldownloads.sources.registry import PRODUCT_DEFINITIONS
from alldownloads.worker.metrics import get_metrics_sink
from alldownloads.worker.pool import WorkerPool


class UnreachableRedis(fakeredis.FakeRedis):
    def ping(self, **kwargs):  # type: ignore[no-untyped-def]
        raise RedisConnectionError("connection refused")


class Harness:
    def __init__(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, *, metrics_port: int = 9187):
        state_root = tmp_path / "state"
        state_root.mkdir(parents=True, exist_ok=True)
        monkeypatch.setenv("ALLDOWNLOADS_STATE_ROOT", state_root.as_posix())
        monkeypatch.setenv("ALLDOWNLOADS_METRICS_PORT", str(metrics_port))
        monkeypatch.delenv("ALLDOWNLOADS_DATABASE_URL", raising=False)

        get_settings.cache_clear()
        db_session_module._engine = None
        db_session_module._session_factory = None

        self.queue = JobQueue(fakeredis.FakeRedis(server=fakeredis.FakeServer()))
        self.exporters: list[tuple[int, str, object]] = []
        self.signals: list[int] = []
        self.pool_runs = 0

        def fake_start_http_server(port: int, addr: str = "0.0.0.0", registry=None):  # type: ignore[no-untyped-def]
            self.exporters.append((port, addr, registry))

        def fake_run_forever(pool: WorkerPool) -> None:
            self.pool_runs += 1

        monkeypatch.setattr(runner_module, "get_job_queue", lambda: self.queue)
        monkeypatch.setattr(runner_module, "start_http_server", fake_start_http_server)
        monkeypatch.setattr(runner_module.signal, "signal", lambda signum, handler: self.signals.append(signum))
        monkeypatch.setattr(WorkerPool, "run_forever", fake_run_forever)


def test_main_serves_worker_metrics_registry(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    harness = Harness(tmp_path, monkeypatch)

    assert runner_module.main(["--no-scheduler", "--refresh-now"]) == 0

    assert harness.exporters == [(9187, "0.0.0.0", get_metrics_sink().registry)]
    assert harness.pool_runs == 1
    assert set(harness.signals) == {signal.SIGINT, signal.SIGTERM}
    assert harness.queue.queue_depth() == len(PRODUCT_DEFINITIONS)


def test_main_skips_exporter_when_port_is_zero(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    harness = Harness(tmp_path, monkeypatch, metrics_port=0)

    assert runner_module.main(["--no-scheduler"]) == 0
    assert harness.exporters == []
    assert harness.queue.queue_depth() == 0


def test_exporter_bind_failure_does_not_stop_worker(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    harness = Harness(tmp_path, monkeypatch)

    def busy_port(port: int, addr: str = "0.0.0.0", registry=None):  # type: ignore[no-untyped-def]
        raise OSError("address already in use")

    monkeypatch.setattr(runner_module, "start_http_server", busy_port)

    assert runner_module.main(["--no-scheduler"]) == 0
    assert harness.pool_runs == 1


def test_main_exits_when_redis_is_unreachable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    harness = Harness(tmp_path, monkeypatch)
    harness.queue = JobQueue(UnreachableRedis(server=fakeredis.FakeServer()))

    assert runner_module.main(["--no-scheduler"]) == 1
    assert harness.pool_runs == 0


def test_main_exits_when_database_cannot_initialize(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    harness = Harness(tmp_path, monkeypatch)

    def broken_database() -> None:
        raise OperationalError("CREATE TABLE products", {}, Exception("disk I/O error"))

    monkeypatch.setattr(runner_module, "initialize_database", broken_database)

    assert runner_module.main(["--no-scheduler"]) == 1
    assert harness.pool_runs == 0
