from __future__ import annotations

import os
from pathlib import Path

import pytest

import alldownloads.db.session as db_session_module
from alldownloads.catalog.service import CatalogService
from alldownloads.core.config import get_settings
from alldownloads.db.init_db import initialize_database
from alldownloads.db.models import FetchJobStatus
from alldownloads.jobs.service import (
    FetchJobNotFoundError,
    FetchJobService,
    InvalidFetchJobStateError,
    UnknownProductError,
)
from alldownloads.sources.registry import PRODUCT_DEFINITIONS


def make_service(tmp_path: Path) -> FetchJobService:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)
    os.environ["ALLDOWNLOADS_STATE_ROOT"] = state_root.as_posix()
    os.environ.pop("ALLDOWNLOADS_DATABASE_URL", None)

    get_settings.cache_clear()
    db_session_module._engine = None
    db_session_module._session_factory = None
    initialize_database()

    session_factory = db_session_module.get_session_factory()
    CatalogService(session_factory).sync_products(PRODUCT_DEFINITIONS)
    return FetchJobService(get_settings(), session_factory)


def test_job_lifecycle_to_completed(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    job = service.create_job("ubuntu")
    assert job.status == FetchJobStatus.PENDING
    assert job.started_at is None

    running = service.mark_running(job.id)
    assert running.status == FetchJobStatus.RUNNING
    assert running.started_at is not None

    done = service.mark_completed(job.id)
    assert done.status == FetchJobStatus.COMPLETED
    assert done.completed_at is not None
    assert done.error is None


def test_failed_job_records_error_and_can_run_again(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    job = service.create_job("ubuntu")
    service.mark_running(job.id)

    failed = service.mark_failed(job.id, "   ")
    assert failed.status == FetchJobStatus.FAILED
    assert failed.error == "unknown error"
    assert failed.completed_at is not None

    again = service.mark_running(job.id)
    assert again.status == FetchJobStatus.RUNNING
    assert again.error is None
    assert again.completed_at is None


def test_pending_job_cannot_complete_directly(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    job = service.create_job("firefox")

    with pytest.raises(InvalidFetchJobStateError):
        service.mark_completed(job.id)
    with pytest.raises(InvalidFetchJobStateError):
        service.mark_failed(job.id, "boom")


def test_unknown_job_and_product(tmp_path: Path) -> None:
    service = make_service(tmp_path)

    with pytest.raises(FetchJobNotFoundError):
        service.get_job("missing")
    with pytest.raises(FetchJobNotFoundError):
        service.mark_running("missing")
    with pytest.raises(UnknownProductError):
        service.create_job("unknown-app")


def test_keyset_pagination_has_no_gaps(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    created = [service.create_job(product_id).id for product_id in ("ubuntu", "kali", "firefox") * 3]

    seen: list[str] = []
    cursor = None
    while True:
        page = service.list_jobs(limit=4, cursor=cursor)
        seen.extend(item.id for item in page.items)
        if page.next_cursor is None:
            break
        cursor = page.next_cursor

    assert len(seen) == len(created)
    assert set(seen) == set(created)


def test_list_jobs_filters_and_rejects_bad_cursor(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    ubuntu_job = service.create_job("ubuntu")
    service.create_job("kali")
    service.mark_running(ubuntu_job.id)

    running = service.list_jobs(status=FetchJobStatus.RUNNING)
    assert [item.id for item in running.items] == [ubuntu_job.id]

    kali = service.list_jobs(product_id="kali")
    assert [item.product_id for item in kali.items] == ["kali"]

    with pytest.raises(ValueError):
        service.list_jobs(cursor="does-not-exist")


def test_job_counts_cover_every_status(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    first = service.create_job("ubuntu")
    service.create_job("kali")
    service.mark_running(first.id)
    service.mark_failed(first.id, "network down")

    assert service.job_counts() == {"pending": 1, "running": 0, "completed": 0, "failed": 1}


def test_terminal_status_can_be_overwritten_by_overlapping_delivery(tmp_path: Path) -> None:
    service = make_service(tmp_path)
    job = service.create_job("ubuntu")
    service.mark_running(job.id)
    service.mark_completed(job.id)

    assert service.mark_completed(job.id).status == FetchJobStatus.COMPLETED
    failed = service.mark_failed(job.id, "second delivery failed")
    assert failed.status == FetchJobStatus.FAILED
    assert service.mark_failed(job.id, "again").error == "again"
    completed = service.mark_completed(job.id)
    assert completed.status == FetchJobStatus.COMPLETED
    assert completed.error is None
