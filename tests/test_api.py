from __future__ import annotations

import os
from pathlib import Path

import fakeredis
from fastapi.testclient import TestClient

import alldownloads.db.session as db_session_module
import alldownloads.jobs.queue as queue_module
from alldownloads.api.app import create_app
from alldownloads.catalog.service import CatalogService
from alldownloads.core.config import get_settings
from alldownloads.jobs.queue import JobQueue
from alldownloads.sources.base import VersionRecord
from alldownloads.sources.registry import PRODUCT_DEFINITIONS

TOKEN = "test-token"


def make_client(tmp_path: Path) -> TestClient:
    state_root = tmp_path / "state"
    state_root.mkdir(parents=True, exist_ok=True)
    os.environ["ALLDOWNLOADS_STATE_ROOT"] = state_root.as_posix()
    os.environ["ALLDOWNLOADS_AUTH_TOKEN"] = TOKEN
    os.environ.pop("ALLDOWNLOADS_DATABASE_URL", None)

    get_settings.cache_clear()
    db_session_module._engine = None
    db_session_module._session_factory = None
    queue_module._queue = JobQueue(fakeredis.FakeRedis(server=fakeredis.FakeServer()))
    return TestClient(create_app())


def auth() -> dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}


def test_health_reports_dependencies(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        response = client.get("/api/v1/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"database": "ok", "redis": "ok"}


def test_products_are_synced_on_startup(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        listing = client.get("/api/v1/products")
        detail = client.get("/api/v1/products/ubuntu")
        missing = client.get("/api/v1/products/unknown-app")

    assert listing.status_code == 200
    assert {item["id"] for item in listing.json()["items"]} == {product.id for product in PRODUCT_DEFINITIONS}
    assert detail.status_code == 200
    assert detail.json()["category"] == "os"
    assert detail.json()["versions"] == []
    assert missing.status_code == 404


def test_product_detail_lists_versions(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        catalog = CatalogService(db_session_module.get_session_factory())
        catalog.upsert_version(
            "kali",
            VersionRecord(
                version="2025.2",
                platform="linux",
                architecture="amd64",
                download_url="https://cdimage.example.org/kali.iso",
                filename="kali.iso",
            ),
        )
        catalog.promote_latest_versions("kali")
        response = client.get("/api/v1/products/kali")

    versions = response.json()["versions"]
    assert len(versions) == 1
    assert versions[0]["is_latest"] is True
    assert versions[0]["download_url"] == "https://cdimage.example.org/kali.iso"


def test_refresh_requires_bearer_token(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        missing = client.post("/api/v1/refresh")
        wrong = client.post("/api/v1/refresh", headers={"Authorization": "Bearer nope"})
    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert queue_module._queue.queue_depth() == 0


def test_refresh_queues_jobs_and_exposes_them(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        response = client.post("/api/v1/refresh", headers=auth())
        assert response.status_code == 202
        body = response.json()
        assert body["jobs_queued"] == len(PRODUCT_DEFINITIONS)
        assert len(body["job_ids"]) == len(PRODUCT_DEFINITIONS)

        job = client.get(f"/api/v1/jobs/{body['job_ids'][0]}")
        assert job.status_code == 200
        assert job.json()["status"] == "pending"

        jobs = client.get("/api/v1/jobs", params={"limit": 2})
        assert len(jobs.json()["items"]) == 2
        assert jobs.json()["next_cursor"] is not None

        queue = client.get("/api/v1/queue")
        assert queue.json()["depth"] == len(PRODUCT_DEFINITIONS)
        assert queue.json()["processing"] == 0
        assert queue.json()["jobs"]["pending"] == len(PRODUCT_DEFINITIONS)


def test_refresh_single_product(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        ok = client.post("/api/v1/refresh", headers=auth(), json={"product_id": "firefox"})
        missing = client.post("/api/v1/refresh", headers=auth(), json={"product_id": "unknown-app"})

    assert ok.status_code == 202
    assert ok.json()["jobs_queued"] == 1
    assert missing.status_code == 404


def test_unknown_job_and_bad_cursor(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        assert client.get("/api/v1/jobs/missing").status_code == 404
        assert client.get("/api/v1/jobs", params={"cursor": "missing"}).status_code == 422


def test_metrics_endpoint_renders_prometheus_text(tmp_path: Path) -> None:
    with make_client(tmp_path) as client:
        client.post("/api/v1/refresh", headers=auth())
        response = client.get("/api/v1/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert f"queue_depth {float(len(PRODUCT_DEFINITIONS))}" in response.text
