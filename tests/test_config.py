from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from alldownloads.core.config import Settings


def test_defaults_derive_sqlite_url_from_state_root(tmp_path: Path) -> None:
    settings = Settings(state_root=tmp_path / "state", log_level="debug")

    assert settings.log_level == "DEBUG"
    assert settings.effective_database_url.endswith("/state/alldownloads.sqlite3")
    assert (tmp_path / "state").is_dir()
    assert settings.queue_retry_limit == 3
    assert settings.queue_key == "fetch_jobs"
    assert settings.processing_key == "fetch_jobs:processing"


def test_explicit_database_url_wins(tmp_path: Path) -> None:
    settings = Settings(state_root=tmp_path, database_url="postgresql+psycopg://db/alldownloads")
    assert settings.effective_database_url == "postgresql+psycopg://db/alldownloads"


@pytest.mark.parametrize(
    "overrides",
    [
        {"state_root": "relative/state"},
        {"state_root": "~/state"},
        {"log_level": "chatty"},
        {"queue_retry_limit": -1},
        {"dequeue_timeout_seconds": 30, "fetch_timeout_seconds": 30},
        {"queue_key": "same", "processing_key": "same"},
        {"default_page_size": 100, "max_page_size": 10},
    ],
)
def test_invalid_settings_are_rejected(tmp_path: Path, overrides: dict[str, object]) -> None:
    values: dict[str, object] = {"state_root": tmp_path}
    values.update(overrides)
    with pytest.raises(ValidationError):
        Settings(**values)
