from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine, text

from alldownloads.db.migrations import MIGRATIONS, apply_migrations
from alldownloads.db.models import Base


def _column_names(conn, table_name: str) -> set[str]:
    rows = conn.execute(text(f"PRAGMA table_info('{table_name}')")).mappings().all()
    return {str(row["name"]) for row in rows}


def _index_names(conn, table_name: str) -> set[str]:
    rows = conn.execute(text(f"PRAGMA index_list('{table_name}')")).mappings().all()
    return {str(row["name"]) for row in rows}


def _create_baseline_schema(conn) -> None:
    """Tables as the first release created them, before the lookup indexes existed."""
    conn.execute(
        text(
            """
            CREATE TABLE products (
                id VARCHAR(64) NOT NULL PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                vendor VARCHAR(255) NOT NULL,
                category VARCHAR(4) NOT NULL,
                description TEXT NOT NULL,
                icon_url VARCHAR(2048) NOT NULL,
                website_url VARCHAR(2048) NOT NULL,
                created_at DATETIME DEFAULT (CURRENT_TIMESTAMP) NOT NULL,
                updated_at DATETIME DEFAULT (CURRENT_TIMESTAMP) NOT NULL
            )
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE TABLE product_versions (
                id VARCHAR(36) NOT NULL PRIMARY KEY,
                product_id VARCHAR(64) NOT NULL REFERENCES products (id) ON DELETE CASCADE,
                version VARCHAR(128) NOT NULL,
                platform VARCHAR(32) NOT NULL,
                architecture VARCHAR(32) NOT NULL,
                download_url VARCHAR(4096) NOT NULL,
                checksum VARCHAR(256) NOT NULL,
                checksum_type VARCHAR(32) NOT NULL,
                file_size BIGINT NOT NULL,
                filename VARCHAR(1024) NOT NULL,
                is_latest BOOLEAN NOT NULL,
                etag VARCHAR(256) NOT NULL,
                last_fetched DATETIME NOT NULL,
                created_at DATETIME NOT NULL,
                updated_at DATETIME NOT NULL,
                CONSTRAINT uq_product_versions_product_version_platform_arch
                    UNIQUE (product_id, version, platform, architecture)
            )
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE TABLE fetch_jobs (
                id VARCHAR(36) NOT NULL PRIMARY KEY,
                product_id VARCHAR(64) NOT NULL REFERENCES products (id) ON DELETE CASCADE,
                status VARCHAR(9) NOT NULL,
                started_at DATETIME,
                completed_at DATETIME,
                error TEXT,
                created_at DATETIME NOT NULL,
                updated_at DATETIME NOT NULL
            )
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE TABLE schema_migrations (
                version INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )
    conn.execute(text("INSERT INTO schema_migrations(version, name) VALUES (1, 'baseline')"))
    conn.execute(
        text(
            "INSERT INTO products(id, name, vendor, category, description, icon_url, website_url) "
            "VALUES ('ubuntu', 'Ubuntu', 'Canonical', 'os', '', '', '')"
        )
    )
    conn.execute(
        text(
            "INSERT INTO fetch_jobs(id, product_id, status, created_at, updated_at) "
            "VALUES ('job-1', 'ubuntu', 'completed', CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        )
    )


def test_apply_migrations_adds_indexes_to_baseline_schema(tmp_path: Path) -> None:
    db_path = tmp_path / "baseline.sqlite3"
    engine = create_engine(f"sqlite:///{db_path.as_posix()}", future=True)

    with engine.begin() as conn:
        _create_baseline_schema(conn)

    apply_migrations(engine)
    apply_migrations(engine)

    with engine.begin() as conn:
        version_indexes = _index_names(conn, "product_versions")
        job_indexes = _index_names(conn, "fetch_jobs")
        job_count = conn.execute(text("SELECT COUNT(*) FROM fetch_jobs")).scalar_one()
        migration_versions = [
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        ]

    assert {"ix_product_versions_product_latest", "ix_product_versions_group_created"}.issubset(version_indexes)
    assert {
        "ix_fetch_jobs_product_status",
        "ix_fetch_jobs_created_id",
        "ix_fetch_jobs_status_updated",
    }.issubset(job_indexes)
    assert job_count == 1
    assert migration_versions == [step.version for step in MIGRATIONS]


def test_apply_migrations_on_empty_database_only_records_versions(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{(tmp_path / 'empty.sqlite3').as_posix()}", future=True)

    apply_migrations(engine)

    with engine.begin() as conn:
        tables = {
            str(row[0]) for row in conn.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'")).all()
        }
        count = conn.execute(text("SELECT COUNT(*) FROM schema_migrations")).scalar_one()

    assert tables == {"schema_migrations"}
    assert count == len(MIGRATIONS)


def test_fresh_schema_carries_baseline_columns_and_indexes(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite:///{(tmp_path / 'fresh.sqlite3').as_posix()}", future=True)
    Base.metadata.create_all(bind=engine)

    apply_migrations(engine)

    with engine.begin() as conn:
        version_columns = _column_names(conn, "product_versions")
        version_indexes = _index_names(conn, "product_versions")

    assert {"etag", "last_fetched", "is_latest", "checksum_type"}.issubset(version_columns)
    assert "ix_product_versions_group_created" in version_indexes
