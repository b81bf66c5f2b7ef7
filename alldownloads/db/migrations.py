from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import Connection, Engine, inspect, text


@dataclass(frozen=True)
class MigrationStep:
    version: int
    name: str
    apply: Callable[[Connection], None]


def _ensure_schema_migrations_table(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )


def _table_exists(conn: Connection, table_name: str) -> bool:
    inspector = inspect(conn)
    return inspector.has_table(table_name)


def _index_exists(conn: Connection, table_name: str, index_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False

    if conn.engine.dialect.name == "sqlite":
        rows = conn.execute(text(f"PRAGMA index_list('{table_name}')")).mappings().all()
        return any(str(row["name"]) == index_name for row in rows)

    inspector = inspect(conn)
    indexes = inspector.get_indexes(table_name)
    return any(index.get("name") == index_name for index in indexes)


def _migration_0001_baseline(_conn: Connection) -> None:
    return


def _migration_0002_product_version_indexes(conn: Connection) -> None:
    if not _table_exists(conn, "product_versions"):
        return

    if not _index_exists(conn, "product_versions", "ix_product_versions_product_latest"):
        conn.execute(
            text("CREATE INDEX ix_product_versions_product_latest ON product_versions (product_id, is_latest)")
        )

    if not _index_exists(conn, "product_versions", "ix_product_versions_group_created"):
        conn.execute(
            text(
                "CREATE INDEX ix_product_versions_group_created ON product_versions "
                "(product_id, platform, architecture, created_at)"
            )
        )


def _migration_0003_fetch_job_indexes(conn: Connection) -> None:
    if not _table_exists(conn, "fetch_jobs"):
        return

    if not _index_exists(conn, "fetch_jobs", "ix_fetch_jobs_product_status"):
        conn.execute(text("CREATE INDEX ix_fetch_jobs_product_status ON fetch_jobs (product_id, status)"))

    if not _index_exists(conn, "fetch_jobs", "ix_fetch_jobs_created_id"):
        conn.execute(text("CREATE INDEX ix_fetch_jobs_created_id ON fetch_jobs (created_at, id)"))

    if not _index_exists(conn, "fetch_jobs", "ix_fetch_jobs_status_updated"):
        conn.execute(text("CREATE INDEX ix_fetch_jobs_status_updated ON fetch_jobs (status, updated_at)"))


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep(version=1, name="baseline", apply=_migration_0001_baseline),
    MigrationStep(version=2, name="product_version_indexes", apply=_migration_0002_product_version_indexes),
    MigrationStep(version=3, name="fetch_job_indexes", apply=_migration_0003_fetch_job_indexes),
)


def apply_migrations(engine: Engine) -> None:
    with engine.begin() as conn:
        _ensure_schema_migrations_table(conn)

        existing_versions = {
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        }

        for step in MIGRATIONS:
            if step.version in existing_versions:
                continue

            step.apply(conn)
            conn.execute(
                text("INSERT INTO schema_migrations(version, name) VALUES (:version, :name)"),
                {"version": step.version, "name": step.name},
            )
