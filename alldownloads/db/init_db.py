from __future__ import annotations

from sqlalchemy import text

from alldownloads.db.migrations import apply_migrations
from alldownloads.db.models import Base
from alldownloads.db.session import get_engine


def initialize_database() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    apply_migrations(engine)

    if engine.url.drivername.startswith("sqlite"):
        with engine.connect() as conn:
            conn.execute(text("PRAGMA optimize;"))
            conn.commit()


def check_database() -> None:
    """Round-trip a trivial query; raises if the database is unreachable."""
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))
