from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from alldownloads.db.models import FetchJobStatus


@dataclass(slots=True)
class FetchJobSnapshot:
    id: str
    product_id: str
    status: FetchJobStatus
    started_at: datetime | None
    completed_at: datetime | None
    error: str | None
    created_at: datetime
    updated_at: datetime
