from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RefreshRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str | None = Field(default=None, min_length=1, max_length=64)


class RefreshResponse(BaseModel):
    message: str
    jobs_queued: int
    job_ids: list[str]


class JobListResponse(BaseModel):
    items: list["JobResponse"]
    next_cursor: str | None


class JobResponse(BaseModel):
    id: str
    product_id: str
    status: str
    error: str | None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None
    completed_at: datetime | None


class QueueStatsResponse(BaseModel):
    depth: int
    processing: int
    jobs: dict[str, int]
