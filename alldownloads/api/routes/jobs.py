from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from alldownloads.api.schemas.jobs import JobListResponse, JobResponse, QueueStatsResponse, RefreshRequest, RefreshResponse
from alldownloads.catalog.service import CatalogService
from alldownloads.core.config import get_settings
from alldownloads.db.models import FetchJobStatus
from alldownloads.db.session import get_session_factory
from alldownloads.jobs.enqueuer import RefreshEnqueuer
from alldownloads.jobs.queue import JobQueue, QueueError, get_job_queue
from alldownloads.jobs.service import FetchJobNotFoundError, FetchJobService, snapshot_to_dict

router = APIRouter(tags=["jobs"])


def get_fetch_job_service() -> FetchJobService:
    return FetchJobService(settings=get_settings(), session_factory=get_session_factory())


def get_queue() -> JobQueue:
    return get_job_queue()


def get_refresh_enqueuer(
    jobs: FetchJobService = Depends(get_fetch_job_service),
    queue: JobQueue = Depends(get_queue),
) -> RefreshEnqueuer:
    return RefreshEnqueuer(CatalogService(get_session_factory()), jobs, queue)


def require_token(authorization: str | None = Header(default=None)) -> None:
    expected = get_settings().auth_token
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )


@router.post("/refresh", response_model=RefreshResponse, status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_token)])
def trigger_refresh(
    request: RefreshRequest | None = None,
    enqueuer: RefreshEnqueuer = Depends(get_refresh_enqueuer),
) -> RefreshResponse:
    product_id = request.product_id if request is not None else None
    result = enqueuer.enqueue_product(product_id) if product_id else enqueuer.enqueue_all()
    if product_id and not result.job_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Could not queue refresh for product: {product_id}")
    return RefreshResponse(
        message="Refresh jobs queued",
        jobs_queued=result.jobs_queued,
        job_ids=result.job_ids,
    )


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(
    limit: int = Query(default=50, ge=1, le=200),
    cursor: str | None = None,
    status_filter: FetchJobStatus | None = Query(default=None, alias="status"),
    product_id: str | None = None,
    service: FetchJobService = Depends(get_fetch_job_service),
) -> JobListResponse:
    try:
        result = service.list_jobs(limit=limit, cursor=cursor, status=status_filter, product_id=product_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return JobListResponse(
        items=[JobResponse.model_validate(snapshot_to_dict(item)) for item in result.items],
        next_cursor=result.next_cursor,
    )


@router.get("/jobs/{job_id}", response_model=JobResponse)
def get_job(job_id: str, service: FetchJobService = Depends(get_fetch_job_service)) -> JobResponse:
    try:
        job = service.get_job(job_id)
    except FetchJobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobResponse.model_validate(snapshot_to_dict(job))


@router.get("/queue", response_model=QueueStatsResponse)
def get_queue_stats(
    queue: JobQueue = Depends(get_queue),
    service: FetchJobService = Depends(get_fetch_job_service),
) -> QueueStatsResponse:
    try:
        depth = queue.queue_depth()
        processing = queue.processing_count()
    except QueueError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return QueueStatsResponse(depth=depth, processing=processing, jobs=service.job_counts())
