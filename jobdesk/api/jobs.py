"""Job scheduler API endpoints."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from jobdesk.core.datetime_utils import resolve_timezone, to_naive_utc
from jobdesk.core.exceptions import (
    AlreadyRunningError,
    JobConfigurationError,
    JobConfigValidationError,
    JobNotFoundError,
)
from jobdesk.dependencies import AppSettings, Scheduler
from jobdesk.schemas.job import (
    CronPreviewRequest,
    CronPreviewResponse,
    JobConfigUpdate,
    JobDefinition,
    JobExecutionLog,
    JobRunResult,
    JobStatusSummary,
    JobWithStatus,
)
from jobdesk.scheduling.cron import describe, next_fire_times, validate

router = APIRouter()


@router.get("/jobs", response_model=list[JobWithStatus])
async def list_jobs(scheduler: Scheduler) -> list[JobWithStatus]:
    """
    List all jobs with their scheduling state.

    Includes the latest execution log and next fire time of each job.
    """
    return await scheduler.get_all_jobs_with_status()


@router.get("/jobs/stats", response_model=JobStatusSummary)
async def get_job_stats(scheduler: Scheduler) -> JobStatusSummary:
    """Get aggregate counts of active, disabled, succeeding and failing jobs."""
    return await scheduler.get_scheduler_stats()


@router.get("/jobs/logs", response_model=list[JobExecutionLog])
async def list_job_logs(
    scheduler: Scheduler,
    job_name: str | None = Query(default=None, description="Filter by job name"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobExecutionLog]:
    """
    List job execution history.

    Returns recent runs, newest first, optionally for a single job.
    """
    try:
        return await scheduler.get_logs(limit=limit, offset=offset, job_name=job_name)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.post("/jobs/{name}/run", response_model=JobRunResult)
async def run_job(name: str, scheduler: Scheduler) -> JobRunResult:
    """
    Run a job immediately.

    A job that fails still returns 200 with `status: FAILED` and the error;
    a job that is already running is rejected with 409.
    """
    try:
        return await scheduler.run_job(name)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except AlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except JobConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e


@router.patch("/jobs/{job_id}", response_model=JobDefinition)
async def update_job_config(
    job_id: str,
    updates: JobConfigUpdate,
    scheduler: Scheduler,
) -> JobDefinition:
    """
    Update a job's schedule, description or enabled flag.

    Invalid cron expressions are rejected with 422 before anything is saved.
    """
    try:
        return await scheduler.update_job_config(job_id, updates)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except JobConfigValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"field": e.field, "message": e.message},
        ) from e


@router.post("/cron/preview", response_model=CronPreviewResponse)
async def preview_cron(request: CronPreviewRequest, settings: AppSettings) -> CronPreviewResponse:
    """
    Validate a cron expression and show when it would fire.

    Fire times are computed in the scheduler timezone and returned as UTC.
    """
    result = validate(request.expression)
    if not result.valid:
        return CronPreviewResponse(
            expression=request.expression,
            valid=False,
            error=result.message,
            field=result.field,
            description=describe(request.expression),
        )

    now = datetime.now(resolve_timezone(settings.scheduler_timezone))
    return CronPreviewResponse(
        expression=request.expression,
        valid=True,
        description=describe(request.expression),
        next_runs=[
            to_naive_utc(t) for t in next_fire_times(request.expression, now, request.count)
        ],
    )
