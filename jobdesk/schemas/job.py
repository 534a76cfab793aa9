"""Plain-data views of jobs, execution logs and scheduler status."""

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from jobdesk.models.job_log import JobStatus


class JobState(str, enum.Enum):
    """Scheduler-side lifecycle of a job."""

    UNSCHEDULED = "UNSCHEDULED"
    SCHEDULED = "SCHEDULED"
    EXECUTING = "EXECUTING"


class TriggerSource(str, enum.Enum):
    """What started an execution."""

    SCHEDULED = "scheduled"
    MANUAL = "manual"


class JobDefinition(BaseModel):
    """A schedulable job as stored in the registry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    table_name: str
    schedule: str
    is_enabled: bool
    created_at: datetime
    updated_at: datetime


class JobExecutionLog(BaseModel):
    """One execution attempt of a job."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    status: JobStatus
    start_time: datetime
    end_time: datetime | None = None
    duration: int | None = None
    records: int | None = None
    message: str | None = None
    error: str | None = None
    created_at: datetime
    job_name: str | None = None


class JobWithStatus(JobDefinition):
    """A job definition enriched with its runtime status."""

    last_run: datetime | None = None
    next_run: datetime | None = None
    scheduled: bool = False
    state: JobState = JobState.UNSCHEDULED
    last_log: JobExecutionLog | None = None
    schedule_description: str = ""
    config_error: str | None = None


class JobStatusSummary(BaseModel):
    """Aggregate scheduler health counts."""

    total_jobs: int = 0
    active_jobs: int = 0
    disabled_jobs: int = 0
    success_jobs: int = 0
    failed_jobs: int = 0


class JobConfigUpdate(BaseModel):
    """Partial update of a job's configuration."""

    schedule: str | None = Field(default=None, max_length=100)
    description: str | None = None
    is_enabled: bool | None = None


class JobRunResult(BaseModel):
    """Outcome of one execution returned to the caller."""

    job_name: str
    log_id: str
    status: JobStatus
    count: int | None = None
    error: str | None = None
    duration: int | None = None

    @property
    def success(self) -> bool:
        return self.status == JobStatus.SUCCESS


class CronPreviewRequest(BaseModel):
    """Cron expression to check before saving."""

    expression: str
    count: int = Field(default=5, ge=1, le=20)


class CronPreviewResponse(BaseModel):
    """Validation, description and upcoming fire times of an expression."""

    expression: str
    valid: bool
    error: str | None = None
    field: str | None = None
    description: str
    next_runs: list[datetime] = Field(default_factory=list)
