from jobdesk.schemas.job import (
    CronPreviewRequest,
    CronPreviewResponse,
    JobConfigUpdate,
    JobDefinition,
    JobExecutionLog,
    JobRunResult,
    JobState,
    JobStatusSummary,
    JobWithStatus,
    TriggerSource,
)

__all__ = [
    "JobDefinition",
    "JobExecutionLog",
    "JobWithStatus",
    "JobStatusSummary",
    "JobConfigUpdate",
    "JobRunResult",
    "JobState",
    "TriggerSource",
    "CronPreviewRequest",
    "CronPreviewResponse",
]
