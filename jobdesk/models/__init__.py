from jobdesk.models.base import Base
from jobdesk.models.job import ScheduledJob
from jobdesk.models.job_log import JobLog, JobStatus

__all__ = [
    "Base",
    "ScheduledJob",
    "JobLog",
    "JobStatus",
]
