"""Scheduler health summary."""

from collections.abc import Iterable, Mapping

from jobdesk.models.job_log import JobStatus
from jobdesk.schemas.job import JobDefinition, JobExecutionLog, JobStatusSummary


def summarize_jobs(
    jobs: Iterable[JobDefinition],
    latest_logs: Mapping[str, JobExecutionLog],
    scheduled_ids: Iterable[str],
) -> JobStatusSummary:
    """
    Count jobs by configuration and by the outcome of their latest run.

    Args:
        jobs: Every job definition
        latest_logs: Most recent log per job id
        scheduled_ids: Ids of jobs with an active timer

    Returns:
        JobStatusSummary. `active_jobs` counts jobs that are enabled and
        actually scheduled; a running latest log counts as neither success
        nor failure.
    """
    scheduled = set(scheduled_ids)
    summary = JobStatusSummary()

    for job in jobs:
        summary.total_jobs += 1
        if not job.is_enabled:
            summary.disabled_jobs += 1
        elif job.id in scheduled:
            summary.active_jobs += 1

        last_log = latest_logs.get(job.id)
        if last_log is None:
            continue
        if last_log.status == JobStatus.SUCCESS:
            summary.success_jobs += 1
        elif last_log.status == JobStatus.FAILED:
            summary.failed_jobs += 1

    return summary
