"""
Work functions for schedulable jobs.

Every job name maps to one async callable returning the number of records it
affected. The table is built once at startup and handed to the scheduler;
applications add their own jobs by merging extra handlers into it.
"""

from collections.abc import Awaitable, Callable, Mapping
from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobdesk.config import Settings
from jobdesk.core.datetime_utils import get_cutoff
from jobdesk.core.logging import get_logger
from jobdesk.scheduling.log_store import ExecutionLogStore

logger = get_logger(__name__)

JobHandler = Callable[[], Awaitable[int | None]]

PRUNE_JOB_LOGS = "prune-job-logs"


async def prune_job_logs(log_store: ExecutionLogStore, retention_days: int) -> int:
    """Delete finished execution logs older than the retention window."""
    cutoff = get_cutoff(days=retention_days)
    deleted = await log_store.prune(older_than=cutoff)
    logger.bind(deleted=deleted, retention_days=retention_days).info("job_logs_pruned")
    return deleted


def build_job_handlers(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    extra: Mapping[str, JobHandler] | None = None,
) -> dict[str, JobHandler]:
    """
    Build the name -> work function table.

    Args:
        session_factory: Session factory the built-in jobs write through
        settings: Application settings (retention windows)
        extra: Application-specific handlers; they may not shadow built-ins

    Returns:
        Mapping of job name to handler
    """
    handlers: dict[str, JobHandler] = {
        PRUNE_JOB_LOGS: partial(
            prune_job_logs,
            ExecutionLogStore(session_factory),
            settings.job_log_retention_days,
        ),
    }

    for name, handler in (extra or {}).items():
        if name in handlers:
            raise ValueError(f"Handler already registered for job: {name}")
        handlers[name] = handler

    return handlers
