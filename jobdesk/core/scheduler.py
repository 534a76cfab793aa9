"""
APScheduler integration for FastAPI.

Runs the job scheduler in-process on the application's event loop. Job
definitions and execution history live in the database; timers are rebuilt
from the definitions on every start.

Jobs (seeded from config.yml, defaults shown):
- prune-job-logs: Deletes finished execution logs past retention (03:00 daily)
"""

from collections.abc import Mapping

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobdesk.config import get_config, get_settings
from jobdesk.core.database import AsyncSessionLocal
from jobdesk.core.datetime_utils import resolve_timezone
from jobdesk.core.logging import get_logger
from jobdesk.jobs.handlers import JobHandler, build_job_handlers
from jobdesk.scheduling.log_store import ExecutionLogStore
from jobdesk.scheduling.registry import JobRepository
from jobdesk.scheduling.service import JobScheduler

logger = get_logger(__name__)

# Global scheduler instance
scheduler: JobScheduler | None = None


def create_job_scheduler(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
    extra_handlers: Mapping[str, JobHandler] | None = None,
) -> JobScheduler:
    """Wire registry, log store, handler table and APScheduler together."""
    settings = get_settings()
    timezone = resolve_timezone(settings.scheduler_timezone)

    event_loop_scheduler = AsyncIOScheduler(
        jobstores={"default": MemoryJobStore()},
        executors={"default": AsyncIOExecutor()},
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,  # Only one instance of a job at a time
            "misfire_grace_time": settings.scheduler_misfire_grace_seconds,
        },
        timezone=timezone,
    )

    return JobScheduler(
        registry=JobRepository(session_factory),
        log_store=ExecutionLogStore(session_factory),
        handlers=build_job_handlers(session_factory, settings, extra_handlers),
        scheduler=event_loop_scheduler,
        timezone=settings.scheduler_timezone,
        misfire_grace_seconds=settings.scheduler_misfire_grace_seconds,
    )


async def start_scheduler(
    extra_handlers: Mapping[str, JobHandler] | None = None,
) -> JobScheduler | None:
    """Seed default jobs, then initialize and start the scheduler."""
    global scheduler

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    job_scheduler = create_job_scheduler(extra_handlers=extra_handlers)

    try:
        await JobRepository(AsyncSessionLocal).ensure_jobs(get_config().jobs)
        await job_scheduler.initialize(
            recover_abandoned_runs=settings.scheduler_recover_abandoned_runs
        )
    except Exception as e:
        logger.bind(error=str(e)).error("scheduler_initialization_failed")
        raise

    scheduler = job_scheduler
    logger.bind(timezone=settings.scheduler_timezone).info("scheduler_started")
    return scheduler


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        logger.info("scheduler_stopped")
        scheduler = None


def get_job_scheduler() -> JobScheduler:
    """Return the running scheduler, or an unstarted one for on-demand runs.

    An unstarted scheduler has no timers but still runs jobs, updates
    configuration and reports status.
    """
    global scheduler
    if scheduler is None:
        scheduler = create_job_scheduler()
    return scheduler
