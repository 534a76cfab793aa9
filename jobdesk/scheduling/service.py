"""
Scheduler core: timers, execution and runtime reconfiguration.

One JobScheduler instance is the single scheduling authority of a process.
It owns exactly one timer registration per enabled job id, created and
destroyed only by `initialize`, `update_job_config` and `shutdown`.

Per job:

    UNSCHEDULED --register--> SCHEDULED --fire/run--> EXECUTING
         ^                        ^                       |
         |                        +-----------------------+
         +----- disable (timer cancelled, running execution finishes) ----+

Manual and scheduled runs share one execution path, guarded first by an
in-memory executing set and then by the log store's RUNNING-row check.
"""

import traceback
from collections.abc import Mapping
from datetime import datetime, tzinfo

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import SQLAlchemyError

from jobdesk.core.datetime_utils import resolve_timezone, to_naive_utc
from jobdesk.core.exceptions import (
    AlreadyRunningError,
    CronValidationError,
    InvalidStateError,
    JobConfigurationError,
    JobExecutionError,
    JobNotFoundError,
)
from jobdesk.core.logging import get_logger
from jobdesk.jobs.handlers import JobHandler
from jobdesk.models.job_log import JobStatus
from jobdesk.schemas.job import (
    JobConfigUpdate,
    JobDefinition,
    JobExecutionLog,
    JobRunResult,
    JobState,
    JobStatusSummary,
    JobWithStatus,
    TriggerSource,
)
from jobdesk.scheduling.cron import describe, parse
from jobdesk.scheduling.log_store import INTERRUPTED_RUN_MESSAGE, ExecutionLogStore, LogHandle
from jobdesk.scheduling.registry import JobRepository
from jobdesk.scheduling.stats import summarize_jobs
from jobdesk.scheduling.trigger import CronExpressionTrigger

logger = get_logger(__name__)


class JobScheduler:
    """Run named jobs on cron schedules and on demand."""

    def __init__(
        self,
        registry: JobRepository,
        log_store: ExecutionLogStore,
        handlers: Mapping[str, JobHandler],
        scheduler: AsyncIOScheduler | None = None,
        timezone: str = "UTC",
        misfire_grace_seconds: int = 300,
    ) -> None:
        self._registry = registry
        self._logs = log_store
        self._handlers = dict(handlers)
        self._timezone: tzinfo = resolve_timezone(timezone)
        self._misfire_grace_seconds = misfire_grace_seconds
        self._scheduler = scheduler

        # Timer registration per job id
        self._registrations: dict[str, Job] = {}
        # Job ids with an execution in flight in this process
        self._executing: set[str] = set()
        # Operator-visible reasons a job could not be scheduled
        self._config_errors: dict[str, str] = {}
        self._initialized = False

    @property
    def scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        return self._scheduler

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self, recover_abandoned_runs: bool = True) -> int:
        """
        Load job definitions and register a timer for every enabled job.

        Configuration problems (invalid cron, missing handler) leave the job
        unscheduled and are logged; storage errors propagate so startup
        fails loudly.

        Returns:
            Number of jobs scheduled
        """
        if self._initialized:
            return len(self._registrations)

        if recover_abandoned_runs:
            recovered = await self._logs.fail_abandoned_runs()
            if recovered:
                logger.bind(runs=recovered).warning("abandoned_runs_recovered")

        jobs = await self._registry.get_all()

        if not self.scheduler.running:
            self.scheduler.start()

        self._initialized = True
        for job in jobs:
            if job.is_enabled:
                self._register(job)

        logger.bind(jobs=len(jobs), scheduled=len(self._registrations)).info(
            "job_scheduler_initialized"
        )
        return len(self._registrations)

    def shutdown(self) -> None:
        """Cancel every timer and stop the event-loop scheduler."""
        for job_id in list(self._registrations):
            self._unregister(job_id)

        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        self._initialized = False
        logger.info("job_scheduler_stopped")

    # ------------------------------------------------------------------
    # Timer registrations
    # ------------------------------------------------------------------

    def _register(self, job: JobDefinition) -> bool:
        """Replace the job's timer with one for its current schedule."""
        self._unregister(job.id)

        if job.name not in self._handlers:
            self._record_config_error(job, "no work function registered", "job_handler_missing")
            return False

        try:
            expression = parse(job.schedule)
        except CronValidationError as e:
            self._record_config_error(
                job, f"invalid schedule '{job.schedule}': {e.message}", "job_schedule_invalid"
            )
            return False

        trigger = CronExpressionTrigger(expression, self._timezone)
        if trigger.get_next_fire_time(None, datetime.now(self._timezone)) is None:
            self._record_config_error(
                job, f"schedule '{job.schedule}' never fires", "job_schedule_invalid"
            )
            return False

        registration = self.scheduler.add_job(
            self.run_scheduled,
            trigger=trigger,
            args=[job.id],
            id=f"job:{job.id}",
            name=job.name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._misfire_grace_seconds,
        )
        self._registrations[job.id] = registration
        self._config_errors.pop(job.id, None)

        logger.bind(
            job=job.name,
            schedule=job.schedule,
            next_run=registration.next_run_time,
        ).info("job_scheduled")
        return True

    def _unregister(self, job_id: str) -> bool:
        registration = self._registrations.pop(job_id, None)
        if registration is None:
            return False

        try:
            registration.remove()
        except JobLookupError:
            # APScheduler drops jobs whose trigger is exhausted
            logger.bind(job_id=job_id).debug("job_timer_already_removed")

        logger.bind(job=registration.name).info("job_unscheduled")
        return True

    def _record_config_error(self, job: JobDefinition, reason: str, event: str) -> None:
        self._config_errors[job.id] = reason
        logger.bind(job=job.name, reason=reason).warning(event)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_job(self, name: str) -> JobRunResult:
        """
        Run a job immediately.

        A failing work function is recorded as a FAILED log and reported in
        the result; it never raises from here.

        Raises:
            JobNotFoundError: No job with this name
            JobConfigurationError: No work function is registered for the job
            AlreadyRunningError: The job is executing right now
        """
        job = await self._registry.get_by_name(name)
        return await self._execute(job, TriggerSource.MANUAL)

    async def run_scheduled(self, job_id: str) -> None:
        """Timer callback. Nothing raised here reaches the event loop."""
        try:
            job = await self._registry.get_by_id(job_id)
            await self._execute(job, TriggerSource.SCHEDULED)
        except AlreadyRunningError as e:
            logger.bind(job=e.job).warning("scheduled_run_skipped_already_running")
        except JobNotFoundError:
            logger.bind(job_id=job_id).warning("scheduled_job_missing")
            self._unregister(job_id)
        except Exception as e:
            logger.bind(job_id=job_id, error=str(e)).exception("scheduled_run_failed")

    async def _execute(self, job: JobDefinition, source: TriggerSource) -> JobRunResult:
        handler = self._handlers.get(job.name)
        if handler is None:
            raise JobConfigurationError(job.name, "no work function registered")

        # Checked and set with no await in between
        if job.id in self._executing:
            raise AlreadyRunningError(job.name)
        self._executing.add(job.id)

        try:
            try:
                handle = await self._logs.start_run(job.id)
            except AlreadyRunningError as e:
                raise AlreadyRunningError(job.name) from e

            logger.bind(job=job.name, trigger=source.value).info("job_started")

            completed = False
            try:
                try:
                    result = await handler()
                except Exception as e:
                    failure = JobExecutionError(job.name, e)
                    log = await self._logs.complete_run(
                        handle,
                        JobStatus.FAILED,
                        message=failure.detail,
                        error="".join(traceback.format_exception(e)),
                    )
                    completed = True
                    logger.bind(
                        job=job.name,
                        trigger=source.value,
                        duration_ms=log.duration,
                        error=failure.detail,
                    ).error("job_failed")
                    return JobRunResult(
                        job_name=job.name,
                        log_id=log.id,
                        status=JobStatus.FAILED,
                        error=str(failure),
                        duration=log.duration,
                    )

                records = result if isinstance(result, int) else None
                prefix = "Manual execution: " if source == TriggerSource.MANUAL else ""
                log = await self._logs.complete_run(
                    handle,
                    JobStatus.SUCCESS,
                    records=records,
                    message=f"{prefix}Successfully processed {records or 0} records",
                )
                completed = True
                logger.bind(
                    job=job.name,
                    trigger=source.value,
                    records=records,
                    duration_ms=log.duration,
                ).info("job_succeeded")
                return JobRunResult(
                    job_name=job.name,
                    log_id=log.id,
                    status=JobStatus.SUCCESS,
                    count=records,
                    duration=log.duration,
                )
            finally:
                # Cancellation or a failed completion must not strand a RUNNING row
                if not completed:
                    await self._abort_run(job, handle)
        finally:
            self._executing.discard(job.id)

    async def _abort_run(self, job: JobDefinition, handle: LogHandle) -> None:
        """Close an interrupted run as FAILED; the original error keeps propagating."""
        try:
            await self._logs.complete_run(
                handle,
                JobStatus.FAILED,
                message=INTERRUPTED_RUN_MESSAGE,
                error=INTERRUPTED_RUN_MESSAGE,
            )
        except (InvalidStateError, SQLAlchemyError) as e:
            logger.bind(job=job.name, log_id=handle.log_id, error=str(e)).error(
                "job_run_abort_failed"
            )
            return
        logger.bind(job=job.name, log_id=handle.log_id).warning("job_run_aborted")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    async def update_job_config(self, job_id: str, updates: JobConfigUpdate) -> JobDefinition:
        """
        Update a job's configuration and re-register its timer as needed.

        Disabling cancels the pending timer; enabling, a schedule change, or
        a job that is enabled but not scheduled registers a fresh one. An
        execution already in flight always runs to completion.

        Raises:
            JobConfigValidationError: The new schedule is invalid (nothing written)
            JobNotFoundError: No job with this id
        """
        current = await self._registry.get_by_id(job_id)
        updated = await self._registry.update_config(job_id, updates)

        if not self._initialized:
            return updated

        if not updated.is_enabled:
            self._unregister(updated.id)
            self._config_errors.pop(updated.id, None)
        elif (
            updated.schedule != current.schedule
            or not current.is_enabled
            or updated.id not in self._registrations
        ):
            self._register(updated)

        return updated

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def is_scheduled(self, job_id: str) -> bool:
        return job_id in self._registrations

    def get_job_state(self, job_id: str) -> JobState:
        if job_id in self._executing:
            return JobState.EXECUTING
        if job_id in self._registrations:
            return JobState.SCHEDULED
        return JobState.UNSCHEDULED

    def next_run_for(self, job_id: str) -> datetime | None:
        """Next fire time of the job's active timer, as naive UTC."""
        registration = self._registrations.get(job_id)
        if registration is None:
            return None
        next_run = getattr(registration, "next_run_time", None)
        return to_naive_utc(next_run) if next_run else None

    def get_config_error(self, job_id: str) -> str | None:
        return self._config_errors.get(job_id)

    async def get_all_jobs_with_status(self) -> list[JobWithStatus]:
        """Every job joined with its latest log and timer state."""
        jobs = await self._registry.get_all()
        latest = await self._logs.get_latest_per_job()

        statuses = []
        for job in jobs:
            last_log = latest.get(job.id)
            statuses.append(
                JobWithStatus(
                    **job.model_dump(),
                    last_run=last_log.start_time if last_log else None,
                    next_run=self.next_run_for(job.id),
                    scheduled=self.is_scheduled(job.id),
                    state=self.get_job_state(job.id),
                    last_log=last_log,
                    schedule_description=describe(job.schedule),
                    config_error=self.get_config_error(job.id),
                )
            )
        return statuses

    async def get_scheduler_stats(self) -> JobStatusSummary:
        jobs = await self._registry.get_all()
        latest = await self._logs.get_latest_per_job()
        return summarize_jobs(jobs, latest, self._registrations.keys())

    async def get_logs(
        self,
        limit: int = 50,
        offset: int = 0,
        job_name: str | None = None,
    ) -> list[JobExecutionLog]:
        """
        Execution history, most recent first.

        Raises:
            JobNotFoundError: `job_name` does not match any job
        """
        job_id = None
        if job_name:
            job_id = (await self._registry.get_by_name(job_name)).id
        return await self._logs.list_logs(limit=limit, offset=offset, job_id=job_id)
