"""Append-only execution history.

Each run goes through an explicit two-phase protocol: `start_run` inserts a
RUNNING row and `complete_run` moves it to a terminal status exactly once.
The partial unique index on running rows makes the start-side check atomic
in the database, not just in this process.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from jobdesk.core.datetime_utils import duration_ms, utc_now
from jobdesk.core.exceptions import AlreadyRunningError, InvalidStateError
from jobdesk.core.logging import get_logger
from jobdesk.models.job import ScheduledJob
from jobdesk.models.job_log import JobLog, JobStatus
from jobdesk.schemas.job import JobExecutionLog

logger = get_logger(__name__)

INTERRUPTED_RUN_MESSAGE = "Interrupted before completion"
ABANDONED_RUN_MESSAGE = f"{INTERRUPTED_RUN_MESSAGE} (scheduler restarted)"


@dataclass(frozen=True)
class LogHandle:
    """Reference to a RUNNING log row, needed to complete it."""

    log_id: str
    job_id: str
    start_time: datetime


class ExecutionLogStore:
    """Record and query job executions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def start_run(self, job_id: str) -> LogHandle:
        """
        Open a RUNNING log row for a job.

        Raises:
            AlreadyRunningError: The job has an unterminated run
        """
        async with self._session_factory() as session:
            if await self._has_running(session, job_id):
                raise AlreadyRunningError(job_id)

            log = JobLog(job_id=job_id, status=JobStatus.RUNNING, start_time=utc_now())
            session.add(log)
            try:
                await session.commit()
            except IntegrityError as e:
                # Lost the race against a concurrent start for the same job
                await session.rollback()
                logger.bind(job_id=job_id).warning("job_start_conflict")
                raise AlreadyRunningError(job_id) from e

            return LogHandle(log_id=log.id, job_id=job_id, start_time=log.start_time)

    async def _has_running(self, session: AsyncSession, job_id: str) -> bool:
        running = await session.scalar(
            select(JobLog.id)
            .where(JobLog.job_id == job_id, JobLog.status == JobStatus.RUNNING)
            .limit(1)
        )
        return running is not None

    async def complete_run(
        self,
        handle: LogHandle,
        status: JobStatus,
        records: int | None = None,
        message: str | None = None,
        error: str | None = None,
    ) -> JobExecutionLog:
        """
        Close a RUNNING log row with a terminal status.

        The update only matches a row that is still RUNNING, so a second
        completion writes nothing and raises instead.

        Raises:
            ValueError: `status` is not terminal
            InvalidStateError: The handle's row is missing or already completed
        """
        if not status.is_terminal:
            raise ValueError(f"Cannot complete a run with status {status.value}")

        end_time = utc_now()

        async with self._session_factory() as session:
            result = await session.execute(
                update(JobLog)
                .where(JobLog.id == handle.log_id, JobLog.status == JobStatus.RUNNING)
                .values(
                    status=status,
                    end_time=end_time,
                    duration=duration_ms(handle.start_time, end_time),
                    records=records,
                    message=message,
                    error=error,
                )
            )
            if result.rowcount == 0:
                await session.rollback()
                raise InvalidStateError(
                    f"Execution log {handle.log_id} is missing or already completed"
                )
            await session.commit()

            log = await session.get(JobLog, handle.log_id)
            return JobExecutionLog.model_validate(log)

    async def get_latest_for_job(self, job_id: str) -> JobExecutionLog | None:
        async with self._session_factory() as session:
            log = await session.scalar(
                select(JobLog)
                .where(JobLog.job_id == job_id)
                .order_by(JobLog.start_time.desc())
                .limit(1)
            )
            return JobExecutionLog.model_validate(log) if log else None

    async def get_latest_per_job(self) -> dict[str, JobExecutionLog]:
        """Most recent log of every job that has one, keyed by job id."""
        ranked = select(
            JobLog,
            func.row_number()
            .over(partition_by=JobLog.job_id, order_by=JobLog.start_time.desc())
            .label("position"),
        ).subquery()
        latest = aliased(JobLog, ranked)

        async with self._session_factory() as session:
            result = await session.execute(select(latest).where(ranked.c.position == 1))
            return {
                log.job_id: JobExecutionLog.model_validate(log) for log in result.scalars().all()
            }

    async def list_logs(
        self,
        limit: int = 50,
        offset: int = 0,
        job_id: str | None = None,
    ) -> list[JobExecutionLog]:
        """Execution history across all jobs, most recent first."""
        query = (
            select(JobLog, ScheduledJob.name)
            .join(ScheduledJob, ScheduledJob.id == JobLog.job_id)
            .order_by(JobLog.start_time.desc())
        )
        if job_id:
            query = query.where(JobLog.job_id == job_id)

        query = query.offset(offset).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                JobExecutionLog.model_validate(log).model_copy(update={"job_name": name})
                for log, name in result.all()
            ]

    async def count(self, job_id: str | None = None) -> int:
        query = select(func.count(JobLog.id))
        if job_id:
            query = query.where(JobLog.job_id == job_id)

        async with self._session_factory() as session:
            return await session.scalar(query) or 0

    async def fail_abandoned_runs(self) -> int:
        """
        Mark RUNNING rows left behind by a previous process as FAILED.

        Only safe while this process is the single scheduling authority for
        the store. Returns the number of rows closed.
        """
        end_time = utc_now()

        async with self._session_factory() as session:
            result = await session.scalars(select(JobLog).where(JobLog.status == JobStatus.RUNNING))
            abandoned = result.all()
            for log in abandoned:
                log.status = JobStatus.FAILED
                log.end_time = end_time
                log.duration = duration_ms(log.start_time, end_time)
                log.message = ABANDONED_RUN_MESSAGE
                log.error = ABANDONED_RUN_MESSAGE
            await session.commit()
            return len(abandoned)

    async def prune(self, older_than: datetime) -> int:
        """Delete terminal logs that started before `older_than`."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(JobLog).where(
                    JobLog.status != JobStatus.RUNNING,
                    JobLog.start_time < older_than,
                )
            )
            await session.commit()
            return result.rowcount or 0
