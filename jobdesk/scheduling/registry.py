"""Durable job definitions.

The registry reads and partially updates `jobs` rows. It never touches
timers: re-registration after a config change is the scheduler's job.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobdesk.config import JobSeedConfig
from jobdesk.core.exceptions import CronValidationError, JobConfigValidationError, JobNotFoundError
from jobdesk.core.logging import get_logger
from jobdesk.models.job import ScheduledJob
from jobdesk.schemas.job import JobConfigUpdate, JobDefinition
from jobdesk.scheduling.cron import parse

logger = get_logger(__name__)


class JobRepository:
    """Read and update job definitions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_all(self) -> list[JobDefinition]:
        """All jobs regardless of enabled state, ordered by name."""
        async with self._session_factory() as session:
            result = await session.execute(select(ScheduledJob).order_by(ScheduledJob.name))
            return [JobDefinition.model_validate(job) for job in result.scalars().all()]

    async def get_by_id(self, job_id: str) -> JobDefinition:
        async with self._session_factory() as session:
            job = await session.get(ScheduledJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return JobDefinition.model_validate(job)

    async def get_by_name(self, name: str) -> JobDefinition:
        async with self._session_factory() as session:
            result = await session.execute(select(ScheduledJob).where(ScheduledJob.name == name))
            job = result.scalar_one_or_none()
            if job is None:
                raise JobNotFoundError(name)
            return JobDefinition.model_validate(job)

    async def update_config(self, job_id: str, updates: JobConfigUpdate) -> JobDefinition:
        """
        Apply a partial configuration update.

        The schedule is validated before anything is written, so a rejected
        update leaves the row untouched.

        Raises:
            JobConfigValidationError: The new schedule is not a valid cron expression
            JobNotFoundError: No job with this id
        """
        changes = updates.model_dump(exclude_none=True)

        if "schedule" in changes:
            try:
                changes["schedule"] = parse(changes["schedule"]).expression
            except CronValidationError as e:
                raise JobConfigValidationError(e.message, field=e.field or "schedule") from e

        async with self._session_factory() as session:
            job = await session.get(ScheduledJob, job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            for key, value in changes.items():
                setattr(job, key, value)

            await session.commit()

            logger.bind(job=job.name, changes=sorted(changes)).info("job_config_updated")
            return JobDefinition.model_validate(job)

    async def ensure_jobs(self, seeds: Iterable[JobSeedConfig]) -> list[str]:
        """
        Insert seeded job definitions that do not exist yet.

        Existing rows are never modified. Seeds with an invalid schedule are
        skipped so an invalid expression never reaches the store.

        Returns:
            Names of the jobs that were created
        """
        created: list[str] = []

        async with self._session_factory() as session:
            result = await session.execute(select(ScheduledJob.name))
            existing = set(result.scalars().all())

            for seed in seeds:
                if seed.name in existing:
                    continue
                try:
                    schedule = parse(seed.schedule).expression
                except CronValidationError as e:
                    logger.bind(job=seed.name, schedule=seed.schedule, error=e.message).error(
                        "job_seed_invalid_schedule"
                    )
                    continue

                session.add(
                    ScheduledJob(
                        name=seed.name,
                        description=seed.description,
                        table_name=seed.table_name,
                        schedule=schedule,
                        is_enabled=seed.enabled,
                    )
                )
                existing.add(seed.name)
                created.append(seed.name)

            await session.commit()

        if created:
            logger.bind(jobs=created).info("job_seeds_created")
        return created
