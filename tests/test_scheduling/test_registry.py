"""Tests for the job registry."""

import pytest

from jobdesk.config import JobSeedConfig
from jobdesk.core.exceptions import JobConfigValidationError, JobNotFoundError
from jobdesk.schemas.job import JobConfigUpdate

pytestmark = pytest.mark.asyncio


class TestLookups:
    """Tests for get_all, get_by_id and get_by_name."""

    async def test_get_all_ordered_by_name(self, registry, job_factory):
        """Should return every job, enabled or not, sorted by name."""
        await job_factory(name="b-job")
        await job_factory(name="a-job", is_enabled=False)

        jobs = await registry.get_all()

        assert [job.name for job in jobs] == ["a-job", "b-job"]

    async def test_get_by_name(self, registry, job_factory):
        job = await job_factory(name="sync-orders")
        assert (await registry.get_by_name("sync-orders")).id == job.id

    async def test_unknown_name(self, registry):
        """Should raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError, match="missing-job"):
            await registry.get_by_name("missing-job")

    async def test_unknown_id(self, registry):
        with pytest.raises(JobNotFoundError):
            await registry.get_by_id("does-not-exist")


class TestUpdateConfig:
    """Tests for JobRepository.update_config."""

    async def test_partial_update(self, registry, job_factory):
        """Should change only the provided fields."""
        job = await job_factory(schedule="0 * * * *", description="Old")

        updated = await registry.update_config(job.id, JobConfigUpdate(description="New"))

        assert updated.description == "New"
        assert updated.schedule == "0 * * * *"
        assert updated.is_enabled is True

    async def test_schedule_is_normalized(self, registry, job_factory):
        """Should store the canonical single-space form."""
        job = await job_factory()

        updated = await registry.update_config(job.id, JobConfigUpdate(schedule=" */5  * * * * "))

        assert updated.schedule == "*/5 * * * *"

    async def test_invalid_schedule_writes_nothing(self, registry, job_factory):
        """Should reject the update and leave the row untouched."""
        job = await job_factory(schedule="0 * * * *", description="Keep")

        with pytest.raises(JobConfigValidationError) as exc_info:
            await registry.update_config(
                job.id, JobConfigUpdate(schedule="60 * * * *", description="Changed")
            )

        assert exc_info.value.field == "minute"
        stored = await registry.get_by_id(job.id)
        assert stored.schedule == "0 * * * *"
        assert stored.description == "Keep"

    async def test_field_count_error_maps_to_schedule(self, registry, job_factory):
        """Errors without a field should be attributed to the schedule."""
        job = await job_factory()

        with pytest.raises(JobConfigValidationError) as exc_info:
            await registry.update_config(job.id, JobConfigUpdate(schedule="* *"))

        assert exc_info.value.field == "schedule"
        assert "Need 3 more fields" in exc_info.value.message

    async def test_unknown_job(self, registry):
        with pytest.raises(JobNotFoundError):
            await registry.update_config("missing", JobConfigUpdate(is_enabled=False))

    async def test_updated_at_advances(self, registry, job_factory):
        job = await job_factory()
        updated = await registry.update_config(job.id, JobConfigUpdate(is_enabled=False))
        assert updated.updated_at >= job.updated_at


class TestEnsureJobs:
    """Tests for seeding jobs from configuration."""

    async def test_creates_missing(self, registry):
        """Should create every configured job that does not exist."""
        seeds = [
            JobSeedConfig({"name": "prune-job-logs", "schedule": "0 3 * * *"}),
            JobSeedConfig({"name": "sync-orders", "schedule": "*/30 * * * *", "enabled": False}),
        ]

        created = await registry.ensure_jobs(seeds)

        assert sorted(created) == ["prune-job-logs", "sync-orders"]
        orders = await registry.get_by_name("sync-orders")
        assert orders.is_enabled is False

    async def test_existing_rows_untouched(self, registry, job_factory):
        """Should never overwrite a job an operator may have edited."""
        await job_factory(name="sync-orders", schedule="0 5 * * *")

        created = await registry.ensure_jobs(
            [JobSeedConfig({"name": "sync-orders", "schedule": "0 1 * * *"})]
        )

        assert created == []
        assert (await registry.get_by_name("sync-orders")).schedule == "0 5 * * *"

    async def test_invalid_seed_skipped(self, registry):
        """Should skip seeds with invalid schedules."""
        created = await registry.ensure_jobs(
            [
                JobSeedConfig({"name": "broken", "schedule": "99 * * * *"}),
                JobSeedConfig({"name": "fine", "schedule": "0 * * * *"}),
            ]
        )

        assert created == ["fine"]
        with pytest.raises(JobNotFoundError):
            await registry.get_by_name("broken")
