"""Tests for the built-in job handlers."""

from datetime import timedelta

import pytest

from jobdesk.config import Settings
from jobdesk.core.datetime_utils import utc_now
from jobdesk.jobs.handlers import PRUNE_JOB_LOGS, build_job_handlers, prune_job_logs
from jobdesk.models import JobStatus

pytestmark = pytest.mark.asyncio


async def _noop() -> int:
    return 0


class TestBuildJobHandlers:
    """Tests for build_job_handlers."""

    async def test_includes_builtins(self, session_factory):
        handlers = build_job_handlers(session_factory, Settings(job_log_retention_days=30))
        assert PRUNE_JOB_LOGS in handlers

    async def test_merges_extra_handlers(self, session_factory):
        """Should add application handlers next to the built-ins."""
        handlers = build_job_handlers(session_factory, Settings(job_log_retention_days=30), {"sync-orders": _noop})
        assert set(handlers) == {PRUNE_JOB_LOGS, "sync-orders"}

    async def test_rejects_shadowing_builtin(self, session_factory):
        with pytest.raises(ValueError, match=PRUNE_JOB_LOGS):
            build_job_handlers(session_factory, Settings(job_log_retention_days=30), {PRUNE_JOB_LOGS: _noop})


class TestPruneJobLogs:
    """Tests for the prune-job-logs job."""

    async def test_deletes_logs_past_retention(
        self, log_store, job_factory, job_log_factory
    ):
        """Should delete only finished logs older than the window."""
        job = await job_factory()
        now = utc_now()
        await job_log_factory(job.id, JobStatus.SUCCESS, start_time=now - timedelta(days=45))
        await job_log_factory(job.id, JobStatus.FAILED, start_time=now - timedelta(days=2))

        deleted = await prune_job_logs(log_store, retention_days=30)

        assert deleted == 1
        assert await log_store.count(job.id) == 1

    async def test_runs_through_scheduler(
        self, scheduler_factory, session_factory, job_factory, log_store
    ):
        """Should record its deleted count like any other job."""
        handlers = build_job_handlers(session_factory, Settings(job_log_retention_days=30))
        job_scheduler = scheduler_factory(handlers)
        job = await job_factory(name=PRUNE_JOB_LOGS, schedule="0 3 * * *")

        result = await job_scheduler.run_job(PRUNE_JOB_LOGS)

        assert result.success
        assert result.count == 0
        assert (await log_store.get_latest_for_job(job.id)).status == JobStatus.SUCCESS
