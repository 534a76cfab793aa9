"""
Pytest configuration and fixtures for jobdesk tests.

Provides:
- Async test database with SQLite
- Registry, log store and scheduler wired to the test database
- Test client for API testing
- Factory fixtures for creating test data
"""

import uuid
from collections.abc import AsyncGenerator, Mapping
from datetime import datetime

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from jobdesk.config import Settings, get_settings
from jobdesk.core.database import create_session_factory
from jobdesk.core.datetime_utils import utc_now
from jobdesk.core.scheduler import get_job_scheduler
from jobdesk.jobs.handlers import JobHandler
from jobdesk.main import app
from jobdesk.models import Base, JobLog, JobStatus, ScheduledJob
from jobdesk.schemas.job import JobDefinition
from jobdesk.scheduling.log_store import ExecutionLogStore
from jobdesk.scheduling.registry import JobRepository
from jobdesk.scheduling.service import JobScheduler

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_session_factory(db_engine)


@pytest.fixture
def registry(session_factory) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture
def log_store(session_factory) -> ExecutionLogStore:
    return ExecutionLogStore(session_factory)


# ============================================================================
# Scheduler Fixtures
# ============================================================================


async def _count_records() -> int:
    return 3


@pytest.fixture
def handlers() -> dict[str, JobHandler]:
    """
    Default handler table for scheduler tests.

    Tests add or replace entries before building a scheduler.
    """
    return {
        "sync-orders": _count_records,
        "sync-customers": _count_records,
        "sync-products": _count_records,
        "sync-inventory": _count_records,
    }


@pytest_asyncio.fixture
async def scheduler_factory(registry, log_store):
    """
    Factory for building JobScheduler instances against the test database.

    The underlying APScheduler starts paused: timers are registered and
    report next run times, but only tests fire them (via `run_scheduled`).
    Every scheduler built here is shut down after the test.
    """
    created: list[JobScheduler] = []

    def _create(handlers: Mapping[str, JobHandler]) -> JobScheduler:
        event_loop_scheduler = AsyncIOScheduler(timezone="UTC")
        event_loop_scheduler.start(paused=True)

        job_scheduler = JobScheduler(
            registry=registry,
            log_store=log_store,
            handlers=handlers,
            scheduler=event_loop_scheduler,
            timezone="UTC",
        )
        created.append(job_scheduler)
        return job_scheduler

    yield _create

    for job_scheduler in created:
        job_scheduler.shutdown()


@pytest_asyncio.fixture
async def job_scheduler(scheduler_factory, handlers) -> JobScheduler:
    """Uninitialized scheduler using the default handler table."""
    return scheduler_factory(handlers)


@pytest_asyncio.fixture
async def client(job_scheduler: JobScheduler) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with settings and scheduler overrides."""

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_job_scheduler] = lambda: job_scheduler

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def job_factory(session_factory):
    """Factory for creating test job definitions."""

    async def _create_job(
        name: str | None = None,
        schedule: str = "0 * * * *",
        is_enabled: bool = True,
        description: str = "Test job",
        table_name: str = "",
    ) -> JobDefinition:
        if name is None:
            name = f"job-{uuid.uuid4().hex[:8]}"

        async with session_factory() as session:
            job = ScheduledJob(
                name=name,
                schedule=schedule,
                is_enabled=is_enabled,
                description=description,
                table_name=table_name,
            )
            session.add(job)
            await session.commit()
            return JobDefinition.model_validate(job)

    return _create_job


@pytest_asyncio.fixture
async def job_log_factory(session_factory):
    """Factory for inserting execution logs directly."""

    async def _create_log(
        job_id: str,
        status: JobStatus = JobStatus.SUCCESS,
        start_time: datetime | None = None,
        message: str | None = None,
    ) -> JobLog:
        if start_time is None:
            start_time = utc_now()

        async with session_factory() as session:
            log = JobLog(
                job_id=job_id,
                status=status,
                start_time=start_time,
                end_time=None if status == JobStatus.RUNNING else start_time,
                duration=None if status == JobStatus.RUNNING else 0,
                message=message,
            )
            session.add(log)
            await session.commit()
            return log

    return _create_log
