"""
jobdesk CLI - Command line interface for the job scheduler.

Usage:
    jobdesk --help                    Show all commands
    jobdesk jobs                      List jobs with schedule and last run
    jobdesk run prune-job-logs        Run a job once, now
    jobdesk logs --job NAME           Show recent execution history
    jobdesk validate "*/15 * * * *"   Check a cron expression
    jobdesk seed                      Create missing jobs from config.yml
"""

import asyncio
from datetime import datetime

import typer

app = typer.Typer(
    name="jobdesk",
    help="jobdesk CLI - cron job scheduler",
    no_args_is_help=True,
)


# --- Printer helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


def _format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@app.command()
def jobs():
    """List all jobs with their schedule, state and last run."""
    from jobdesk.core.logging import setup_logging
    from jobdesk.core.scheduler import create_job_scheduler

    setup_logging()

    async def _list():
        scheduler = create_job_scheduler()
        return await scheduler.get_all_jobs_with_status()

    statuses = asyncio.run(_list())
    if not statuses:
        _print_warning("No jobs defined (run `jobdesk seed`)")
        return

    for job in statuses:
        flag = "on " if job.is_enabled else "off"
        last_status = job.last_log.status.value if job.last_log else "never run"
        typer.echo(
            f"[{flag}] {job.name:<28} {job.schedule:<16} "
            f"{job.schedule_description:<28} last: {_format_time(job.last_run)} ({last_status})"
        )


@app.command()
def run(
    name: str = typer.Argument(..., help="Job name, e.g. prune-job-logs"),
):
    """Run a job once, immediately."""
    from jobdesk.core.exceptions import (
        AlreadyRunningError,
        JobConfigurationError,
        JobNotFoundError,
    )
    from jobdesk.core.logging import setup_logging
    from jobdesk.core.scheduler import create_job_scheduler

    setup_logging()

    try:
        result = asyncio.run(create_job_scheduler().run_job(name))
    except (JobNotFoundError, AlreadyRunningError, JobConfigurationError) as e:
        _print_error(str(e))
        raise typer.Exit(1) from e

    if result.success:
        _print_success(f"{name}: {result.count or 0} records in {result.duration} ms")
    else:
        _print_error(result.error or f"{name} failed")
        raise typer.Exit(1)


@app.command()
def logs(
    job: str | None = typer.Option(None, "--job", "-j", help="Only show runs of this job"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of runs to show"),
):
    """Show recent execution history, newest first."""
    from jobdesk.core.exceptions import JobNotFoundError
    from jobdesk.core.logging import setup_logging
    from jobdesk.core.scheduler import create_job_scheduler

    setup_logging()

    try:
        entries = asyncio.run(create_job_scheduler().get_logs(limit=limit, job_name=job))
    except JobNotFoundError as e:
        _print_error(str(e))
        raise typer.Exit(1) from e

    if not entries:
        _print_warning("No executions recorded")
        return

    for entry in entries:
        duration = f"{entry.duration} ms" if entry.duration is not None else "-"
        typer.echo(
            f"{_format_time(entry.start_time)}  {entry.job_name or entry.job_id:<28} "
            f"{entry.status.value:<8} {duration:>10}  {entry.message or ''}"
        )


@app.command()
def validate(
    expression: str = typer.Argument(..., help='Cron expression, e.g. "0 9 * * 1-5"'),
    count: int = typer.Option(5, "--count", "-c", help="Number of upcoming runs to show"),
):
    """Validate a cron expression and show its next fire times."""
    from jobdesk.config import get_settings
    from jobdesk.core.datetime_utils import resolve_timezone
    from jobdesk.scheduling.cron import describe, next_fire_times
    from jobdesk.scheduling.cron import validate as validate_expression

    result = validate_expression(expression)
    if not result.valid:
        _print_error(result.message or "Invalid cron expression")
        raise typer.Exit(1)

    tz = resolve_timezone(get_settings().scheduler_timezone)
    _print_success(f"{expression}: {describe(expression)}")
    for fire_time in next_fire_times(expression, datetime.now(tz), count):
        typer.echo(f"    {fire_time.isoformat()}")


@app.command()
def seed():
    """Create jobs from config.yml that do not exist yet."""
    from jobdesk.config import get_config
    from jobdesk.core.database import AsyncSessionLocal
    from jobdesk.core.logging import setup_logging
    from jobdesk.scheduling.registry import JobRepository

    setup_logging()

    created = asyncio.run(JobRepository(AsyncSessionLocal).ensure_jobs(get_config().jobs))
    if created:
        for name in created:
            _print_success(f"Created {name}")
    else:
        _print_warning("All configured jobs already exist")


if __name__ == "__main__":
    app()
