"""Scheduler error taxonomy.

Validation errors reject a single operation, execution errors are recorded
and reported, and storage errors are left to propagate untouched.
"""


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class CronValidationError(SchedulerError):
    """A cron expression failed validation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class FieldCountError(CronValidationError):
    """Expression does not have exactly five fields."""

    def __init__(self, count: int, expected: int = 5) -> None:
        self.count = count
        self.expected = expected
        if count < expected:
            missing = expected - count
            plural = "s" if missing > 1 else ""
            message = f"Need {missing} more field{plural} ({count} of {expected} complete)"
        else:
            excess = count - expected
            plural = "s" if excess > 1 else ""
            message = f"Too many fields: {excess} extra field{plural} (max {expected} allowed)"
        super().__init__(message)

    @property
    def missing(self) -> int:
        return max(self.expected - self.count, 0)

    @property
    def excess(self) -> int:
        return max(self.count - self.expected, 0)


class FieldRangeError(CronValidationError):
    """A single field holds a value or syntax outside its legal range."""

    def __init__(self, field: str, value: str, allowed: str, reason: str | None = None) -> None:
        self.value = value
        self.allowed = allowed
        message = f'Invalid {field} "{value}" (expected: {allowed})'
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, field=field)


class JobConfigValidationError(SchedulerError):
    """A job configuration update was rejected before persistence."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class JobNotFoundError(SchedulerError):
    """No job definition matches the requested name or id."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Job not found: {key}")
        self.key = key


class AlreadyRunningError(SchedulerError):
    """The job already has an unterminated execution."""

    def __init__(self, job: str) -> None:
        super().__init__(f"Job is already running: {job}")
        self.job = job


class InvalidStateError(SchedulerError):
    """An execution log was asked to make an illegal transition."""


class JobConfigurationError(SchedulerError):
    """A job cannot be scheduled or run because of its configuration."""

    def __init__(self, job: str, reason: str) -> None:
        super().__init__(f"Job {job} is misconfigured: {reason}")
        self.job = job
        self.reason = reason


class JobExecutionError(SchedulerError):
    """Wraps an exception raised by a job's work function."""

    def __init__(self, job: str, cause: BaseException) -> None:
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Job {job} failed: {detail}")
        self.job = job
        self.cause = cause
        self.detail = detail
