"""Cron expression parsing, validation and fire-time computation.

Supports the classic five-field format:

    minute (0-59) | hour (0-23) | day of month (1-31) | month (1-12) | day of week (0-7)

Day of week 0 and 7 are both Sunday. Each field is a comma list of elements,
where an element is `*`, `*/n`, `a`, `a-b` or `a-b/n`. When both day fields
are restricted a day matches either one; when either starts with `*` a day
must match both. Fire times come from croniter; parsing and validation stay
here so errors name the offending field.

Usage:
    from jobdesk.scheduling.cron import describe, next_fire_time, validate

    result = validate("*/5 * * * *")
    if not result.valid:
        raise result.error

    describe("0 6 * * *")           # "Daily at 6:00 AM"
    next_fire_time("0 6 * * *", now)
"""

import re
from dataclasses import dataclass
from datetime import datetime

from croniter import CroniterError, croniter

from jobdesk.core.exceptions import CronValidationError, FieldCountError, FieldRangeError

FIELD_COUNT = 5
CUSTOM_SCHEDULE = "Custom schedule"

# No match within this many years means the expression can never fire (e.g. Feb 30)
SEARCH_HORIZON_YEARS = 8

# Candidates to skip when a DST fold repeats a wall-clock time
FIRE_TIME_ATTEMPTS = 4

_ELEMENT_RE = re.compile(r"^(?:(\*)|(\d+)(?:-(\d+))?)(?:/(\d+))?$")

_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

_KNOWN_SCHEDULES = {
    "* * * * *": "Every minute",
    "0 * * * *": "Every hour",
    "0 0 * * *": "Daily at midnight",
    "0 12 * * *": "Daily at noon",
    "0 0 1 * *": "First day of every month",
    "0 0 1 1 *": "Every New Year (Jan 1st)",
}


@dataclass(frozen=True)
class FieldSpec:
    """Name and legal range of one cron field."""

    name: str
    minimum: int
    maximum: int

    @property
    def allowed(self) -> str:
        return f"{self.minimum}-{self.maximum}"


FIELD_SPECS = (
    FieldSpec("minute", 0, 59),
    FieldSpec("hour", 0, 23),
    FieldSpec("day of month", 1, 31),
    FieldSpec("month", 1, 12),
    FieldSpec("day of week", 0, 7),
)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a cron expression."""

    valid: bool
    error: CronValidationError | None = None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""

    @property
    def field(self) -> str | None:
        return self.error.field if self.error else None


@dataclass(frozen=True)
class CronExpression:
    """A parsed cron expression with every field expanded to its value set."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    day_of_month_restricted: bool
    day_of_week_restricted: bool

    def __str__(self) -> str:
        return self.expression

    @property
    def day_or(self) -> bool:
        """Day of month and day of week are OR'd only when both are restricted."""
        return self.day_of_month_restricted and self.day_of_week_restricted

    def matches(self, moment: datetime) -> bool:
        """Check whether a moment (minute precision) satisfies every field."""
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self._day_matches(moment)
        )

    def _day_matches(self, moment: datetime) -> bool:
        # Python weekday(): Monday=0; cron: Sunday=0
        in_days = moment.day in self.days
        in_weekdays = (moment.weekday() + 1) % 7 in self.weekdays
        if self.day_or:
            return in_days or in_weekdays
        return in_days and in_weekdays

    def next_fire_time(self, after: datetime) -> datetime | None:
        """
        Compute the first fire time strictly after `after`.

        Aware datetimes are matched against their own wall clock and the
        result carries the same tzinfo. Returns None when the expression
        has no match within SEARCH_HORIZON_YEARS.
        """
        try:
            iterator = croniter(
                self.expression,
                after,
                day_or=self.day_or,
                max_years_between_matches=SEARCH_HORIZON_YEARS,
            )
            for _ in range(FIRE_TIME_ATTEMPTS):
                candidate = iterator.get_next(datetime)
                if candidate.tzinfo is None and after.tzinfo is not None:
                    candidate = candidate.replace(tzinfo=after.tzinfo)
                if _is_later(candidate, after):
                    return candidate
        except CroniterError:
            # Impossible dates (Feb 30) or no match inside the horizon
            return None
        return None

    def next_fire_times(self, after: datetime, count: int) -> list[datetime]:
        """Compute up to `count` consecutive fire times after `after`."""
        times: list[datetime] = []
        cursor = after
        while len(times) < count:
            fire_time = self.next_fire_time(cursor)
            if fire_time is None:
                break
            times.append(fire_time)
            cursor = fire_time
        return times


def _is_later(candidate: datetime, after: datetime) -> bool:
    # Same-tzinfo comparison uses wall clock, which repeats around DST
    if after.tzinfo is None:
        return candidate > after
    return candidate.timestamp() > after.timestamp()


def _parse_field(text: str, spec: FieldSpec) -> frozenset[int]:
    values: set[int] = set()

    for element in text.split(","):
        match = _ELEMENT_RE.match(element)
        if not match:
            raise FieldRangeError(spec.name, text, spec.allowed)

        star, start, end, step = match.groups()

        step_value = 1
        if step is not None:
            step_value = int(step)
            if step_value < 1:
                raise FieldRangeError(
                    spec.name, text, spec.allowed, "step must be a positive integer"
                )

        if star:
            low, high = spec.minimum, spec.maximum
        else:
            if step is not None and end is None:
                raise FieldRangeError(
                    spec.name, text, spec.allowed, "step requires * or a range"
                )
            low = int(start)
            high = int(end) if end is not None else low
            for value in (low, high):
                if not spec.minimum <= value <= spec.maximum:
                    raise FieldRangeError(spec.name, text, spec.allowed)
            if low > high:
                raise FieldRangeError(
                    spec.name, text, spec.allowed, "range start exceeds range end"
                )

        values.update(range(low, high + 1, step_value))

    return frozenset(values)


def parse(expression: str) -> CronExpression:
    """
    Parse a cron expression.

    Fields are checked left to right and the first invalid one raises.

    Raises:
        FieldCountError: The expression does not have exactly five fields
        FieldRangeError: A field is malformed or out of range
    """
    fields = expression.split()
    if len(fields) != FIELD_COUNT:
        raise FieldCountError(len(fields), FIELD_COUNT)

    minutes, hours, days, months, weekdays = (
        _parse_field(text, spec) for text, spec in zip(fields, FIELD_SPECS, strict=True)
    )

    return CronExpression(
        expression=" ".join(fields),
        minutes=minutes,
        hours=hours,
        days=days,
        months=months,
        weekdays=frozenset(0 if day == 7 else day for day in weekdays),
        day_of_month_restricted=not fields[2].startswith("*"),
        day_of_week_restricted=not fields[4].startswith("*"),
    )


def validate(expression: str) -> ValidationResult:
    """Validate a cron expression without raising."""
    try:
        parse(expression)
    except CronValidationError as e:
        return ValidationResult(valid=False, error=e)
    return ValidationResult(valid=True)


def normalize(expression: str) -> str:
    """Collapse whitespace so equivalent expressions compare equal."""
    return " ".join(expression.split())


def next_fire_time(expression: str, after: datetime) -> datetime | None:
    """Parse `expression` and compute its next fire time after `after`."""
    return parse(expression).next_fire_time(after)


def next_fire_times(expression: str, after: datetime, count: int = 5) -> list[datetime]:
    """Parse `expression` and compute its next `count` fire times."""
    return parse(expression).next_fire_times(after, count)


def _format_time(hour: int, minute: int) -> str:
    if minute == 0 and hour == 0:
        return "midnight"
    if minute == 0 and hour == 12:
        return "noon"
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"


def _describe_weekdays(field: str) -> str | None:
    if field == "1-5":
        return "Weekdays"
    if "," in field and all(part.isdigit() for part in field.split(",")):
        names = [_DAY_NAMES[int(part) % 7] for part in field.split(",")]
        return f"Every {', '.join(names)}"
    if "-" in field and "/" not in field and "," not in field:
        first, last = field.split("-")
        return f"{_DAY_NAMES[int(first) % 7]} through {_DAY_NAMES[int(last) % 7]}"
    if field.isdigit():
        return f"Every {_DAY_NAMES[int(field) % 7]}"
    return None


def describe(expression: str) -> str:
    """
    Produce a human-readable summary of a cron expression.

    Advisory only: unrecognized or invalid expressions yield "Custom schedule".
    """
    if not validate(expression).valid:
        return CUSTOM_SCHEDULE

    normalized = normalize(expression)
    if normalized in _KNOWN_SCHEDULES:
        return _KNOWN_SCHEDULES[normalized]

    minute, hour, day_of_month, month, day_of_week = normalized.split()
    every_day = day_of_month == "*" and month == "*" and day_of_week == "*"

    if every_day and hour == "*" and minute.startswith("*/"):
        interval = minute[2:]
        return f"Every {interval} minute{'' if interval == '1' else 's'}"

    if every_day and minute == "0" and hour.startswith("*/"):
        interval = hour[2:]
        return f"Every {interval} hour{'' if interval == '1' else 's'}"

    if every_day and minute.isdigit() and hour.isdigit():
        return f"Daily at {_format_time(int(hour), int(minute))}"

    if minute.isdigit() and hour.isdigit() and day_of_month == "*" and month == "*":
        days = _describe_weekdays(day_of_week)
        if days:
            return f"{days} at {_format_time(int(hour), int(minute))}"

    return CUSTOM_SCHEDULE
