"""APScheduler trigger driven by our cron engine.

APScheduler's own CronTrigger numbers weekdays from Monday and ANDs day of
month with day of week; this trigger keeps POSIX semantics by delegating
every fire-time computation to `CronExpression.next_fire_time`.
"""

from datetime import datetime, tzinfo

from apscheduler.triggers.base import BaseTrigger

from jobdesk.scheduling.cron import CronExpression


class CronExpressionTrigger(BaseTrigger):
    """Fires whenever a parsed cron expression matches, in a fixed timezone."""

    __slots__ = ("expression", "timezone")

    def __init__(self, expression: CronExpression, timezone: tzinfo) -> None:
        self.expression = expression
        self.timezone = timezone

    def get_next_fire_time(
        self, previous_fire_time: datetime | None, now: datetime
    ) -> datetime | None:
        after = previous_fire_time or now
        return self.expression.next_fire_time(after.astimezone(self.timezone))

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} ({self.expression!s}, timezone='{self.timezone}')>"
