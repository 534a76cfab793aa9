"""Tests for the APScheduler cron trigger adapter."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from jobdesk.scheduling.cron import parse
from jobdesk.scheduling.trigger import CronExpressionTrigger

PARIS = ZoneInfo("Europe/Paris")


class TestCronExpressionTrigger:
    """Tests for CronExpressionTrigger.get_next_fire_time."""

    def test_first_fire_in_trigger_timezone(self):
        """Should match the schedule against the trigger's wall clock."""
        trigger = CronExpressionTrigger(parse("0 9 * * *"), PARIS)
        now = datetime(2026, 1, 10, 7, 0, tzinfo=UTC)  # 08:00 in Paris

        fire_time = trigger.get_next_fire_time(None, now)

        assert fire_time == datetime(2026, 1, 10, 9, 0, tzinfo=PARIS)
        assert fire_time.tzinfo is PARIS

    def test_continues_from_previous_fire(self):
        """Should advance from the previous fire time, not from now."""
        trigger = CronExpressionTrigger(parse("0 9 * * *"), PARIS)
        previous = datetime(2026, 1, 10, 9, 0, tzinfo=PARIS)
        now = datetime(2026, 1, 10, 8, 5, tzinfo=UTC)

        assert trigger.get_next_fire_time(previous, now) == datetime(
            2026, 1, 11, 9, 0, tzinfo=PARIS
        )

    def test_keeps_posix_weekday_numbering(self):
        """0 should mean Sunday, unlike APScheduler's own CronTrigger."""
        trigger = CronExpressionTrigger(parse("0 0 * * 0"), UTC)
        now = datetime(2026, 1, 1, tzinfo=UTC)  # Thursday

        assert trigger.get_next_fire_time(None, now) == datetime(2026, 1, 4, tzinfo=UTC)

    def test_never_fires(self):
        trigger = CronExpressionTrigger(parse("0 0 31 4 *"), UTC)
        assert trigger.get_next_fire_time(None, datetime(2026, 1, 1, tzinfo=UTC)) is None

    def test_string_forms(self):
        trigger = CronExpressionTrigger(parse("*/5 * * * *"), UTC)
        assert str(trigger) == "cron[*/5 * * * *]"
        assert "CronExpressionTrigger" in repr(trigger)
