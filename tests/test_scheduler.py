"""
Tests for the daily trigger
"""
from datetime import datetime, timedelta, timezone

import pytest

from dormant_cleanup.config import ScheduleConfig
from dormant_cleanup.scheduler import DailySchedule, run_daily


class FakeClock:
    def __init__(self, start):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


class TestDailySchedule:
    def test_later_today(self):
        schedule = DailySchedule(hour=9, minute=30)
        now = datetime(2024, 6, 15, 8, 0, tzinfo=timezone.utc)
        assert schedule.next_run(now) == datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)

    def test_tomorrow_once_passed(self):
        schedule = DailySchedule(hour=9, minute=30)
        now = datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc)
        assert schedule.next_run(now) == datetime(2024, 6, 16, 9, 30, tzinfo=timezone.utc)

    def test_from_config(self):
        schedule = DailySchedule.from_config(ScheduleConfig(at="07:05", utc=False))
        assert (schedule.hour, schedule.minute, schedule.utc) == (7, 5, False)

    @pytest.mark.parametrize("value", ["24:00", "09:60", "9", "nine:thirty"])
    def test_invalid_times(self, value):
        with pytest.raises(ValueError):
            DailySchedule.parse(value)


class TestRunDaily:
    """Trigger loop"""

    def test_sleeps_until_trigger_then_runs(self):
        clock = FakeClock(datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc))
        runs = []

        count = run_daily(
            lambda: runs.append(clock()),
            DailySchedule(hour=9, minute=30),
            sleep=clock.sleep,
            clock=clock,
            max_runs=2,
        )

        assert count == 2
        assert runs == [
            datetime(2024, 6, 15, 9, 30, tzinfo=timezone.utc),
            datetime(2024, 6, 16, 9, 30, tzinfo=timezone.utc),
        ]
        assert clock.sleeps[0] == 30 * 60

    def test_failed_run_does_not_stop_schedule(self):
        clock = FakeClock(datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc))
        attempts = []

        def job():
            attempts.append(clock())
            if len(attempts) == 1:
                raise RuntimeError("boom")

        count = run_daily(job, DailySchedule(), sleep=clock.sleep, clock=clock, max_runs=2)

        assert count == 2
        assert len(attempts) == 2
