"""Daily trigger for the clean-up job."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import ScheduleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailySchedule:
    hour: int = 9
    minute: int = 30
    utc: bool = True

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(f"Invalid schedule time {self.hour}:{self.minute:02d}.")

    @classmethod
    def parse(cls, at: str, utc: bool = True) -> "DailySchedule":
        hour, _, minute = at.strip().partition(":")
        return cls(hour=int(hour), minute=int(minute), utc=utc)

    @classmethod
    def from_config(cls, config: ScheduleConfig) -> "DailySchedule":
        return cls.parse(config.at, utc=config.utc)

    def now(self) -> datetime:
        if self.utc:
            return datetime.now(timezone.utc)
        return datetime.now().astimezone()

    def next_run(self, after: datetime) -> datetime:
        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= after:
            candidate += timedelta(days=1)
        return candidate


def run_daily(
    job: Callable[[], object],
    schedule: DailySchedule,
    sleep: Callable[[float], None] = time.sleep,
    clock: Optional[Callable[[], datetime]] = None,
    max_runs: Optional[int] = None,
) -> int:
    """Run ``job`` once per day at the scheduled time; returns the number of runs."""

    clock = clock or schedule.now
    runs = 0
    while max_runs is None or runs < max_runs:
        next_at = schedule.next_run(clock())
        logger.info("Next timer schedule at: %s", next_at.isoformat())
        while True:
            remaining = (next_at - clock()).total_seconds()
            if remaining <= 0:
                break
            sleep(remaining)

        logger.info("Timer trigger executed at: %s", clock().isoformat())
        try:
            job()
        except Exception as exc:
            logger.exception("Scheduled clean-up run failed: %s", exc)
        runs += 1
    return runs


__all__ = ["DailySchedule", "run_daily"]
