"""Pacing policy applied between Graph page reads and batch submissions."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .config import MAX_BATCH_SIZE, ThrottleConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottlePolicy:
    """Fixed delay between consecutive calls, plus the batch size for writes."""

    delay_seconds: float = 3.0
    batch_size: int = MAX_BATCH_SIZE
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative.")
        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}.")

    def pause(self) -> None:
        if self.delay_seconds <= 0:
            return
        logger.debug("Throttling for %.1f seconds", self.delay_seconds)
        self.sleep(self.delay_seconds)

    @classmethod
    def for_pages(
        cls, config: ThrottleConfig, sleep: Callable[[float], None] = time.sleep
    ) -> "ThrottlePolicy":
        return cls(delay_seconds=config.page_delay_seconds, sleep=sleep)

    @classmethod
    def for_batches(
        cls, config: ThrottleConfig, sleep: Callable[[float], None] = time.sleep
    ) -> "ThrottlePolicy":
        return cls(
            delay_seconds=config.batch_delay_seconds, batch_size=config.batch_size, sleep=sleep
        )


__all__ = ["ThrottlePolicy"]
