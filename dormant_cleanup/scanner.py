"""Enumerates accounts with no sign-in since the cutoff."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .graph_client import DirectoryClient, Page
from .models import Account, ExclusionResult, ScanResult
from .telemetry import SEARCH_COMPLETED, Telemetry
from .throttle import ThrottlePolicy

logger = logging.getLogger(__name__)

INACTIVITY_DAYS = 30
USER_SELECT = ("id", "displayName")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_cutoff(now: datetime, days: int = INACTIVITY_DAYS) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now.astimezone(timezone.utc) - timedelta(days=days)).replace(microsecond=0)


def format_cutoff(cutoff: datetime) -> str:
    """ISO-8601 UTC with second precision, e.g. ``2024-05-01T09:30:00Z``."""

    return cutoff.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def dormant_filter(cutoff: datetime) -> str:
    return f"signInActivity/lastSignInDateTime le {format_cutoff(cutoff)}"


class DormantAccountScanner:
    """Walks every page of dormant users and splits them into delete/skip."""

    def __init__(
        self,
        client: DirectoryClient,
        telemetry: Telemetry,
        throttle: Optional[ThrottlePolicy] = None,
        inactivity_days: int = INACTIVITY_DAYS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.client = client
        self.telemetry = telemetry
        self.throttle = throttle or ThrottlePolicy()
        self.inactivity_days = inactivity_days
        self.clock = clock

    def _classify(self, page: Page, protected: ExclusionResult, result: ScanResult) -> None:
        for item in page.items:
            try:
                account = Account.from_dict(item)
            except ValueError:
                logger.warning("Ignoring user entry without an id: %s", item)
                continue
            if account.id in protected:
                result.skipped += 1
            else:
                result.candidates.append(account.id)

    def scan(self, protected: ExclusionResult) -> ScanResult:
        logger.info("Search for all dormant accounts in the directory...")
        cutoff = compute_cutoff(self.clock(), self.inactivity_days)
        result = ScanResult(cutoff=cutoff)

        try:
            page = self.client.list_users(dormant_filter(cutoff), USER_SELECT)
            while True:
                result.pages += 1
                self._classify(page, protected, result)
                if not page.next_link:
                    break
                logger.info(
                    "%s users will be deleted. %s users will be skipped",
                    len(result.candidates),
                    result.skipped,
                )
                logger.info("Waiting and reading next page of users...")
                self.throttle.pause()
                page = self.client.get_page(page.next_link)
        except Exception as exc:
            message = f"Dormant account search stopped after {result.pages} pages: {exc}"
            logger.exception(message)
            result.completed = False
            result.warnings.append(message)

        logger.info(
            "The search for dormant accounts has been completed. "
            "%s users will be deleted. %s users will be skipped",
            len(result.candidates),
            result.skipped,
        )
        self.telemetry.track_event(
            SEARCH_COMPLETED,
            properties={"cutoff": format_cutoff(cutoff), "completed": result.completed},
            measurements={"delete": len(result.candidates), "skip": result.skipped},
        )
        return result


__all__ = [
    "DormantAccountScanner",
    "INACTIVITY_DAYS",
    "compute_cutoff",
    "dormant_filter",
    "format_cutoff",
]
