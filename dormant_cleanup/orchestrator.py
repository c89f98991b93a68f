"""Sequences exclusion, scan and deletion into one clean-up run."""
from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence, Tuple

from .config import AppConfig
from .credentials import CredentialResolver, resolve_credential
from .deleter import BatchDeleter
from .exclusions import ExclusionSetBuilder
from .graph_client import DirectoryClient
from .models import DeletionReport, ExclusionResult, RunReport, RunState, ScanResult
from .scanner import DormantAccountScanner
from .telemetry import LoggingTelemetry, Telemetry
from .throttle import ThrottlePolicy

logger = logging.getLogger(__name__)

OPERATION_NAME = "CleanUpDormantAccounts"


class CleanupOrchestrator:
    """Runs ``Idle -> BuildingExclusions -> Scanning -> Deleting -> Done``.

    Nothing is carried between runs: each call recomputes the cutoff, the
    protected set and the candidate list.
    """

    def __init__(
        self,
        exclusions: ExclusionSetBuilder,
        scanner: DormantAccountScanner,
        deleter: BatchDeleter,
        group_ids: Sequence[Optional[str]],
        telemetry: Telemetry,
        client: Optional[DirectoryClient] = None,
        owns_client: bool = False,
    ) -> None:
        self.exclusions = exclusions
        self.scanner = scanner
        self.deleter = deleter
        self.group_ids = list(group_ids)
        self.telemetry = telemetry
        self.state = RunState.IDLE
        self._states: List[RunState] = []
        self.client = client
        self.owns_client = owns_client

    def close(self) -> None:
        """Close the directory client if this orchestrator created it."""

        if self.owns_client and self.client is not None:
            self.client.close()

    def __enter__(self) -> "CleanupOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _enter(self, state: RunState) -> None:
        logger.debug("Clean-up state %s -> %s", self.state.value, state.value)
        self.state = state
        self._states.append(state)

    def run(self) -> RunReport:
        self.state = RunState.IDLE
        self._states = [RunState.IDLE]
        with self.telemetry.operation(OPERATION_NAME):
            self._enter(RunState.BUILDING_EXCLUSIONS)
            exclusions = self.exclusions.build(self.group_ids)

            self._enter(RunState.SCANNING)
            scan = self.scanner.scan(exclusions)

            self._enter(RunState.DELETING)
            deletion = self.deleter.delete_all(scan.candidates) if scan.candidates else DeletionReport()

            self._enter(RunState.DONE)

        report = RunReport(
            exclusions=exclusions, scan=scan, deletion=deletion, states=list(self._states)
        )
        for warning in report.warnings:
            logger.warning("Run completed with warning: %s", warning)
        logger.info(
            "Clean-up finished: %s protected, %s candidates, %s skipped, %s batches (%s failed)",
            len(exclusions),
            len(scan.candidates),
            scan.skipped,
            len(deletion.batches),
            deletion.failed_batches,
        )
        return report

    def preview(self) -> Tuple[ExclusionResult, ScanResult]:
        """Exclusions and scan only; nothing is deleted."""

        exclusions = self.exclusions.build(self.group_ids)
        return exclusions, self.scanner.scan(exclusions)


def build_orchestrator(
    config: AppConfig,
    telemetry: Optional[Telemetry] = None,
    client: Optional[DirectoryClient] = None,
    resolver: Optional[CredentialResolver] = None,
    sleep: Callable[[float], None] = time.sleep,
    owns_client: Optional[bool] = None,
) -> CleanupOrchestrator:
    """Wire the components from configuration.

    The certificate is resolved before any directory call, so a missing
    certificate fails the run up front. A client built here is closed with
    the orchestrator; a client passed in stays open unless ``owns_client``
    is set.
    """

    telemetry = telemetry or LoggingTelemetry()
    if owns_client is None:
        owns_client = client is None
    if client is None:
        credential = resolve_credential(config.identity, resolver)
        client = DirectoryClient(config.identity, credential)

    throttle = config.throttle
    return CleanupOrchestrator(
        exclusions=ExclusionSetBuilder(client, telemetry, page_size=throttle.member_page_size),
        scanner=DormantAccountScanner(
            client,
            telemetry,
            throttle=ThrottlePolicy.for_pages(throttle, sleep),
            inactivity_days=throttle.inactivity_days,
        ),
        deleter=BatchDeleter(
            client, telemetry, throttle=ThrottlePolicy.for_batches(throttle, sleep)
        ),
        group_ids=config.groups.protected_group_ids,
        telemetry=telemetry,
        client=client,
        owns_client=owns_client,
    )


__all__ = ["CleanupOrchestrator", "OPERATION_NAME", "build_orchestrator"]
