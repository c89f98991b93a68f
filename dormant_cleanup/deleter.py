"""Batched deletion of dormant accounts through Graph ``$batch``."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

from .graph_client import BatchRequest, DirectoryClient, delete_user_request
from .models import BatchOutcome, DeletionReport
from .telemetry import USER_DELETED, Telemetry
from .throttle import ThrottlePolicy

logger = logging.getLogger(__name__)


def _new_correlation_key() -> str:
    return str(uuid.uuid4())


class BatchDeleter:
    """Deletes accounts in fixed-size batches, pausing between submissions.

    A failed submission is recorded and the next batch is still attempted.
    Per-operation statuses from a successful response are reported but not
    retried.
    """

    def __init__(
        self,
        client: DirectoryClient,
        telemetry: Telemetry,
        throttle: Optional[ThrottlePolicy] = None,
        key_factory: Callable[[], str] = _new_correlation_key,
    ) -> None:
        self.client = client
        self.telemetry = telemetry
        self.throttle = throttle or ThrottlePolicy()
        self.key_factory = key_factory

    def delete_all(self, account_ids: Sequence[str]) -> DeletionReport:
        report = DeletionReport()
        batch: List[BatchRequest] = []
        keys: Dict[str, str] = {}
        last_index = len(account_ids) - 1

        for position, account_id in enumerate(account_ids):
            key = self.key_factory()
            batch.append(delete_user_request(key, account_id))
            keys[key] = account_id
            logger.info("The user %s will be deleted", account_id)

            if len(batch) < self.throttle.batch_size and position != last_index:
                continue

            outcome = self._submit(len(report.batches), batch, keys)
            report.batches.append(outcome)
            if outcome.error:
                report.warnings.append(outcome.error)
            for account_id_failed in outcome.failed_ids:
                report.warnings.append(
                    f"Delete of {account_id_failed} returned status "
                    f"{outcome.statuses[account_id_failed]}"
                )

            batch = []
            keys = {}
            if position != last_index:
                self.throttle.pause()

        logger.info(
            "Deletion finished: %s batches submitted, %s failed, %s users queued",
            report.submitted_batches,
            report.failed_batches,
            report.queued,
        )
        return report

    def _submit(
        self, index: int, batch: List[BatchRequest], keys: Dict[str, str]
    ) -> BatchOutcome:
        outcome = BatchOutcome(index=index, account_ids=[keys[request.id] for request in batch])
        try:
            responses = self.client.submit_batch(batch)
            statuses = self._statuses(responses, keys)
        except Exception as exc:
            outcome.error = f"Batch operation {index} failed: {exc}"
            logger.exception(outcome.error)
            return outcome

        outcome.submitted = True
        outcome.statuses = statuses
        for account_id in outcome.account_ids:
            status = outcome.statuses.get(account_id)
            if status is not None and status >= 400:
                logger.warning("Delete of user %s returned status %s", account_id, status)
            self.telemetry.track_event(
                USER_DELETED,
                properties={
                    "userId": account_id,
                    "status": status if status is not None else "unknown",
                },
            )
        return outcome

    @staticmethod
    def _statuses(responses: List[Dict[str, Any]], keys: Dict[str, str]) -> Dict[str, int]:
        statuses: Dict[str, int] = {}
        for response in responses:
            account_id = keys.get(str(response.get("id")))
            if account_id is None:
                continue
            try:
                statuses[account_id] = int(response.get("status"))
            except (TypeError, ValueError):
                logger.warning("Unreadable batch status for user %s: %r", account_id, response)
        return statuses


__all__ = ["BatchDeleter"]
