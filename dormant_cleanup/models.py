"""Data models for dormant accounts and the results of a clean-up run."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional


class RunState(str, enum.Enum):
    IDLE = "Idle"
    BUILDING_EXCLUSIONS = "BuildingExclusions"
    SCANNING = "Scanning"
    DELETING = "Deleting"
    DONE = "Done"


@dataclass(frozen=True)
class Account:
    """Directory account snapshot as returned by the user listing."""

    id: str
    display_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        account_id = str(data.get("id") or "").strip()
        if not account_id:
            raise ValueError("Account payload is missing an id.")
        return cls(id=account_id, display_name=data.get("displayName"))


@dataclass
class ExclusionResult:
    """Protected account ids, with how many each group contributed."""

    protected: FrozenSet[str] = frozenset()
    added_per_group: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self.protected

    def __len__(self) -> int:
        return len(self.protected)


@dataclass
class ScanResult:
    candidates: List[str] = field(default_factory=list)
    skipped: int = 0
    cutoff: Optional[datetime] = None
    pages: int = 0
    completed: bool = True
    warnings: List[str] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        return {"delete": len(self.candidates), "skip": self.skipped}


@dataclass
class BatchOutcome:
    """What happened to one ``$batch`` submission.

    ``statuses`` maps account id to the HTTP status Graph reported for its delete;
    it is empty when the submission itself failed.
    """

    index: int
    account_ids: List[str]
    submitted: bool = False
    error: Optional[str] = None
    statuses: Dict[str, int] = field(default_factory=dict)

    @property
    def failed_ids(self) -> List[str]:
        return [
            account_id
            for account_id in self.account_ids
            if account_id in self.statuses and self.statuses[account_id] >= 400
        ]

    @property
    def unreported_ids(self) -> List[str]:
        if not self.submitted:
            return []
        return [account_id for account_id in self.account_ids if account_id not in self.statuses]


@dataclass
class DeletionReport:
    batches: List[BatchOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def submitted_batches(self) -> int:
        return sum(1 for batch in self.batches if batch.submitted)

    @property
    def failed_batches(self) -> int:
        return sum(1 for batch in self.batches if not batch.submitted)

    @property
    def queued(self) -> int:
        return sum(len(batch.account_ids) for batch in self.batches if batch.submitted)


@dataclass
class RunReport:
    exclusions: ExclusionResult
    scan: ScanResult
    deletion: DeletionReport
    states: List[RunState] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [*self.exclusions.warnings, *self.scan.warnings, *self.deletion.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "protected": len(self.exclusions),
            "candidates": len(self.scan.candidates),
            "skipped": self.scan.skipped,
            "cutoff": self.scan.cutoff.isoformat() if self.scan.cutoff else None,
            "scan_completed": self.scan.completed,
            "batches": len(self.deletion.batches),
            "failed_batches": self.deletion.failed_batches,
            "queued": self.deletion.queued,
            "states": [state.value for state in self.states],
            "warnings": list(self.warnings),
        }


__all__ = [
    "Account",
    "BatchOutcome",
    "DeletionReport",
    "ExclusionResult",
    "RunReport",
    "RunState",
    "ScanResult",
]
