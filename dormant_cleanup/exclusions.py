"""Protected account set built from safe-list group membership."""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Set

from .graph_client import DirectoryClient
from .models import ExclusionResult
from .telemetry import GROUP_RESOLVED, Telemetry

logger = logging.getLogger(__name__)

MEMBER_PAGE_SIZE = 999


class ExclusionSetBuilder:
    """Unions the members of every configured group into one protected set."""

    def __init__(
        self,
        client: DirectoryClient,
        telemetry: Telemetry,
        page_size: int = MEMBER_PAGE_SIZE,
    ) -> None:
        self.client = client
        self.telemetry = telemetry
        self.page_size = page_size

    def _group_member_ids(self, group_id: str) -> Set[str]:
        members: Set[str] = set()
        page = self.client.list_group_members(group_id, top=self.page_size, select=("id",))
        while True:
            for member in page.items:
                member_id = str(member.get("id") or "").strip()
                if member_id:
                    members.add(member_id)
            if not page.next_link:
                return members
            page = self.client.get_page(page.next_link)

    def build(self, group_ids: Iterable[Optional[str]]) -> ExclusionResult:
        protected: Set[str] = set()
        result = ExclusionResult()

        for raw_id in group_ids:
            group_id = (raw_id or "").strip()
            if not group_id:
                continue
            try:
                members = self._group_member_ids(group_id)
            except Exception as exc:
                # A partially read group contributes nothing.
                message = f"Error getting members of group {group_id}: {exc}"
                logger.exception(message)
                result.warnings.append(message)
                members = set()

            added = members - protected
            protected |= added
            result.added_per_group[group_id] = result.added_per_group.get(group_id, 0) + len(added)
            logger.info("Group %s added %s protected accounts", group_id, len(added))
            self.telemetry.track_event(
                GROUP_RESOLVED,
                properties={"groupId": group_id},
                measurements={"added": len(added)},
            )

        result.protected = frozenset(protected)
        logger.info("%s accounts are protected from deletion", len(result.protected))
        return result


__all__ = ["ExclusionSetBuilder", "MEMBER_PAGE_SIZE"]
