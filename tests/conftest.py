"""
Pytest configuration and fixtures
"""
from typing import Dict, List, Optional, Sequence, Type

import pytest

from dormant_cleanup.graph_client import BatchRequest, DirectoryGraphError, Page
from dormant_cleanup.telemetry import Telemetry, TelemetryEvent
from dormant_cleanup.throttle import ThrottlePolicy


def make_users(prefix: str, count: int) -> List[dict]:
    return [{"id": f"{prefix}{index}", "displayName": f"User {prefix}{index}"} for index in range(count)]


class RecordingTelemetry(Telemetry):
    """Keeps events in memory."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[TelemetryEvent] = []

    def _emit(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def named(self, name: str) -> List[TelemetryEvent]:
        return [event for event in self.events if event.name == name]


class FakeDirectory:
    """In-memory stand-in for the Graph directory client.

    ``events`` records page fetches, batch submissions and throttle sleeps in
    the order they happen. Failures raise ``DirectoryGraphError`` unless
    ``error_type`` names another exception class.
    """

    def __init__(self) -> None:
        self.user_pages: List[List[dict]] = [[]]
        self.group_pages: Dict[str, List[List[str]]] = {}
        self.fail_user_page: Optional[int] = None
        self.fail_group_page: Dict[str, int] = {}
        self.fail_batches: set = set()
        self.batch_statuses: Dict[str, int] = {}
        self.user_queries: List[dict] = []
        self.member_queries: List[dict] = []
        self.batches: List[List[BatchRequest]] = []
        self.events: List[tuple] = []
        self.error_type: Optional[Type[Exception]] = None
        self.closed = False

    # configuration helpers
    make_users = staticmethod(make_users)

    def set_users(self, *pages: List[dict]) -> None:
        self.user_pages = [list(page) for page in pages] or [[]]

    def set_group(self, group_id: str, *pages: Sequence[str]) -> None:
        self.group_pages[group_id] = [list(page) for page in pages] or [[]]

    def sleep(self, seconds: float) -> None:
        self.events.append(("sleep", seconds))

    def _error(self, status: int, code: str, message: str) -> Exception:
        if self.error_type is not None:
            return self.error_type(message)
        return DirectoryGraphError(status, code, message)

    # DirectoryClient surface
    def _user_page(self, index: int) -> Page:
        if self.fail_user_page == index:
            raise self._error(503, "serviceUnavailable", f"page {index} failed")
        self.events.append(("users", index))
        next_link = f"users:{index + 1}" if index + 1 < len(self.user_pages) else None
        return Page(items=list(self.user_pages[index]), next_link=next_link)

    def _group_page(self, group_id: str, index: int) -> Page:
        if group_id not in self.group_pages:
            raise DirectoryGraphError(404, "Request_ResourceNotFound", f"group {group_id} not found")
        if self.fail_group_page.get(group_id) == index:
            raise self._error(500, "InternalServerError", f"group {group_id} page {index}")
        pages = self.group_pages[group_id]
        next_link = f"group:{group_id}:{index + 1}" if index + 1 < len(pages) else None
        return Page(items=[{"id": member} for member in pages[index]], next_link=next_link)

    def list_users(self, odata_filter: str, select: Sequence[str]) -> Page:
        self.user_queries.append({"filter": odata_filter, "select": tuple(select)})
        return self._user_page(0)

    def list_group_members(self, group_id: str, top: int = 999, select: Sequence[str] = ("id",)) -> Page:
        self.member_queries.append({"group_id": group_id, "top": top, "select": tuple(select)})
        return self._group_page(group_id, 0)

    def get_page(self, next_link: str) -> Page:
        kind, _, rest = next_link.partition(":")
        if kind == "users":
            return self._user_page(int(rest))
        group_id, _, index = rest.rpartition(":")
        return self._group_page(group_id, int(index))

    def submit_batch(self, requests_: Sequence[BatchRequest]) -> List[dict]:
        index = len(self.batches)
        self.batches.append(list(requests_))
        self.events.append(("batch", index))
        if index in self.fail_batches:
            raise self._error(502, "BadGateway", f"batch {index} failed")
        responses = []
        for request in requests_:
            user_id = request.url.rsplit("/", 1)[-1]
            responses.append({"id": request.id, "status": self.batch_statuses.get(user_id, 204)})
        return responses

    def close(self) -> None:
        self.closed = True

    def deleted_ids(self) -> List[str]:
        return [request.url.rsplit("/", 1)[-1] for batch in self.batches for request in batch]


@pytest.fixture
def directory():
    """Fresh fake directory for each test"""
    return FakeDirectory()


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def page_throttle(directory):
    """Three second page throttle whose sleeps are recorded, not slept"""
    return ThrottlePolicy(delay_seconds=3, sleep=directory.sleep)


@pytest.fixture
def batch_throttle(directory):
    return ThrottlePolicy(delay_seconds=3, batch_size=20, sleep=directory.sleep)
