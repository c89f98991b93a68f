"""Microsoft Graph directory client used by the clean-up job."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import msal
import requests

from .config import MAX_BATCH_SIZE, IdentityConfig
from .credentials import CertificateCredential


GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
REQUEST_TIMEOUT = 30


class DirectoryClientError(RuntimeError):
    """Base exception for directory client operations."""


class DirectoryGraphError(DirectoryClientError):
    """Raised when the Microsoft Graph API returns an error."""

    def __init__(self, status_code: int, error: str, description: str) -> None:
        super().__init__(f"{status_code}: {error} - {description}")
        self.status_code = status_code
        self.error = error
        self.description = description


@dataclass(frozen=True)
class Page:
    """One page of a Graph collection response."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    next_link: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Page":
        return cls(
            items=list(payload.get("value") or []),
            next_link=payload.get("@odata.nextLink") or None,
        )


@dataclass(frozen=True)
class BatchRequest:
    """A single operation inside a JSON ``$batch`` request."""

    id: str
    method: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "method": self.method, "url": self.url}


class DirectoryClient:
    """Thin Graph client exposing the paging and batching calls the job needs."""

    def __init__(self, identity: IdentityConfig, credential: CertificateCredential) -> None:
        self._identity = identity
        self._app = msal.ConfidentialClientApplication(
            client_id=identity.client_id,
            client_credential=credential.as_msal_credential(),
            authority=identity.authority,
        )
        self._token_lock = threading.Lock()
        self._session = requests.Session()

    # ------------------------------------------------------------------ #
    # Token handling / HTTP helpers                                      #
    # ------------------------------------------------------------------ #
    def _acquire_token(self) -> str:
        with self._token_lock:
            result = self._app.acquire_token_silent(GRAPH_SCOPE, account=None)
            if not result:
                result = self._app.acquire_token_for_client(scopes=GRAPH_SCOPE)

        if "access_token" not in result:
            raise DirectoryGraphError(
                status_code=0,
                error=result.get("error", "token_error"),
                description=result.get("error_description", "Unable to acquire Graph token."),
            )
        return str(result["access_token"])

    def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        if not url.startswith("https://"):
            url = GRAPH_BASE_URL + url
        headers = kwargs.pop("headers", {}) or {}
        headers.setdefault("Authorization", f"Bearer {self._acquire_token()}")
        headers.setdefault("Accept", "application/json")
        if "json" in kwargs:
            headers.setdefault("Content-Type", "application/json")

        response = self._session.request(
            method,
            url,
            timeout=REQUEST_TIMEOUT,
            headers=headers,
            **kwargs,
        )
        if response.status_code == 204:
            return {}

        if response.status_code >= 400:
            try:
                payload = response.json()
                error = payload.get("error", {})
                code = error.get("code", "GraphError")
                message = error.get("message", response.text)
            except ValueError:
                code = "GraphError"
                message = response.text or "Unknown Graph error."
            raise DirectoryGraphError(response.status_code, code, message)

        return response.json()

    # ------------------------------------------------------------------ #
    # Paged reads                                                        #
    # ------------------------------------------------------------------ #
    def list_users(self, odata_filter: str, select: Sequence[str]) -> Page:
        """First page of users matching an OData ``$filter``."""

        params = {"$filter": odata_filter, "$select": ",".join(select)}
        # signInActivity filters are advanced queries.
        headers = {"ConsistencyLevel": "eventual"}
        return Page.from_payload(self._request("GET", "/users", params=params, headers=headers))

    def list_group_members(
        self, group_id: str, top: int = 999, select: Sequence[str] = ("id",)
    ) -> Page:
        params = {"$top": str(top), "$select": ",".join(select)}
        return Page.from_payload(
            self._request("GET", f"/groups/{group_id}/members", params=params)
        )

    def get_page(self, next_link: str) -> Page:
        """Follow an ``@odata.nextLink`` cursor."""

        return Page.from_payload(self._request("GET", next_link))

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #
    def submit_batch(self, requests_: Sequence[BatchRequest]) -> List[Dict[str, Any]]:
        """POST up to 20 operations as one ``$batch`` call.

        Returns the raw per-operation responses (``id``, ``status``, ``body``).
        """

        if not requests_:
            return []
        if len(requests_) > MAX_BATCH_SIZE:
            raise ValueError(
                f"A batch accepts at most {MAX_BATCH_SIZE} operations, got {len(requests_)}."
            )
        payload = {"requests": [request.to_dict() for request in requests_]}
        result = self._request("POST", "/$batch", json=payload)
        return list(result.get("responses") or [])

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "DirectoryClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()


def delete_user_request(request_id: str, user_id: str) -> BatchRequest:
    return BatchRequest(id=request_id, method="DELETE", url=f"/users/{user_id}")


__all__ = [
    "BatchRequest",
    "DirectoryClient",
    "DirectoryClientError",
    "DirectoryGraphError",
    "Page",
    "delete_user_request",
]
