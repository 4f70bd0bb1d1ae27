"""Thin REST client for the tracker persistence API.

Every call logs and re-raises failures as :class:`ApiError`; callers decide
whether a failure matters.  Payloads are in the snake_case persistence shape
(see :mod:`dev_tracker.sync.transform`).
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from ..constants import DEFAULT_API_BASE_URL


class ApiError(RuntimeError):
    """A REST call failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TrackerApiClient:
    """Synchronous wrapper around the ``/api`` endpoints.

    Args:
        base_url: API root, e.g. ``http://localhost:5000/api``.
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TrackerApiClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _call(self, method: str, endpoint: str, payload: Optional[dict[str, Any]] = None) -> Any:
        try:
            response = self._http.request(method, endpoint, json=payload)
        except httpx.HTTPError as exc:
            logger.error("API call failed: {} {}: {}", method, endpoint, exc)
            raise ApiError(f"{method} {endpoint} failed: {exc}") from exc
        if response.is_error:
            logger.error("API call failed: {} {} -> HTTP {}", method, endpoint, response.status_code)
            raise ApiError(f"HTTP error! status: {response.status_code}", status_code=response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # -- developers -----------------------------------------------------

    def list_developers(self) -> list[dict[str, Any]]:
        return self._call("GET", "/developers") or []

    def create_developer(self, developer: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/developers", developer)

    def update_developer(self, developer_id: int, developer: dict[str, Any]) -> dict[str, Any]:
        return self._call("PUT", f"/developers/{developer_id}", developer)

    # -- backlog --------------------------------------------------------

    def list_backlog(self) -> list[dict[str, Any]]:
        return self._call("GET", "/backlog") or []

    def create_backlog_item(self, item: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/backlog", item)

    def delete_backlog_item(self, backlog_id: int) -> None:
        self._call("DELETE", f"/backlog/{backlog_id}")

    # -- activity log ---------------------------------------------------

    def list_activity_log(self) -> list[dict[str, Any]]:
        return self._call("GET", "/activity-log") or []

    def create_activity_entry(self, entry: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/activity-log", entry)

    # -- chat threads ---------------------------------------------------

    def get_chat_thread(self, chat_key: str) -> list[dict[str, Any]]:
        return self._call("GET", f"/chat-threads/{quote(chat_key, safe='')}") or []

    def create_chat_message(self, message: dict[str, Any]) -> dict[str, Any]:
        return self._call("POST", "/chat-threads", message)

    def health(self) -> dict[str, Any]:
        return self._call("GET", "/health")
