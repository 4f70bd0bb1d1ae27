"""Tests for the REST client wrapper (sync/client.py)."""

from __future__ import annotations

import json

import httpx
import pytest

from dev_tracker.sync.client import ApiError, TrackerApiClient


def _client(handler) -> TrackerApiClient:
    return TrackerApiClient("http://tracker.test/api/", transport=httpx.MockTransport(handler))


def test_list_developers() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        return httpx.Response(200, json=[{"id": 1, "name": "Jane"}])

    with _client(handler) as client:
        assert client.list_developers() == [{"id": 1, "name": "Jane"}]
    assert seen == ["GET /api/developers"]


def test_create_sends_json_body() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"id": 5, **bodies[-1]})

    with _client(handler) as client:
        created = client.create_backlog_item({"task": "Docs", "priority": "low", "estimated_hours": 2})
    assert created["id"] == 5
    assert bodies == [{"task": "Docs", "priority": "low", "estimated_hours": 2}]


def test_delete_returns_none_on_204() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        assert request.url.path == "/api/backlog/3"
        return httpx.Response(204)

    with _client(handler) as client:
        assert client.delete_backlog_item(3) is None


def test_chat_key_is_quoted() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.raw_path.decode())
        return httpx.Response(200, json=[])

    with _client(handler) as client:
        assert client.get_chat_thread("1-quickFix") == []
        client.get_chat_thread("odd/key")
    assert paths == ["/api/chat-threads/1-quickFix", "/api/chat-threads/odd%2Fkey"]


def test_http_error_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"detail": "boom"})

    with _client(handler) as client:
        with pytest.raises(ApiError, match="status: 500") as exc_info:
            client.update_developer(1, {"done": 3})
    assert exc_info.value.status_code == 500


def test_transport_error_raises_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            client.health()
    assert exc_info.value.status_code is None
