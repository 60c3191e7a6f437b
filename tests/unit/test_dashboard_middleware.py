"""Tests for DashboardLocalhostMiddleware and RequestIdMiddleware."""

from __future__ import annotations

import re

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from keydeck.dashboard.middleware import (
    REQUEST_ID_HEADER,
    DashboardLocalhostMiddleware,
    RequestIdMiddleware,
)
from keydeck.utils.logger import request_id_var

ULID_PATTERN = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def _make_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(DashboardLocalhostMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.get("/dashboard/api/keys")
    async def keys():
        return {"request_id": request_id_var.get()}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def _client(host: str) -> AsyncClient:
    transport = ASGITransport(app=_make_app(), client=(host, 9999))
    return AsyncClient(transport=transport, base_url="http://test")


class TestDashboardLocalhostMiddleware:

    @pytest.fixture(autouse=True)
    def enable_localhost_check(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Re-enable the check (conftest disables it for every test)."""
        monkeypatch.setenv("KEYDECK_DASHBOARD_LOCALHOST_ONLY", "true")

    @pytest.mark.parametrize("host", ["127.0.0.1", "::1"])
    async def test_loopback_allowed(self, host: str) -> None:
        async with _client(host) as client:
            response = await client.get("/dashboard/api/keys")
        assert response.status_code == 200

    @pytest.mark.parametrize("host", ["192.168.1.100", "8.8.8.8", "10.0.0.5"])
    async def test_non_loopback_blocked(self, host: str) -> None:
        async with _client(host) as client:
            response = await client.get("/dashboard/api/keys")
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "forbidden"

    async def test_non_dashboard_paths_unaffected(self) -> None:
        async with _client("192.168.1.100") as client:
            response = await client.get("/health")
        assert response.status_code == 200


class TestLocalhostCheckDisabled:

    async def test_env_false_allows_any_host(self) -> None:
        # conftest sets KEYDECK_DASHBOARD_LOCALHOST_ONLY=false
        async with _client("192.168.1.100") as client:
            response = await client.get("/dashboard/api/keys")
        assert response.status_code == 200


class TestRequestIdMiddleware:

    async def test_generates_ulid_header(self) -> None:
        async with _client("127.0.0.1") as client:
            response = await client.get("/health")
        assert ULID_PATTERN.match(response.headers[REQUEST_ID_HEADER])

    async def test_request_id_visible_to_handler(self) -> None:
        async with _client("127.0.0.1") as client:
            response = await client.get("/dashboard/api/keys")
        assert response.json()["request_id"] == response.headers[REQUEST_ID_HEADER]

    async def test_incoming_header_reused(self) -> None:
        async with _client("127.0.0.1") as client:
            response = await client.get("/health", headers={REQUEST_ID_HEADER: "trace-123"})
        assert response.headers[REQUEST_ID_HEADER] == "trace-123"

    async def test_distinct_per_request(self) -> None:
        async with _client("127.0.0.1") as client:
            first = await client.get("/health")
            second = await client.get("/health")
        assert first.headers[REQUEST_ID_HEADER] != second.headers[REQUEST_ID_HEADER]
