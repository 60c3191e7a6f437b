"""HTTP middleware for KeyDeck.

DashboardLocalhostMiddleware
    Restricts /dashboard/* to loopback clients (127.0.0.1, ::1). The dashboard
    has no login of its own and hands out full key secrets on request, so the
    loopback check holds even when server.host is set to 0.0.0.0. Returns 403
    otherwise. Disable with KEYDECK_DASHBOARD_LOCALHOST_ONLY=false (tests only).

RequestIdMiddleware
    Binds a ULID request id into the structlog context for the lifetime of a
    request and echoes it back as the X-Request-ID response header.
"""

from __future__ import annotations

import os

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from keydeck.utils.logger import clear_request_id, get_logger, set_request_id
from keydeck.utils.ulid import generate_ulid

logger = get_logger(__name__)

_LOOPBACK_HOSTS: frozenset[str] = frozenset({"127.0.0.1", "::1", "localhost"})

_DASHBOARD_PREFIX = "/dashboard"

REQUEST_ID_HEADER = "X-Request-ID"

_FORBIDDEN_BODY: dict = {
    "error": {
        "message": "Dashboard access is restricted to localhost",
        "code": "forbidden",
    }
}


def _localhost_check_enabled() -> bool:
    """Return True unless KEYDECK_DASHBOARD_LOCALHOST_ONLY=false."""
    return os.environ.get("KEYDECK_DASHBOARD_LOCALHOST_ONLY", "true").lower() != "false"


class DashboardLocalhostMiddleware(BaseHTTPMiddleware):
    """Reject non-loopback /dashboard/* requests with HTTP 403."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        if not request.url.path.startswith(_DASHBOARD_PREFIX):
            return await call_next(request)

        if not _localhost_check_enabled():
            return await call_next(request)

        client_host = request.client.host if request.client else None
        if client_host not in _LOOPBACK_HOSTS:
            logger.warning(
                "dashboard_access_denied",
                client_host=client_host,
                path=request.url.path,
            )
            return JSONResponse(status_code=403, content=_FORBIDDEN_BODY)

        return await call_next(request)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a ULID for log correlation."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()
        set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
