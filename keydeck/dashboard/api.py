"""Dashboard API endpoints for key management.

All endpoints are unauthenticated (localhost binding is the security boundary,
enforced by DashboardLocalhostMiddleware). Every handler goes through the
KeySetController held on ``app.state.session``.

Routes (prefixed with /dashboard/api in main.py):
    GET    /keys               — controller state + masked key list
    POST   /keys/refresh       — reload the list from the store
    POST   /keys               — create a key (secret generated server-side)
    PATCH  /keys/{key_id}      — edit name / permissions
    DELETE /keys/{key_id}      — delete; requires ?confirm=true
    GET    /keys/{key_id}/secret — reveal the full secret (copy to clipboard)
    POST   /connection-test    — probe the store
    DELETE /error              — dismiss the current error message
    GET    /validate?apikey=   — validate a candidate key

Failed operations return ``{"ok": false, "message": ..., "error_kind": ...}``
with a status derived from the error kind; the list is left unchanged.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from keydeck.constants import DEFAULT_MONTHLY_LIMIT
from keydeck.dashboard.limiter import KEY_MANAGEMENT_RATE_LIMIT, limiter
from keydeck.keys.controller import KeySetController
from keydeck.keys.models import KeyDraft, KeyPatch, OperationResult
from keydeck.keys.validation import validate_candidate
from keydeck.session import DashboardSession
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["api-keys"])

# error_kind → HTTP status for failed OperationResults
_ERROR_STATUS: dict[str, int] = {
    "ValueError": 400,
    "NotFoundError": 404,
    "ConnectivityError": 504,
    "AuthError": 502,
    "SchemaError": 502,
    "StoreError": 502,
}


# ─── Request Models ───────────────────────────────────────────────────────────


class CreateKeyRequest(BaseModel):
    """Request body for POST /dashboard/api/keys.

    No secret field: the secret is always generated server-side.
    description / limit_usage / monthly_limit are only persisted by the rich
    table shape.
    """

    name: str
    permissions: str = "read"
    description: str = ""
    limit_usage: bool = False
    monthly_limit: int = Field(default=DEFAULT_MONTHLY_LIMIT, ge=0)


class UpdateKeyRequest(BaseModel):
    """Request body for PATCH /dashboard/api/keys/{key_id}. Omitted fields are unchanged."""

    name: Optional[str] = None
    permissions: Optional[str] = None


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _session(request: Request) -> DashboardSession:
    """Return the live session or raise HTTP 503 while starting up."""
    session: Optional[DashboardSession] = getattr(request.app.state, "session", None)
    if session is None or not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={"status": "starting", "message": "KeyDeck is starting up"},
        )
    return session


def _controller(request: Request) -> KeySetController:
    return _session(request).controller


def _result_body(result: OperationResult) -> dict[str, Any]:
    body: dict[str, Any] = {"ok": result.ok, "message": result.message}
    if result.error_kind is not None:
        body["error_kind"] = result.error_kind
    return body


def _failure(result: OperationResult) -> JSONResponse:
    status = _ERROR_STATUS.get(result.error_kind or "StoreError", 502)
    return JSONResponse(status_code=status, content=_result_body(result))


def _list_body(controller: KeySetController) -> dict[str, Any]:
    snapshot = controller.snapshot()
    return {
        "state": snapshot.state,
        "error": snapshot.error,
        "keys": [record.to_display() for record in snapshot.records],
    }


# ─── Key list ─────────────────────────────────────────────────────────────────


@router.get("/keys")
async def get_keys(request: Request) -> dict:
    """Current controller state and the masked key list, newest first."""
    return _list_body(_controller(request))


@router.post("/keys/refresh", response_model=None)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def refresh_keys(request: Request) -> Union[dict, JSONResponse]:
    """Re-fetch the full list from the store."""
    controller = _controller(request)
    result = await controller.load()
    if not result.ok:
        return _failure(result)
    return {**_result_body(result), **_list_body(controller)}


# ─── Mutations ────────────────────────────────────────────────────────────────


@router.post("/keys", status_code=201, response_model=None)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def create_key(body: CreateKeyRequest, request: Request) -> Union[dict, JSONResponse]:
    """Create a key. The response carries the full secret so it can be copied once."""
    draft = KeyDraft(
        name=body.name,
        permissions=body.permissions,  # type: ignore[arg-type]
        description=body.description,
        limit_usage=body.limit_usage,
        monthly_limit=body.monthly_limit,
    )
    result = await _controller(request).create_key(draft)
    if not result.ok or result.record is None:
        return _failure(result)
    return {**_result_body(result), "key": result.record.to_display(reveal=True)}


@router.patch("/keys/{key_id}", response_model=None)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def update_key(
    key_id: str, body: UpdateKeyRequest, request: Request
) -> Union[dict, JSONResponse]:
    """Edit name and/or permissions of an existing key."""
    patch = KeyPatch(name=body.name, permissions=body.permissions)
    result = await _controller(request).update_key(key_id, patch)
    if not result.ok or result.record is None:
        return _failure(result)
    return {**_result_body(result), "key": result.record.to_display()}


@router.delete("/keys/{key_id}", response_model=None)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def delete_key(
    key_id: str, request: Request, confirm: bool = False
) -> Union[dict, JSONResponse]:
    """Delete a key. The caller must pass confirm=true after asking the user."""
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Deletion must be confirmed: repeat the request with ?confirm=true",
        )
    result = await _controller(request).delete_key(key_id)
    if not result.ok:
        return _failure(result)
    return _result_body(result)


# ─── Secret reveal ────────────────────────────────────────────────────────────


@router.get("/keys/{key_id}/secret")
async def reveal_secret(key_id: str, request: Request) -> dict:
    """Full secret of a loaded key, for the reveal / copy-to-clipboard action."""
    record = _controller(request).get(key_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"API key '{key_id}' not found")
    logger.info("api_key_secret_revealed", key_id=key_id)
    return {"id": record.id, "secret": record.secret}


# ─── Connection test / error banner ───────────────────────────────────────────


@router.post("/connection-test", response_model=None)
@limiter.limit(KEY_MANAGEMENT_RATE_LIMIT)
async def connection_test(request: Request) -> Union[dict, JSONResponse]:
    result = await _controller(request).test_connection()
    if not result.ok:
        return _failure(result)
    return _result_body(result)


@router.delete("/error")
async def dismiss_error(request: Request) -> dict:
    _controller(request).dismiss_error()
    return {"ok": True}


# ─── Validation playground ────────────────────────────────────────────────────


@router.get("/validate")
async def validate_key(request: Request, apikey: Optional[str] = None) -> dict:
    """Check a candidate key against the loaded list.

    Always HTTP 200; the verdict is in ``status`` ("valid" | "invalid").
    """
    session = _session(request)
    result = await validate_candidate(
        apikey,
        session.controller.records,
        delay_s=session.validation_delay_s,
    )
    return {
        "status": result.status,
        "valid": result.is_valid,
        "message": result.message,
        "key": result.record.to_display() if result.record is not None else None,
    }
