"""Health endpoint for KeyDeck.

  GET /health — 503 before ``app.state.ready`` is set by the lifespan,
                200 with the store and key-set status afterwards.

Polled by container health probes and the dashboard status indicator.
The endpoint never calls the store itself; use POST
/dashboard/api/connection-test for a live probe.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from keydeck.session import DashboardSession

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Primary health check.

    Response body (200):
        {
          "status": "ok" | "degraded",
          "store_backend": "supabase" | "sqlite",
          "key_set": "idle" | "loading" | "ready" | "failed",
          "key_count": 3,
          "error": null | "Failed to load API keys: ..."
        }

    "degraded" means the service is up but the last key load failed.
    """
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(
            status_code=503,
            detail={
                "status": "starting",
                "message": "KeyDeck is starting up. Connecting to the key store...",
            },
        )

    session: DashboardSession = request.app.state.session
    snapshot = session.controller.snapshot()
    return {
        "status": "degraded" if snapshot.state == "failed" else "ok",
        "store_backend": session.config.store.backend,
        "key_set": snapshot.state,
        "key_count": len(snapshot.records),
        "error": snapshot.error,
    }
