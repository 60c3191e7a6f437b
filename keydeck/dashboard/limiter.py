"""Shared rate limiter for the key-management endpoints.

Uses slowapi (Starlette-compatible rate limiting) to cap mutating key
operations. Dashboard requests are localhost-only (DashboardLocalhostMiddleware),
so this works as a global cap rather than a per-user one.

The Limiter instance is shared between:
  - keydeck/dashboard/api.py  (route decorators)
  - keydeck/main.py           (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Applies to create / edit / delete / refresh / connection test
KEY_MANAGEMENT_RATE_LIMIT = "20/minute"
