"""Record Store error taxonomy.

    StoreError              any remote fault; original message attached
      ConnectivityError     timeout / unreachable store
      AuthError             credentials rejected
      SchemaError           table or columns absent

The data access layer raises these (via classify_store_error()); the
controller catches StoreError at its operation boundary and turns it into a
single display string. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

import httpx


class StoreError(Exception):
    """Generic Record Store failure. HTTP mapping: 502 Bad Gateway."""

    status_code: int = 502

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def user_message(self) -> str:
        return f"Database error: {self.message}"


class ConnectivityError(StoreError):
    """Store unreachable or round trip exceeded the bounded timeout. HTTP 504."""

    status_code = 504

    @property
    def user_message(self) -> str:
        return f"Could not reach the key store: {self.message}"


class AuthError(StoreError):
    """Store rejected the configured credentials. HTTP 502."""

    @property
    def user_message(self) -> str:
        return (
            "Invalid Supabase credentials or permission denied. "
            "Check SUPABASE_URL / SUPABASE_ANON_KEY and Row Level Security policies."
        )


class SchemaError(StoreError):
    """Table or columns are missing from the store. HTTP 502."""

    @property
    def user_message(self) -> str:
        return f"Key table is missing or has unexpected columns: {self.message}"

    @property
    def missing_column(self) -> bool:
        """True when the table exists but a referenced column does not."""
        if self.code in _MISSING_COLUMN_CODES:
            return True
        if self.code in _SCHEMA_CODES:
            return False
        return bool(_MISSING_COLUMN_RE.search(self.message))


class NotFoundError(StoreError):
    """No row matched the requested id. Folded into StoreError; HTTP 404."""

    status_code = 404


# ─── PostgREST / Postgres codes ───────────────────────────────────────────────

_SCHEMA_CODES: frozenset[str] = frozenset({
    "42P01",     # undefined_table
    "42703",     # undefined_column
    "PGRST116",  # reported by supabase-js when the table is absent
    "PGRST204",  # column not found in schema cache
    "PGRST205",  # table not found in schema cache
})

_AUTH_CODES: frozenset[str] = frozenset({
    "28000",     # invalid_authorization_specification (unknown role)
    "28P01",     # invalid_password
    "42501",     # insufficient_privilege (RLS)
    "PGRST301",  # JWT invalid
    "PGRST302",  # anonymous access disabled
})

# Table present, column absent
_MISSING_COLUMN_CODES: frozenset[str] = frozenset({"42703", "PGRST204"})

_AUTH_MARKERS = ("JWT", "Invalid API key", "No API key found")
_SCHEMA_MARKERS = ("no such table", "no such column")

# Postgres "... does not exist" is a schema fault only for tables and columns
_MISSING_OBJECT_RE = re.compile(r"\b(relation|table|column)\b.*\bdoes not exist\b")
_MISSING_COLUMN_RE = re.compile(r"no such column|\bcolumn\b.*\bdoes not exist\b")


def classify_store_error(exc: BaseException, *, timeout_s: Optional[float] = None) -> StoreError:
    """Map a raw client/driver exception onto the StoreError taxonomy.

    Works by duck typing on ``code`` / ``message`` so it covers postgrest
    APIError, httpx errors and aiosqlite/sqlite3 errors alike.
    """
    if isinstance(exc, StoreError):
        return exc

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        if timeout_s is not None:
            return ConnectivityError(f"Request timeout after {timeout_s:g} seconds")
        return ConnectivityError("Request timed out")
    if isinstance(exc, (httpx.ConnectError, httpx.NetworkError, ConnectionError)):
        return ConnectivityError(str(exc) or type(exc).__name__)

    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (401, 403):
        return AuthError(str(exc), code=str(exc.response.status_code))

    code = getattr(exc, "code", None)
    code = str(code) if code is not None else None
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    message = str(message)

    if code in _SCHEMA_CODES:
        return SchemaError(message, code=code)
    if code in _AUTH_CODES or any(m in message for m in _AUTH_MARKERS):
        return AuthError(message, code=code)
    if any(m in message for m in _SCHEMA_MARKERS) or _MISSING_OBJECT_RE.search(message):
        return SchemaError(message, code=code)
    return StoreError(message, code=code)
