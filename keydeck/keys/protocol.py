"""KeyStore Protocol + InMemoryKeyStore.

The data access layer interface. Implementations:
    SupabaseKeyStore     (keys/supabase_store.py) — hosted table, production
    LocalSQLiteKeyStore  (keys/sqlite_store.py)   — local development table
    InMemoryKeyStore     (below)                  — tests and demos

Every method returns/accepts canonical types; raw rows never leave the store.
Failures are raised as StoreError subclasses (keys/errors.py).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

from keydeck.keys.errors import NotFoundError, StoreError
from keydeck.keys.models import KeyDraft, KeyPatch, KeyRecord, require_valid_draft
from keydeck.keys.schema import SLIM, SchemaMapping, draft_to_row, patch_to_row, row_to_record
from keydeck.utils.logger import get_logger
from keydeck.utils.ulid import generate_ulid

logger = get_logger(__name__)


# ─── KeyStore Protocol ────────────────────────────────────────────────────────


@runtime_checkable
class KeyStore(Protocol):
    """Pluggable Record Store interface.

    Selection via create_key_store() (keys/factory.py).
    """

    async def initialize(self) -> None:
        """Open clients/connections. Raises on unrecoverable setup errors."""
        ...

    async def list_all(self) -> list[KeyRecord]:
        """All records, newest first. Bounded by the store timeout."""
        ...

    async def create(self, draft: KeyDraft) -> KeyRecord:
        """Insert a record and return it with store-assigned id/created_at."""
        ...

    async def update(self, key_id: str, patch: KeyPatch) -> KeyRecord:
        """Write name/permissions only and return the updated record."""
        ...

    async def delete(self, key_id: str) -> None:
        """Remove a record. Unknown id → StoreError."""
        ...

    async def probe(self) -> None:
        """Lightweight existence check. Returns None when reachable, raises otherwise."""
        ...

    async def close(self) -> None:
        """Release resources. Called during graceful shutdown."""
        ...


# ─── InMemoryKeyStore ────────────────────────────────────────────────────────


class InMemoryKeyStore:
    """Dict-backed KeyStore holding raw rows in a given schema shape.

    Rows go through the same schema mapping as the remote stores so tests
    exercise the real conversion path. Set ``fail_with`` to make every
    subsequent call raise that StoreError.
    """

    def __init__(self, mapping: SchemaMapping = SLIM, rows: Optional[list[dict[str, Any]]] = None) -> None:
        self.mapping = mapping
        self.rows: list[dict[str, Any]] = list(rows or [])
        self.fail_with: Optional[StoreError] = None
        self.calls: list[str] = []

    def _enter(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with is not None:
            raise self.fail_with

    def _find(self, key_id: str) -> dict[str, Any]:
        for row in self.rows:
            if str(row[self.mapping.id]) == key_id:
                return row
        raise NotFoundError(f"API key '{key_id}' not found")

    async def initialize(self) -> None:
        logger.debug("in_memory_key_store_initialized", variant=self.mapping.variant)

    async def list_all(self) -> list[KeyRecord]:
        self._enter("list_all")
        ordered = sorted(
            self.rows,
            key=lambda r: str(r.get(self.mapping.created_at) or ""),
            reverse=True,
        )
        return [row_to_record(row, self.mapping) for row in ordered]

    async def create(self, draft: KeyDraft) -> KeyRecord:
        self._enter("create")
        require_valid_draft(draft)
        row = draft_to_row(draft, self.mapping)
        now = datetime.now(timezone.utc).isoformat()
        row[self.mapping.id] = generate_ulid()
        row[self.mapping.created_at] = now
        if self.mapping.updated_at:
            row[self.mapping.updated_at] = now
        self.rows.append(row)
        return row_to_record(row, self.mapping)

    async def update(self, key_id: str, patch: KeyPatch) -> KeyRecord:
        self._enter("update")
        row = self._find(key_id)
        row.update(patch_to_row(patch, self.mapping))
        return row_to_record(row, self.mapping)

    async def delete(self, key_id: str) -> None:
        self._enter("delete")
        row = self._find(key_id)
        self.rows.remove(row)

    async def probe(self) -> None:
        self._enter("probe")

    async def close(self) -> None:
        logger.debug("in_memory_key_store_closed")


assert isinstance(InMemoryKeyStore(), KeyStore), (
    "InMemoryKeyStore does not satisfy KeyStore protocol — implementation error"
)
