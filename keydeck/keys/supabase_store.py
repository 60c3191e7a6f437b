"""SupabaseKeyStore — the hosted Record Store.

Talks to the ``api_keys`` table through supabase-py's async client
(PostgREST). Failures are classified into the StoreError taxonomy and
re-raised; nothing is swallowed and nothing is retried.

Timeouts:
  - list_all() and probe() are wrapped in asyncio.wait_for(timeout_s)
    (10 s default) and surface as ConnectivityError when exceeded.
  - create/update/delete carry no timeout of their own.

Schema drift:
  store.schema = "slim" | "rich" pins the mapping. "auto" resolves it once —
  from the first listed row, or, on an empty table, by selecting the rich
  permission column and falling back to slim when PostgREST reports it absent.

Environment:
  SUPABASE_URL       — project URL
  SUPABASE_ANON_KEY  — anonymous API key (requests run under Row Level Security)
"""

from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional

from supabase import AsyncClient, create_async_client

from keydeck.constants import DEFAULT_TABLE_NAME, LIST_TIMEOUT_S
from keydeck.keys.errors import NotFoundError, SchemaError, StoreError, classify_store_error
from keydeck.keys.models import KeyDraft, KeyPatch, KeyRecord, require_valid_draft
from keydeck.keys.schema import (
    MAPPINGS,
    RICH,
    SLIM,
    SchemaMapping,
    detect_variant,
    draft_to_row,
    patch_to_row,
    row_to_record,
)
from keydeck.utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)


class SupabaseKeyStore:
    """Async Supabase implementation of the KeyStore protocol.

    Usage:
        store = SupabaseKeyStore(url="https://...", key="anon-key")
        await store.initialize()
        records = await store.list_all()
        await store.close()
    """

    def __init__(
        self,
        url: str,
        key: str,
        table_name: str = DEFAULT_TABLE_NAME,
        schema: str = "auto",
        columns: Optional[Mapping[str, str]] = None,
        timeout_s: float = LIST_TIMEOUT_S,
    ) -> None:
        self._url = url
        self._key = key
        self._table_name = table_name
        self._timeout_s = timeout_s
        self._client: Optional[AsyncClient] = None

        overrides = dict(columns or {})
        self._slim = SLIM.with_overrides(overrides)
        self._rich = RICH.with_overrides(overrides)
        self._mapping: Optional[SchemaMapping] = (
            MAPPINGS[schema].with_overrides(overrides) if schema in MAPPINGS else None
        )

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Create the async Supabase client. Raises StoreError if it cannot be built."""
        try:
            self._client = await asyncio.wait_for(
                create_async_client(self._url, self._key),
                timeout=self._timeout_s,
            )
        except Exception as exc:
            err = classify_store_error(exc, timeout_s=self._timeout_s)
            logger.error(
                "supabase_store_init_failed",
                error=err.message,
                error_type=type(err).__name__,
            )
            raise err from exc
        logger.info(
            "supabase_store_initialized",
            table=self._table_name,
            schema=self._mapping.variant if self._mapping else "auto",
            timeout_s=self._timeout_s,
        )

    async def close(self) -> None:
        """Drop the client (HTTP clients are stateless per request)."""
        self._client = None
        logger.debug("supabase_store_closed")

    @property
    def mapping(self) -> Optional[SchemaMapping]:
        """Resolved schema mapping, or None while "auto" is still unresolved."""
        return self._mapping

    # ── KeyStore Protocol Methods ─────────────────────────────────────────────

    async def list_all(self) -> list[KeyRecord]:
        """All rows ordered by created_at DESC, bounded by timeout_s."""
        created_col = (self._mapping or self._slim).created_at
        with PerformanceLogger("store_list_all", logger):
            response = await self._execute(
                self._table().select("*").order(created_col, desc=True),
                op="list_all",
                timeout_s=self._timeout_s,
            )
        rows: list[dict[str, Any]] = response.data or []
        mapping = await self._resolve_mapping(rows[0] if rows else None)
        return [row_to_record(row, mapping) for row in rows]

    async def create(self, draft: KeyDraft) -> KeyRecord:
        """Insert one row and return it as stored.

        Raises:
            ValueError: On an empty name or missing secret (caller precondition).
            StoreError: On a remote error or when zero rows come back.
        """
        require_valid_draft(draft)
        mapping = await self._resolve_mapping()
        response = await self._execute(
            self._table().insert(draft_to_row(draft, mapping)),
            op="create",
        )
        if not response.data:
            logger.error("supabase_create_empty_response", table=self._table_name)
            raise StoreError("No data returned from database")
        record = row_to_record(response.data[0], mapping)
        logger.info("api_key_stored", key_id=record.id, permissions=record.permissions)
        return record

    async def update(self, key_id: str, patch: KeyPatch) -> KeyRecord:
        """Write name/permissions for one id and return the updated row.

        Raises:
            ValueError: If the patch carries nothing to write.
            NotFoundError: If no row matched key_id.
        """
        mapping = await self._resolve_mapping()
        payload = patch_to_row(patch, mapping)
        if not payload:
            raise ValueError("Nothing to update: patch has neither name nor permissions")
        response = await self._execute(
            self._table().update(payload).eq(mapping.id, key_id),
            op="update",
        )
        if not response.data:
            raise NotFoundError(f"API key '{key_id}' not found")
        return row_to_record(response.data[0], mapping)

    async def delete(self, key_id: str) -> None:
        """Delete one row by id. Zero deleted rows is reported as NotFoundError."""
        id_col = (self._mapping or self._slim).id
        response = await self._execute(
            self._table().delete().eq(id_col, key_id),
            op="delete",
        )
        if not response.data:
            raise NotFoundError(f"API key '{key_id}' not found")
        logger.info("api_key_removed", key_id=key_id)

    async def probe(self) -> None:
        """Head-style count query. Returns when the table answers, raises otherwise."""
        id_col = (self._mapping or self._slim).id
        await self._execute(
            self._table().select(id_col, count="exact").limit(1),
            op="probe",
            timeout_s=self._timeout_s,
        )

    # ── Internals ─────────────────────────────────────────────────────────────

    def _table(self) -> Any:
        if self._client is None:
            raise StoreError("Key store is not initialized")
        return self._client.table(self._table_name)

    async def _execute(self, query: Any, op: str, timeout_s: Optional[float] = None) -> Any:
        """Run a PostgREST query, classifying any failure."""
        try:
            if timeout_s is not None:
                return await asyncio.wait_for(query.execute(), timeout=timeout_s)
            return await query.execute()
        except Exception as exc:
            err = classify_store_error(exc, timeout_s=timeout_s)
            logger.error(
                f"supabase_{op}_failed",
                error=err.message,
                error_type=type(err).__name__,
                code=err.code,
            )
            raise err from exc

    async def _resolve_mapping(self, sample: Optional[Mapping[str, Any]] = None) -> SchemaMapping:
        """Settle slim vs rich once; later calls return the cached mapping."""
        if self._mapping is not None:
            return self._mapping
        if sample is not None:
            variant = detect_variant(sample, self._rich)
        else:
            try:
                await self._execute(
                    self._table().select(self._rich.permissions).limit(1),
                    op="schema_check",
                    timeout_s=self._timeout_s,
                )
                variant = "rich"
            except SchemaError as exc:
                # A missing table stays unresolved so the next call asks again
                if not exc.missing_column:
                    raise
                variant = "slim"
        self._mapping = self._rich if variant == "rich" else self._slim
        logger.info("store_schema_resolved", variant=variant, table=self._table_name)
        return self._mapping
