"""LocalSQLiteKeyStore — aiosqlite-backed development Record Store.

Lets the dashboard run without a hosted project (store.backend: sqlite).
The table is laid out in the same slim or rich shape as the hosted one and
every row goes through keys/schema.py, so the mapping code paths match
production.

  - Long-lived connection: opened in initialize(), closed in close()
  - WAL mode: PRAGMA journal_mode=WAL
  - Fresh file: creates the rich shape (or slim when store.schema: slim)
  - Existing file: the shape is read back from PRAGMA table_info
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import aiosqlite

from keydeck.constants import DEFAULT_TABLE_NAME, LIST_TIMEOUT_S
from keydeck.keys.errors import NotFoundError, StoreError, classify_store_error
from keydeck.keys.models import KeyDraft, KeyPatch, KeyRecord, require_valid_draft
from keydeck.keys.schema import (
    RICH,
    SLIM,
    SchemaMapping,
    detect_variant,
    draft_to_row,
    patch_to_row,
    row_to_record,
)
from keydeck.utils.logger import get_logger
from keydeck.utils.ulid import generate_ulid

logger = get_logger(__name__)


def _create_table_sql(table: str, mapping: SchemaMapping) -> str:
    """CREATE TABLE statement for the given shape."""
    columns = [
        (mapping.id, "TEXT PRIMARY KEY"),
        (mapping.name, "TEXT NOT NULL"),
        (mapping.secret, "TEXT NOT NULL"),
        (mapping.permissions, "TEXT NOT NULL DEFAULT 'read'"),
        (mapping.usage_count, "INTEGER NOT NULL DEFAULT 0"),
        (mapping.created_at, "TEXT NOT NULL"),
        (mapping.updated_at, "TEXT"),
        (mapping.description, "TEXT DEFAULT ''"),
        (mapping.limit_usage, "INTEGER NOT NULL DEFAULT 0"),
        (mapping.monthly_limit, "INTEGER NOT NULL DEFAULT 1000"),
        (mapping.last_used_at, "TEXT"),
    ]
    body = ",\n    ".join(f'"{name}" {ddl}' for name, ddl in columns if name)
    return f'CREATE TABLE IF NOT EXISTS "{table}" (\n    {body}\n);'


class LocalSQLiteKeyStore:
    """Async SQLite implementation of the KeyStore protocol.

    Usage:
        store = LocalSQLiteKeyStore(db_path="/tmp/keys.db")
        await store.initialize()
        record = await store.create(KeyDraft(name="dev", secret="tvly-..."))
        await store.close()
    """

    def __init__(
        self,
        db_path: str = "~/.keydeck/keys.db",
        table_name: str = DEFAULT_TABLE_NAME,
        schema: str = "auto",
        columns: Optional[Mapping[str, str]] = None,
        timeout_s: float = LIST_TIMEOUT_S,
    ) -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._table_name = table_name
        self._schema_mode = schema
        self._timeout_s = timeout_s
        self._db: Optional[aiosqlite.Connection] = None

        overrides = dict(columns or {})
        self._slim = SLIM.with_overrides(overrides)
        self._rich = RICH.with_overrides(overrides)
        self._mapping: Optional[SchemaMapping] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL, and create or read back the table shape."""
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL;")

        existing = await self._existing_columns()
        if existing:
            variant = detect_variant(dict.fromkeys(existing), self._rich)
            if self._schema_mode in ("slim", "rich") and self._schema_mode != variant:
                logger.warning(
                    "sqlite_schema_mismatch",
                    configured=self._schema_mode,
                    found=variant,
                    db_path=self._db_path,
                )
            self._mapping = self._rich if variant == "rich" else self._slim
        else:
            self._mapping = self._slim if self._schema_mode == "slim" else self._rich
            await self._db.execute(_create_table_sql(self._table_name, self._mapping))
            await self._db.commit()
            logger.info(
                "sqlite_key_table_created",
                db_path=self._db_path,
                variant=self._mapping.variant,
            )

        logger.info(
            "sqlite_store_initialized",
            db_path=self._db_path,
            table=self._table_name,
            variant=self._mapping.variant,
        )

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("sqlite_store_closed", db_path=self._db_path)

    @property
    def mapping(self) -> Optional[SchemaMapping]:
        return self._mapping

    # ── KeyStore Protocol Methods ─────────────────────────────────────────────

    async def list_all(self) -> list[KeyRecord]:
        mapping = self._require_mapping()
        sql = f'SELECT * FROM "{self._table_name}" ORDER BY "{mapping.created_at}" DESC'
        rows = await self._run(self._fetchall(sql), op="list_all", timeout_s=self._timeout_s)
        return [row_to_record(row, mapping) for row in rows]

    async def create(self, draft: KeyDraft) -> KeyRecord:
        require_valid_draft(draft)
        mapping = self._require_mapping()
        row = draft_to_row(draft, mapping)
        now = datetime.now(timezone.utc).isoformat()
        row[mapping.id] = generate_ulid()
        row[mapping.created_at] = now
        if mapping.updated_at:
            row[mapping.updated_at] = now

        columns = ", ".join(f'"{c}"' for c in row)
        placeholders = ", ".join("?" for _ in row)
        sql = f'INSERT INTO "{self._table_name}" ({columns}) VALUES ({placeholders})'
        await self._run(self._write(sql, tuple(row.values())), op="create")

        stored = await self._fetch_one(row[mapping.id])
        if stored is None:
            raise StoreError("No data returned from database")
        logger.info("api_key_stored", key_id=row[mapping.id], permissions=row[mapping.permissions])
        return row_to_record(stored, mapping)

    async def update(self, key_id: str, patch: KeyPatch) -> KeyRecord:
        mapping = self._require_mapping()
        payload = patch_to_row(patch, mapping)
        if not payload:
            raise ValueError("Nothing to update: patch has neither name nor permissions")
        assignments = ", ".join(f'"{c}" = ?' for c in payload)
        sql = f'UPDATE "{self._table_name}" SET {assignments} WHERE "{mapping.id}" = ?'
        changed = await self._run(self._write(sql, (*payload.values(), key_id)), op="update")
        if changed == 0:
            raise NotFoundError(f"API key '{key_id}' not found")
        stored = await self._fetch_one(key_id)
        if stored is None:
            raise NotFoundError(f"API key '{key_id}' not found")
        return row_to_record(stored, mapping)

    async def delete(self, key_id: str) -> None:
        mapping = self._require_mapping()
        sql = f'DELETE FROM "{self._table_name}" WHERE "{mapping.id}" = ?'
        changed = await self._run(self._write(sql, (key_id,)), op="delete")
        if changed == 0:
            raise NotFoundError(f"API key '{key_id}' not found")
        logger.info("api_key_removed", key_id=key_id)

    async def probe(self) -> None:
        mapping = self._require_mapping()
        sql = f'SELECT COUNT("{mapping.id}") FROM "{self._table_name}"'
        await self._run(self._fetchall(sql), op="probe", timeout_s=self._timeout_s)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _require_mapping(self) -> SchemaMapping:
        if self._db is None or self._mapping is None:
            raise StoreError("Key store is not initialized")
        return self._mapping

    async def _existing_columns(self) -> list[str]:
        assert self._db is not None
        async with self._db.execute(f'PRAGMA table_info("{self._table_name}")') as cursor:
            rows = await cursor.fetchall()
        return [row["name"] for row in rows]

    async def _fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        assert self._db is not None
        async with self._db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def _fetch_one(self, key_id: str) -> Optional[dict[str, Any]]:
        mapping = self._require_mapping()
        sql = f'SELECT * FROM "{self._table_name}" WHERE "{mapping.id}" = ?'
        rows = await self._run(self._fetchall(sql, (key_id,)), op="fetch_one")
        return rows[0] if rows else None

    async def _write(self, sql: str, params: tuple[Any, ...]) -> int:
        assert self._db is not None
        cursor = await self._db.execute(sql, params)
        await self._db.commit()
        return cursor.rowcount

    async def _run(self, coro: Any, op: str, timeout_s: Optional[float] = None) -> Any:
        """Await a DB coroutine, classifying any failure into the StoreError taxonomy."""
        try:
            if timeout_s is not None:
                return await asyncio.wait_for(coro, timeout=timeout_s)
            return await coro
        except Exception as exc:
            err = classify_store_error(exc, timeout_s=timeout_s)
            logger.error(
                f"sqlite_{op}_failed",
                error=err.message,
                error_type=type(err).__name__,
            )
            raise err from exc
