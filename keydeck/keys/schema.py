"""Remote row ⇄ KeyRecord field mapping.

The hosted table has been deployed in two shapes over time:

    slim:  id, name, key, type, usage, created_at
    rich:  id, name, description, key, permissions, limit_usage,
           monthly_limit, usage_count, last_used_at, created_at, updated_at

Each shape is a SchemaMapping tagged with its variant. The store resolves
which one applies once (from config or from the live table) and every
conversion then goes through the functions below — nothing else in KeyDeck
knows a remote column name.

Absent fields are defaulted, never assumed: a slim row yields a KeyRecord with
description="", limit_usage=False, monthly_limit=1000, last_used_at=None and
updated_at=created_at.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Mapping, Optional

from keydeck.constants import DEFAULT_MONTHLY_LIMIT
from keydeck.keys.models import KeyDraft, KeyPatch, KeyRecord, normalize_permission

SchemaVariant = Literal["slim", "rich"]


@dataclass(frozen=True)
class SchemaMapping:
    """Column name for each canonical field. None means the shape lacks the field."""

    variant: SchemaVariant
    id: str = "id"
    name: str = "name"
    secret: str = "key"
    permissions: str = "type"
    usage_count: str = "usage"
    created_at: str = "created_at"
    updated_at: Optional[str] = None
    description: Optional[str] = None
    limit_usage: Optional[str] = None
    monthly_limit: Optional[str] = None
    last_used_at: Optional[str] = None

    def with_overrides(self, columns: Mapping[str, str]) -> "SchemaMapping":
        """Return a copy with per-deployment column names applied.

        Raises:
            ValueError: If an override names a field KeyRecord does not have.
        """
        if not columns:
            return self
        known = {f.name for f in dataclasses.fields(self)} - {"variant"}
        unknown = sorted(set(columns) - known)
        if unknown:
            raise ValueError(
                f"Unknown field(s) in store.columns: {unknown}. Known fields: {sorted(known)}"
            )
        return dataclasses.replace(self, **dict(columns))


SLIM = SchemaMapping(variant="slim")

RICH = SchemaMapping(
    variant="rich",
    permissions="permissions",
    usage_count="usage_count",
    updated_at="updated_at",
    description="description",
    limit_usage="limit_usage",
    monthly_limit="monthly_limit",
    last_used_at="last_used_at",
)

MAPPINGS: dict[str, SchemaMapping] = {"slim": SLIM, "rich": RICH}


def detect_variant(row: Mapping[str, Any], rich: SchemaMapping = RICH) -> SchemaVariant:
    """Tell the two shapes apart by the rich permission column."""
    return "rich" if rich.permissions in row else "slim"


# ─── Remote → canonical ───────────────────────────────────────────────────────


def row_to_record(row: Mapping[str, Any], mapping: SchemaMapping) -> KeyRecord:
    """Map a raw row onto a KeyRecord, defaulting every absent field."""
    created_at = parse_timestamp(row.get(mapping.created_at))
    updated_at = parse_timestamp(row.get(mapping.updated_at)) if mapping.updated_at else None

    record = KeyRecord(
        id=str(row[mapping.id]),
        name=str(row.get(mapping.name) or ""),
        secret=str(row.get(mapping.secret) or ""),
        permissions=normalize_permission(row.get(mapping.permissions)),
        usage_count=_non_negative_int(row.get(mapping.usage_count)),
        created_at=created_at,
        updated_at=updated_at or created_at,
    )
    if mapping.description:
        record.description = str(row.get(mapping.description) or "")
    if mapping.limit_usage:
        record.limit_usage = bool(row.get(mapping.limit_usage) or False)
    if mapping.monthly_limit:
        raw_limit = row.get(mapping.monthly_limit)
        record.monthly_limit = (
            _non_negative_int(raw_limit) if raw_limit is not None else DEFAULT_MONTHLY_LIMIT
        )
    if mapping.last_used_at:
        record.last_used_at = parse_timestamp(row.get(mapping.last_used_at))
    return record


# ─── Canonical → remote ───────────────────────────────────────────────────────


def draft_to_row(draft: KeyDraft, mapping: SchemaMapping) -> dict[str, Any]:
    """Insert payload for a new key. id and created_at are left to the store."""
    row: dict[str, Any] = {
        mapping.name: draft.name,
        mapping.secret: draft.secret,
        mapping.permissions: normalize_permission(draft.permissions),
        mapping.usage_count: 0,
    }
    if mapping.description:
        row[mapping.description] = draft.description
    if mapping.limit_usage:
        row[mapping.limit_usage] = draft.limit_usage
    if mapping.monthly_limit:
        row[mapping.monthly_limit] = draft.monthly_limit
    return row


def patch_to_row(patch: KeyPatch, mapping: SchemaMapping) -> dict[str, Any]:
    """Update payload. Only name and permissions are ever written."""
    row: dict[str, Any] = {}
    if patch.name is not None:
        row[mapping.name] = patch.name
    if patch.permissions is not None:
        row[mapping.permissions] = normalize_permission(patch.permissions)
    if row and mapping.updated_at:
        row[mapping.updated_at] = datetime.now(timezone.utc).isoformat()
    return row


def record_to_row(record: KeyRecord, mapping: SchemaMapping) -> dict[str, Any]:
    """Full row for a record in the given shape.

    Lossy against SLIM: description, limit_usage, monthly_limit, last_used_at
    and updated_at have no column there and are not emitted.
    """
    row: dict[str, Any] = {
        mapping.id: record.id,
        mapping.name: record.name,
        mapping.secret: record.secret,
        mapping.permissions: record.permissions,
        mapping.usage_count: record.usage_count,
        mapping.created_at: _iso(record.created_at),
    }
    optional = (
        (mapping.updated_at, _iso(record.updated_at)),
        (mapping.description, record.description),
        (mapping.limit_usage, record.limit_usage),
        (mapping.monthly_limit, record.monthly_limit),
        (mapping.last_used_at, _iso(record.last_used_at)),
    )
    for column, value in optional:
        if column:
            row[column] = value
    return row


# ─── Helpers ──────────────────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO 8601 string or datetime → datetime; anything else → None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        # PostgREST may send a trailing "Z"
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _non_negative_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
