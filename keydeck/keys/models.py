"""Canonical key-record types for KeyDeck.

KeyRecord is the only shape the controller and the HTTP layer ever see.
Remote rows are mapped onto it in keydeck/keys/schema.py.

IMPORTANT: KeyRecord.secret is never rendered in full by default —
use mask_secret() / KeyRecord.to_display() for anything user-facing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from keydeck.constants import (
    DEFAULT_MONTHLY_LIMIT,
    DEFAULT_PERMISSION,
    MASK_CHAR,
    MASK_LENGTH,
    MASK_VISIBLE_CHARS,
    VALID_PERMISSIONS,
)

# ─── Type Aliases ─────────────────────────────────────────────────────────────

PermissionType = Literal["read", "write", "admin"]
ControllerState = Literal["idle", "loading", "ready", "failed"]
ValidationStatus = Literal["valid", "invalid"]


def normalize_permission(value: Any) -> PermissionType:
    """Return value if it is one of read/write/admin, else the default ("read")."""
    if isinstance(value, str) and value.strip().lower() in VALID_PERMISSIONS:
        return value.strip().lower()  # type: ignore[return-value]
    return DEFAULT_PERMISSION  # type: ignore[return-value]


def mask_secret(secret: str) -> str:
    """Masked display form: a fixed-length visible prefix then a fixed run of mask chars.

    The output length does not depend on the secret length.
    """
    return f"{secret[:MASK_VISIBLE_CHARS]}{MASK_CHAR * MASK_LENGTH}"


# ─── KeyRecord ────────────────────────────────────────────────────────────────


@dataclass
class KeyRecord:
    """One API key and its metadata, independent of the remote column names.

    Lossy fields: description, limit_usage, monthly_limit and last_used_at are
    only stored by the rich table shape. Against a slim table they carry the
    defaults below and are not written back.
    """

    id: str
    name: str
    secret: str
    permissions: PermissionType = "read"
    usage_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # ── Rich-schema only ───────────────────────────────────────────────────────
    description: str = ""
    limit_usage: bool = False
    monthly_limit: int = DEFAULT_MONTHLY_LIMIT
    last_used_at: Optional[datetime] = None

    @property
    def masked_secret(self) -> str:
        return mask_secret(self.secret)

    def to_display(self, reveal: bool = False) -> dict[str, Any]:
        """Serialise for the dashboard. The secret is masked unless reveal=True."""
        return {
            "id": self.id,
            "name": self.name,
            "secret": self.secret if reveal else self.masked_secret,
            "permissions": self.permissions,
            "usage_count": self.usage_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "description": self.description,
            "limit_usage": self.limit_usage,
            "monthly_limit": self.monthly_limit,
            "last_used_at": _iso(self.last_used_at),
        }


# ─── Inputs ───────────────────────────────────────────────────────────────────


@dataclass
class KeyDraft:
    """A key about to be created. secret is filled in by the controller."""

    name: str
    permissions: PermissionType = "read"
    secret: str = ""
    description: str = ""
    limit_usage: bool = False
    monthly_limit: int = DEFAULT_MONTHLY_LIMIT


def require_valid_draft(draft: KeyDraft) -> None:
    """Raise ValueError unless the draft has a non-empty name and a secret."""
    if not draft.name or not draft.name.strip():
        raise ValueError("Key name must not be empty")
    if not draft.secret:
        raise ValueError("Key secret must be set before create")


@dataclass
class KeyPatch:
    """Editable fields of an existing key. None means "leave unchanged"."""

    name: Optional[str] = None
    permissions: Optional[str] = None

    def is_empty(self) -> bool:
        return self.name is None and self.permissions is None


# ─── Outcomes ─────────────────────────────────────────────────────────────────


@dataclass
class OperationResult:
    """Outcome of a controller operation; callers decide the UI consequence.

    error_kind is the store error class name ("ConnectivityError", ...) on
    failure, None on success.
    """

    ok: bool
    message: str
    record: Optional[KeyRecord] = None
    error_kind: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of checking a candidate string against the loaded key set."""

    status: ValidationStatus
    message: str
    record: Optional[KeyRecord] = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid"


@dataclass
class KeySetSnapshot:
    """Read-only view of the controller for the presentation layer."""

    state: ControllerState
    error: Optional[str]
    records: list[KeyRecord] = field(default_factory=list)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
