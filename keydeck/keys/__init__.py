"""KeyDeck key-management package.

Re-exports the public API for ergonomic imports:

    from keydeck.keys import KeyRecord, KeyStore, KeySetController

Layout:
    models.py         — KeyRecord, KeyDraft, KeyPatch, OperationResult, masking
    errors.py         — StoreError taxonomy + classify_store_error()
    schema.py         — slim/rich SchemaMapping, row <-> record conversion
    generator.py      — generate_secret() ("tvly-" + 32 base-36 chars)
    protocol.py       — KeyStore Protocol + InMemoryKeyStore
    supabase_store.py — SupabaseKeyStore (async client, bounded list timeout)
    sqlite_store.py   — LocalSQLiteKeyStore (aiosqlite, development store)
    factory.py        — create_key_store() — backend selection by config
    controller.py     — KeySetController (load/create/update/delete)
    validation.py     — validate_candidate()
"""

from keydeck.keys.controller import KeySetController
from keydeck.keys.errors import (
    AuthError,
    ConnectivityError,
    NotFoundError,
    SchemaError,
    StoreError,
    classify_store_error,
)
from keydeck.keys.generator import generate_secret
from keydeck.keys.models import (
    ControllerState,
    KeyDraft,
    KeyPatch,
    KeyRecord,
    KeySetSnapshot,
    OperationResult,
    PermissionType,
    ValidationResult,
    mask_secret,
)
from keydeck.keys.protocol import InMemoryKeyStore, KeyStore
from keydeck.keys.validation import validate_candidate

__all__ = [
    # Type aliases
    "ControllerState",
    "PermissionType",
    # Dataclasses
    "KeyDraft",
    "KeyPatch",
    "KeyRecord",
    "KeySetSnapshot",
    "OperationResult",
    "ValidationResult",
    # Errors
    "AuthError",
    "ConnectivityError",
    "NotFoundError",
    "SchemaError",
    "StoreError",
    "classify_store_error",
    # Protocol + implementations
    "InMemoryKeyStore",
    "KeyStore",
    # Operations
    "KeySetController",
    "generate_secret",
    "mask_secret",
    "validate_candidate",
]
