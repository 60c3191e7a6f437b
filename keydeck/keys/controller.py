"""Key-Set Controller — session-scoped owner of the in-memory key list.

State machine:

    idle ──load()──▶ loading ──ok──▶ ready
                        └──fail──▶ failed

Mutations are "optimistic after confirm": the local sequence changes only
once the store has accepted the write, so no id-less phantom row is ever
shown. On failure the sequence is left untouched.

Every operation returns an OperationResult and never raises: store faults are
caught at this boundary and turned into one display string, which also
becomes ``error`` until the next operation starts or dismiss_error() is called.

Overlapping calls are not de-duplicated; a second delete of the same id
simply fails with a StoreError once the row is gone.
"""

from __future__ import annotations

from typing import Callable, Optional

from keydeck.keys.errors import StoreError, classify_store_error
from keydeck.keys.generator import generate_secret
from keydeck.keys.models import (
    ControllerState,
    KeyDraft,
    KeyPatch,
    KeyRecord,
    KeySetSnapshot,
    OperationResult,
    normalize_permission,
)
from keydeck.keys.protocol import KeyStore
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)


class KeySetController:
    """Orchestrates load/create/update/delete against a KeyStore.

    Args:
        store:          Data access layer.
        secret_factory: Produces the secret for new keys (Key Generator).
    """

    def __init__(
        self,
        store: KeyStore,
        secret_factory: Callable[[], str] = generate_secret,
    ) -> None:
        self._store = store
        self._secret_factory = secret_factory
        self.state: ControllerState = "idle"
        self.error: Optional[str] = None
        self.records: list[KeyRecord] = []

    # ── Read side ─────────────────────────────────────────────────────────────

    def snapshot(self) -> KeySetSnapshot:
        return KeySetSnapshot(state=self.state, error=self.error, records=list(self.records))

    def get(self, key_id: str) -> Optional[KeyRecord]:
        for record in self.records:
            if record.id == key_id:
                return record
        return None

    def dismiss_error(self) -> None:
        self.error = None

    # ── Operations ────────────────────────────────────────────────────────────

    async def load(self) -> OperationResult:
        """Fetch the full list (mount / refresh)."""
        self.error = None
        self.state = "loading"
        try:
            records = await self._store.list_all()
        except Exception as exc:
            self.state = "failed"
            return self._fail("Failed to load API keys", exc, op="load")

        self.records = records
        self.state = "ready"
        logger.info("key_set_loaded", count=len(records))
        return OperationResult(ok=True, message=f"Loaded {len(records)} API key(s).")

    async def create_key(self, draft: KeyDraft) -> OperationResult:
        """Generate a secret, store the draft, and prepend the confirmed record."""
        self.error = None
        if not draft.name or not draft.name.strip():
            return self._reject("Key name is required.")

        draft.name = draft.name.strip()
        draft.permissions = normalize_permission(draft.permissions)
        draft.secret = self._secret_factory()
        try:
            record = await self._store.create(draft)
        except Exception as exc:
            return self._fail("Failed to save API key", exc, op="create")

        self.records.insert(0, record)
        logger.info(
            "api_key_created",
            key_id=record.id,
            permissions=record.permissions,
            masked_secret=record.masked_secret,
        )
        return OperationResult(ok=True, message="API key created successfully.", record=record)

    async def update_key(self, key_id: str, patch: KeyPatch) -> OperationResult:
        """Write name/permissions and replace the matching record in place."""
        self.error = None
        if patch.is_empty():
            return self._reject("Nothing to update.")
        if patch.name is not None:
            if not patch.name.strip():
                return self._reject("Key name is required.")
            patch.name = patch.name.strip()

        try:
            record = await self._store.update(key_id, patch)
        except Exception as exc:
            return self._fail("Failed to update API key", exc, op="update", key_id=key_id)

        for index, existing in enumerate(self.records):
            if existing.id == key_id:
                self.records[index] = record
                break
        else:
            logger.warning("updated_key_not_in_local_set", key_id=key_id)
        logger.info("api_key_updated", key_id=key_id)
        return OperationResult(ok=True, message="API key updated successfully.", record=record)

    async def delete_key(self, key_id: str) -> OperationResult:
        """Delete in the store, then drop the record locally. Caller confirms first."""
        self.error = None
        try:
            await self._store.delete(key_id)
        except Exception as exc:
            return self._fail("Failed to delete API key", exc, op="delete", key_id=key_id)

        self.records = [r for r in self.records if r.id != key_id]
        logger.info("api_key_deleted", key_id=key_id)
        return OperationResult(ok=True, message="API key deleted successfully.")

    async def test_connection(self) -> OperationResult:
        """Probe the store. Never touches the sequence."""
        self.error = None
        try:
            await self._store.probe()
        except Exception as exc:
            return self._fail("Connection failed", exc, op="test_connection")
        logger.info("store_connection_ok")
        return OperationResult(ok=True, message="Connected successfully")

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _reject(self, message: str) -> OperationResult:
        self.error = message
        return OperationResult(ok=False, message=message, error_kind="ValueError")

    def _fail(self, prefix: str, exc: Exception, op: str, **context: str) -> OperationResult:
        if isinstance(exc, ValueError):
            err_kind, detail = "ValueError", str(exc)
        else:
            err = exc if isinstance(exc, StoreError) else classify_store_error(exc)
            err_kind, detail = type(err).__name__, err.user_message
            if not isinstance(exc, StoreError):
                # Not raised by the store layer: keep the traceback
                logger.exception("unexpected_store_fault", op=op, **context)
        message = f"{prefix}: {detail}"
        self.error = message
        logger.warning("key_operation_failed", op=op, error_kind=err_kind, **context)
        return OperationResult(ok=False, message=message, error_kind=err_kind)
