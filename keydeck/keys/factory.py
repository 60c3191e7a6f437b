"""Key store factory — backend selection and initialization.

Backend selection (config.store.backend):
  "supabase"  → SupabaseKeyStore (default; URL + anon key required, enforced
                by load_config())
  "sqlite"    → LocalSQLiteKeyStore at config.store.sqlite_path

Invalid column overrides raise RuntimeError, which the FastAPI lifespan
propagates to refuse startup.
"""

from __future__ import annotations

from keydeck.config import Config
from keydeck.keys.protocol import KeyStore
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)


async def create_key_store(config: Config) -> KeyStore:
    """Create and initialize the configured KeyStore.

    Raises:
        RuntimeError: On invalid store.columns overrides.
        StoreError:   If the store client cannot be created.
    """
    store_cfg = config.store
    try:
        if store_cfg.backend == "sqlite":
            store = _build_sqlite_store(config)
        else:
            store = _build_supabase_store(config)
    except ValueError as exc:
        raise RuntimeError(f"Invalid key store configuration: {exc}") from exc

    await store.initialize()
    return store


def _build_supabase_store(config: Config) -> KeyStore:
    from keydeck.keys.supabase_store import SupabaseKeyStore

    store_cfg = config.store
    url = store_cfg.url or ""
    logger.info(
        "key_store_selected",
        backend="SupabaseKeyStore",
        # Only the project host is logged, never the key
        supabase_host=url.split("//")[-1].split(".")[0] if "//" in url else "unknown",
        table=store_cfg.table,
        schema=store_cfg.schema,
    )
    return SupabaseKeyStore(
        url=url,
        key=store_cfg.key or "",
        table_name=store_cfg.table,
        schema=store_cfg.schema,
        columns=store_cfg.columns,
        timeout_s=store_cfg.timeout_s,
    )


def _build_sqlite_store(config: Config) -> KeyStore:
    from keydeck.keys.sqlite_store import LocalSQLiteKeyStore

    store_cfg = config.store
    logger.info(
        "key_store_selected",
        backend="LocalSQLiteKeyStore",
        db_path=store_cfg.sqlite_path,
        table=store_cfg.table,
        schema=store_cfg.schema,
    )
    return LocalSQLiteKeyStore(
        db_path=store_cfg.sqlite_path,
        table_name=store_cfg.table,
        schema=store_cfg.schema,
        columns=store_cfg.columns,
        timeout_s=store_cfg.timeout_s,
    )
