"""Unit tests for create_key_store() backend selection."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from keydeck.config import Config
from keydeck.keys.factory import create_key_store
from keydeck.keys.sqlite_store import LocalSQLiteKeyStore
from keydeck.keys.supabase_store import SupabaseKeyStore


def _supabase_config() -> Config:
    config = Config.defaults()
    config.store.url = "https://testproject.supabase.co"
    config.store.key = "anon"
    return config


class TestCreateKeyStore:

    async def test_sqlite_backend(self, tmp_path: Path) -> None:
        config = Config.defaults()
        config.store.backend = "sqlite"
        config.store.sqlite_path = str(tmp_path / "keys.db")
        store = await create_key_store(config)
        try:
            assert isinstance(store, LocalSQLiteKeyStore)
        finally:
            await store.close()

    async def test_supabase_backend_initialized(self) -> None:
        with patch(
            "keydeck.keys.supabase_store.create_async_client",
            new=AsyncMock(return_value=MagicMock()),
        ) as create:
            store = await create_key_store(_supabase_config())
        assert isinstance(store, SupabaseKeyStore)
        create.assert_awaited_once_with("https://testproject.supabase.co", "anon")

    async def test_supabase_settings_passed_through(self) -> None:
        config = _supabase_config()
        config.store.table = "keys_v2"
        config.store.schema = "rich"
        config.store.timeout_s = 2.5
        with patch(
            "keydeck.keys.supabase_store.create_async_client",
            new=AsyncMock(return_value=MagicMock()),
        ):
            store = await create_key_store(config)
        assert isinstance(store, SupabaseKeyStore)
        assert store._table_name == "keys_v2"
        assert store._timeout_s == 2.5
        assert store.mapping is not None and store.mapping.variant == "rich"

    async def test_bad_column_override_is_runtime_error(self) -> None:
        config = _supabase_config()
        config.store.columns = {"not_a_field": "x"}
        with pytest.raises(RuntimeError, match="Invalid key store configuration"):
            await create_key_store(config)
