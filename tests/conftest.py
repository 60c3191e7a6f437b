"""Root test configuration for KeyDeck.

Disables the dashboard localhost check (httpx ASGITransport and TestClient
report non-loopback client hosts), provides store credentials so
load_config() never exits, and resets the shared rate limiter between tests.
"""

import pytest

from keydeck.config import Config
from keydeck.keys.controller import KeySetController
from keydeck.keys.protocol import InMemoryKeyStore
from keydeck.keys.schema import RICH, SLIM
from keydeck.session import DashboardSession


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Default env for every test. Individual tests override via monkeypatch."""
    monkeypatch.setenv("KEYDECK_DASHBOARD_LOCALHOST_ONLY", "false")
    monkeypatch.setenv("SUPABASE_URL", "https://testproject.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "test-anon-key")
    for name in (
        "NEXT_PUBLIC_SUPABASE_URL",
        "NEXT_PUBLIC_SUPABASE_ANON_KEY",
        "KEYDECK_CONFIG",
        "KEYDECK_PORT",
        "KEYDECK_STORE_BACKEND",
        "KEYDECK_SQLITE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests.

    Prevents 429s when many tests hit the same endpoint within one minute.
    """
    from keydeck.dashboard.limiter import limiter

    limiter.reset()


# ─── Shared key fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def slim_rows() -> list[dict]:
    """Two rows in the slim table shape, oldest first."""
    return [
        {
            "id": "k-old",
            "name": "Old key",
            "key": "tvly-old0000000000000000000000000000",
            "type": "read",
            "usage": 12,
            "created_at": "2024-01-01T00:00:00+00:00",
        },
        {
            "id": "k-new",
            "name": "New key",
            "key": "tvly-new0000000000000000000000000000",
            "type": "admin",
            "usage": 0,
            "created_at": "2024-06-01T00:00:00+00:00",
        },
    ]


@pytest.fixture
def slim_store(slim_rows: list[dict]) -> InMemoryKeyStore:
    return InMemoryKeyStore(mapping=SLIM, rows=slim_rows)


@pytest.fixture
def rich_store() -> InMemoryKeyStore:
    return InMemoryKeyStore(mapping=RICH)


@pytest.fixture
def fixed_secret_factory():
    """Deterministic secrets: tvly-000...1, tvly-000...2, ..."""
    counter = {"n": 0}

    def _factory() -> str:
        counter["n"] += 1
        return "tvly-" + str(counter["n"]).rjust(32, "0")

    return _factory


@pytest.fixture
def make_session():
    """Build a DashboardSession around a store without touching the network."""

    def _make(store: InMemoryKeyStore, delay_ms: int = 0, secret_factory=None) -> DashboardSession:
        config = Config.defaults()
        config.validation.delay_ms = delay_ms
        controller = (
            KeySetController(store, secret_factory=secret_factory)
            if secret_factory is not None
            else KeySetController(store)
        )
        return DashboardSession(config=config, store=store, controller=controller)

    return _make
