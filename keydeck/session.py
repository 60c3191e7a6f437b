"""DashboardSession — the per-process bundle of config, store and controller.

Created once by the FastAPI lifespan and stored on ``app.state.session``;
routes reach the controller through it instead of any module-level state.
"""

from __future__ import annotations

from dataclasses import dataclass

from keydeck.config import Config
from keydeck.keys.controller import KeySetController
from keydeck.keys.factory import create_key_store
from keydeck.keys.protocol import KeyStore
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class DashboardSession:
    config: Config
    store: KeyStore
    controller: KeySetController

    @property
    def validation_delay_s(self) -> float:
        return self.config.validation.delay_ms / 1000.0

    @classmethod
    async def open(cls, config: Config) -> "DashboardSession":
        """Build the store, wrap it in a controller, and run the initial load.

        A failed initial load is not fatal: the controller sits in "failed"
        with its error message and the dashboard can retry via refresh.
        """
        store = await create_key_store(config)
        controller = KeySetController(store)
        result = await controller.load()
        if not result.ok:
            logger.warning("initial_key_load_failed", error=result.message)
        return cls(config=config, store=store, controller=controller)

    async def close(self) -> None:
        await self.store.close()
        logger.info("dashboard_session_closed")
