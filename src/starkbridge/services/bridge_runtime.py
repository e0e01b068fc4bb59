"""Composition root wiring the bridge order service together.

The runtime builds the swap engine client, the order store, the order service
and the recovery poller exactly once per process and tears them down again on
shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from starkbridge.core.settings import Settings, settings
from starkbridge.db.session import SessionLocal
from starkbridge.services.bridge_orders import BridgeOrderService
from starkbridge.services.order_store import SqlAlchemyOrderStore
from starkbridge.services.recovery_poller import RecoveryPoller
from starkbridge.services.swap_engine import SwapEngineClient, load_swap_engine_config

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass
class BridgeComponents:
    engine: SwapEngineClient
    store: SqlAlchemyOrderStore
    service: BridgeOrderService
    poller: RecoveryPoller | None


class BridgeRuntime:
    """Lazily initialised, process-wide owner of the bridge components."""

    def __init__(
        self,
        config: Settings | None = None,
        session_factory: Callable[[], Session] | None = None,
        engine_factory: Callable[[], SwapEngineClient] | None = None,
    ) -> None:
        self.config = config or settings
        self._session_factory = session_factory or SessionLocal
        self._engine_factory = engine_factory or (
            lambda: SwapEngineClient(load_swap_engine_config())
        )
        self._init_task: asyncio.Task[BridgeComponents] | None = None

    async def _build(self) -> BridgeComponents:
        engine = self._engine_factory()
        store = SqlAlchemyOrderStore(self._session_factory)
        service = BridgeOrderService(
            store,
            engine,
            batch_size=self.config.bridge_recovery_batch_size,
        )

        poller: RecoveryPoller | None = None
        if self.config.bridge_recovery_enabled:
            poller = RecoveryPoller(service, self.config.bridge_recovery_interval_seconds)
            await poller.start()

        logger.info(
            "Bridge runtime initialised network=%s recovery=%s",
            self.config.bridge_network,
            poller is not None,
        )
        return BridgeComponents(engine=engine, store=store, service=service, poller=poller)

    async def get_components(self) -> BridgeComponents:
        """Return the shared components, building them on first use.

        Concurrent first callers await the same initialisation task. A failed
        initialisation is forgotten so the next caller can try again.
        """
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._build())
        try:
            return await asyncio.shield(self._init_task)
        except Exception:
            if self._init_task is not None and self._init_task.done():
                self._init_task = None
            raise

    async def get_service(self) -> BridgeOrderService:
        return (await self.get_components()).service

    async def shutdown(self) -> None:
        """Stop the poller and release the swap engine client."""
        if self._init_task is None:
            return

        task, self._init_task = self._init_task, None
        if not task.done():
            await asyncio.wait([task])
        if task.cancelled() or task.exception() is not None:
            return

        components = task.result()
        if components.poller is not None:
            await components.poller.stop()
        await components.engine.close()
        logger.info("Bridge runtime shut down")
