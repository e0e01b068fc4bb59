"""Background recovery loop for active bridge orders.

This module provides the RecoveryPoller class that periodically reconciles
every active bridge order against the swap engine, so that orders keep moving
forward (and get claimed or refunded) even when nobody is watching them.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from starkbridge.services.bridge_orders import BridgeOrderService, ReconcileSummary

# Configure logger for this module
logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 0.1


class RecoveryPoller:
    """Periodically runs ``reconcile_active_orders`` on a bridge order service.

    Ticks never overlap: the next one is scheduled only after the previous
    batch has finished. Errors escaping a batch are logged and the loop keeps
    running until ``stop()`` is called.
    """

    def __init__(self, service: BridgeOrderService, interval_seconds: float) -> None:
        """Initialize the recovery poller.

        Args:
            service: Order service whose active orders are reconciled.
            interval_seconds: Delay between the end of one tick and the next.
        """
        self.service = service
        self.interval = max(MIN_INTERVAL_SECONDS, float(interval_seconds))
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background recovery loop."""

        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
            logger.info("Recovery poller started interval=%.1fs", self.interval)

    async def stop(self) -> None:
        """Stop the background recovery loop and wait for it to exit."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Recovery poller stopped")

    async def run_once(self) -> ReconcileSummary:
        """Run a single reconciliation tick."""
        return await self.service.reconcile_active_orders()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.error("Recovery poller tick failed", exc_info=True)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
