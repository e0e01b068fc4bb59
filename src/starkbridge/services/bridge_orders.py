"""Bridge order lifecycle: creation, reconciliation and recovery.

The ``BridgeOrderService`` drives an incoming BTC to Starknet order through
its lifecycle by polling the swap engine, mapping the engine state onto the
canonical order status, opportunistically claiming or refunding, and writing
an audit trail of actions and events for every step.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any

from starkbridge.core.errors import BridgeError, BridgeValidationError, OrderNotFoundError
from starkbridge.models import (
    LAPSED_STATUSES,
    TERMINAL_STATUSES,
    ActionOutcome,
    ActionType,
    EventKind,
    OrderStatus,
)
from starkbridge.schemas.bridge import BridgeCreateOrderInput, BridgeOrderPage, BridgeOrderRead
from starkbridge.services.order_store import OrderStore
from starkbridge.services.status_mapper import advance_status, map_engine_state
from starkbridge.services.swap_engine import ActionResult, SwapEngine
from starkbridge.services.validation import normalize_wallet_address, validate_pagination

# Configure logger for this module
logger = logging.getLogger(__name__)

DEFAULT_RECONCILE_BATCH_SIZE = 100


def _outcome(success: bool) -> ActionOutcome:
    return ActionOutcome.SUCCESS if success else ActionOutcome.FAILED


@dataclass
class ReconcileSummary:
    """Counters describing one batch reconciliation pass."""

    total: int = 0
    reconciled: int = 0
    failed: int = 0
    failed_order_ids: list[str] = field(default_factory=list)


class BridgeOrderService:
    """State machine for incoming bridge orders.

    Reconciliations of the same order within this process are serialized by a
    per-order lock. Across processes the swap engine is responsible for not
    executing a claim or refund twice.
    """

    def __init__(
        self,
        store: OrderStore,
        engine: SwapEngine,
        batch_size: int = DEFAULT_RECONCILE_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.engine = engine
        self.batch_size = batch_size
        self._order_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, order_id: str) -> asyncio.Lock:
        lock = self._order_locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._order_locks[order_id] = lock
        return lock

    def _require_order(self, order_id: str) -> BridgeOrderRead:
        order = self.store.get_order_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def create_order(self, input: BridgeCreateOrderInput) -> BridgeOrderRead:
        """Open a swap on the engine and persist it as a new ``CREATED`` order.

        The input is expected to be validated already. Engine errors propagate
        unchanged and nothing is persisted in that case.
        """
        logger.info(
            "bridge createOrder start network=%s destinationAsset=%s amount=%s receiveAddress=%s",
            input.network,
            input.destination_asset,
            input.amount,
            input.receive_address,
        )
        swap = await self.engine.create_incoming_swap(
            network=input.network,
            destination_asset=input.destination_asset,
            amount=input.amount,
            amount_type=input.amount_type,
            receive_address=input.receive_address,
        )

        order = self.store.create_order(
            input=input,
            status=OrderStatus.CREATED,
            engine_swap_id=swap.engine_swap_id,
            quote=swap.quote,
            expires_at=swap.expires_at,
            raw_state={"state": swap.status},
            amount_source=swap.amount_source,
            amount_destination=swap.amount_destination,
            deposit_address=swap.deposit_address,
        )

        self.store.add_action(
            order.id,
            ActionType.CREATE_ORDER,
            ActionOutcome.SUCCESS,
            {"atomiqSwapId": order.atomiq_swap_id},
        )
        self.store.add_event(
            order.id,
            EventKind.ORDER_CREATED,
            None,
            OrderStatus.CREATED,
            {
                "quote": order.quote,
                "expiresAt": order.expires_at.isoformat() if order.expires_at else None,
            },
        )
        logger.info(
            "bridge createOrder success orderId=%s atomiqSwapId=%s status=%s",
            order.id,
            order.atomiq_swap_id,
            order.status.value,
        )
        return order

    async def get_order(self, order_id: str) -> BridgeOrderRead:
        return self._require_order(order_id)

    async def list_orders(self, wallet_address: str, page: Any, limit: Any) -> BridgeOrderPage:
        """Return one page of a wallet's orders; ``limit`` is capped at 100."""
        page_value, limit_value = validate_pagination(page, limit)
        wallet = normalize_wallet_address(wallet_address)
        if not wallet:
            raise BridgeValidationError("walletAddress is required")
        return self.store.list_orders_by_wallet(wallet, page_value, limit_value)

    async def retry_order(self, order_id: str) -> BridgeOrderRead:
        """Record a manual retry and reconcile the order immediately."""
        logger.info("bridge retryOrder start orderId=%s", order_id)
        order = self._require_order(order_id)
        self.store.add_action(order.id, ActionType.MANUAL_RETRY, ActionOutcome.SUCCESS)
        result = await self.reconcile_order(order.id)
        logger.info(
            "bridge retryOrder success orderId=%s status=%s", order_id, result.status.value
        )
        return result

    async def reconcile_active_orders(self) -> ReconcileSummary:
        """Reconcile up to ``batch_size`` active orders, one after another.

        Expected bridge failures (engine errors, vanished orders) are isolated
        per order: they are logged, stored as ``last_error`` and audited, and
        the batch moves on. Any other exception aborts the batch.
        """
        active_orders = self.store.get_active_orders(self.batch_size)
        summary = ReconcileSummary(total=len(active_orders))
        logger.info("bridge reconcileActiveOrders start count=%d", summary.total)

        for order in active_orders:
            try:
                await self.reconcile_order(order.id)
            except BridgeError as exc:
                summary.failed += 1
                summary.failed_order_ids.append(order.id)
                logger.warning("bridge reconcileOrder failed orderId=%s: %s", order.id, exc)
                self._record_poll_failure(order.id, exc)
            else:
                summary.reconciled += 1

        logger.info(
            "bridge reconcileActiveOrders done count=%d reconciled=%d failed=%d",
            summary.total,
            summary.reconciled,
            summary.failed,
        )
        return summary

    def _record_poll_failure(self, order_id: str, exc: BridgeError) -> None:
        if isinstance(exc, OrderNotFoundError):
            return
        self.store.update_order(order_id, last_error=str(exc))
        self.store.add_action(
            order_id,
            ActionType.POLL_ORDER,
            ActionOutcome.FAILED,
            {"error": str(exc), "errorType": type(exc).__name__},
        )

    async def reconcile_order(self, order_id: str) -> BridgeOrderRead:
        """Bring one order in line with the swap engine's current state.

        Terminal orders are returned untouched. When the snapshot is claimable
        a claim is attempted, otherwise when it is refundable a refund is
        attempted; never both in one pass. A failed attempt leaves the order in
        ``CLAIMING``/``REFUNDING`` so the next pass retries it.

        Raises:
            OrderNotFoundError: If the order does not exist.
            SwapEngineError: If the engine snapshot cannot be fetched.
        """
        async with self._lock_for(order_id):
            return await self._reconcile_locked(order_id)

    async def _reconcile_locked(self, order_id: str) -> BridgeOrderRead:
        order = self._require_order(order_id)
        if order.status in TERMINAL_STATUSES:
            logger.info(
                "bridge reconcileOrder skipped terminal orderId=%s status=%s",
                order.id,
                order.status.value,
            )
            return order

        snapshot = await self.engine.get_order_snapshot(order)
        logger.info(
            "bridge reconcileOrder snapshot orderId=%s statusRaw=%s isClaimable=%s isRefundable=%s",
            order.id,
            snapshot.status,
            snapshot.is_claimable,
            snapshot.is_refundable,
        )

        next_status = map_engine_state(snapshot.status)
        destination_tx_id = snapshot.destination_tx_id or order.destination_tx_id
        last_error: str | None = None

        settle: ActionResult | None = None
        if snapshot.is_claimable:
            settle = await self.engine.try_claim(order)
            self._record_settle(order.id, ActionType.AUTO_CLAIM, settle)
            next_status = OrderStatus.SETTLED if settle.success else OrderStatus.CLAIMING
        elif snapshot.is_refundable:
            settle = await self.engine.try_refund(order)
            self._record_settle(order.id, ActionType.AUTO_REFUND, settle)
            next_status = OrderStatus.REFUNDED if settle.success else OrderStatus.REFUNDING

        if settle is not None:
            if settle.success:
                destination_tx_id = settle.tx_id or destination_tx_id
            else:
                last_error = settle.error

        next_status = advance_status(order.status, next_status)
        source_tx_id = snapshot.source_tx_id or order.source_tx_id

        updated = self.store.update_order(
            order.id,
            status=next_status,
            source_tx_id=source_tx_id,
            destination_tx_id=destination_tx_id,
            raw_state=snapshot.raw_state,
            last_error=last_error,
        )
        self.store.add_action(
            order.id,
            ActionType.POLL_ORDER,
            ActionOutcome.SUCCESS,
            {
                "statusRaw": snapshot.status,
                "mappedStatus": next_status.value,
                "sourceTxId": source_tx_id,
                "destinationTxId": destination_tx_id,
            },
        )
        self.store.add_event(
            order.id,
            EventKind.ORDER_RECONCILED,
            order.status,
            updated.status,
            {
                "statusRaw": snapshot.status,
                "sourceTxId": source_tx_id,
                "destinationTxId": destination_tx_id,
            },
        )
        logger.info(
            "bridge reconcileOrder success orderId=%s fromStatus=%s toStatus=%s destinationTxId=%s",
            order.id,
            order.status.value,
            updated.status.value,
            destination_tx_id,
        )
        return updated

    def _record_settle(self, order_id: str, action: ActionType, result: ActionResult) -> None:
        detail: dict[str, Any] = {"txId": result.tx_id}
        if result.error:
            detail["error"] = result.error
        self.store.add_action(order_id, action, _outcome(result.success), detail)

    async def submit_order(
        self,
        order_id: str,
        signed_psbt_base64: str | None = None,
        source_tx_id: str | None = None,
    ) -> BridgeOrderRead:
        """Forward the user's funding (signed PSBT or paid tx id) to the engine.

        Raises:
            OrderNotFoundError: If the order does not exist.
            BridgeValidationError: If the order is terminal or lapsed, or nothing was provided.
            SwapEngineError: If the engine rejects the submission.
        """
        if not signed_psbt_base64 and not source_tx_id:
            raise BridgeValidationError("Either signedPsbtBase64 or sourceTxId must be provided")

        async with self._lock_for(order_id):
            order = self._require_order(order_id)
            if order.status in TERMINAL_STATUSES or order.status in LAPSED_STATUSES:
                raise BridgeValidationError(
                    f"order is closed to submissions, current status is {order.status.value}"
                )

            try:
                submitted_tx_id = await self.engine.submit_incoming_swap(
                    order,
                    signed_psbt_base64=signed_psbt_base64,
                    source_tx_id=source_tx_id,
                )
            except BridgeError as exc:
                self.store.add_action(
                    order.id,
                    ActionType.SUBMIT_ORDER,
                    ActionOutcome.FAILED,
                    {"error": str(exc), "psbt": bool(signed_psbt_base64)},
                )
                raise

            next_status = advance_status(order.status, OrderStatus.SOURCE_SUBMITTED)
            updated = self.store.update_order(
                order.id,
                status=next_status,
                source_tx_id=submitted_tx_id or order.source_tx_id,
                last_error=None,
            )
            self.store.add_action(
                order.id,
                ActionType.SUBMIT_ORDER,
                ActionOutcome.SUCCESS,
                {"sourceTxId": submitted_tx_id, "psbt": bool(signed_psbt_base64)},
            )
            self.store.add_event(
                order.id,
                EventKind.ORDER_SUBMITTED,
                order.status,
                updated.status,
                {"sourceTxId": submitted_tx_id},
            )
            logger.info(
                "bridge submitOrder success orderId=%s sourceTxId=%s status=%s",
                order.id,
                submitted_tx_id,
                updated.status.value,
            )
            return updated
