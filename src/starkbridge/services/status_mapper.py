"""Mapping from swap engine states to canonical bridge order statuses."""

from __future__ import annotations

from typing import Any

from starkbridge.models.bridge_order import OrderStatus

FALLBACK_STATUS = OrderStatus.CREATED

_ENGINE_STATE_MAP: dict[str, OrderStatus] = {
    "PR_CREATED": OrderStatus.AWAITING_USER_SIGNATURE,
    "CREATED": OrderStatus.AWAITING_USER_SIGNATURE,
    "QUOTE_SOFT_EXPIRED": OrderStatus.AWAITING_USER_SIGNATURE,
    "SIGNED": OrderStatus.SOURCE_SUBMITTED,
    "POSTED": OrderStatus.SOURCE_SUBMITTED,
    "BROADCASTED": OrderStatus.SOURCE_SUBMITTED,
    "CLAIM_COMMITED": OrderStatus.SOURCE_SUBMITTED,
    "CLAIM_COMMITTED": OrderStatus.SOURCE_SUBMITTED,
    "FRONTED": OrderStatus.SOURCE_CONFIRMED,
    "BTC_TX_CONFIRMED": OrderStatus.SOURCE_CONFIRMED,
    "CLAIMED": OrderStatus.SETTLED,
    "CLAIM_CLAIMED": OrderStatus.SETTLED,
    "SETTLED": OrderStatus.SETTLED,
    "REFUNDABLE": OrderStatus.REFUNDING,
    "REFUNDED": OrderStatus.REFUNDED,
    "FAILED": OrderStatus.FAILED,
    "DECLINED": OrderStatus.FAILED,
    "CLOSED": OrderStatus.FAILED,
    "EXPIRED": OrderStatus.EXPIRED,
    "QUOTE_EXPIRED": OrderStatus.EXPIRED,
}

# Position along the lifecycle. CLAIMING, REFUNDING, FAILED and EXPIRED are
# siblings so a lapsed order can still move into a claim or refund.
_STATUS_RANK: dict[OrderStatus, int] = {
    OrderStatus.CREATED: 0,
    OrderStatus.AWAITING_USER_SIGNATURE: 1,
    OrderStatus.SOURCE_SUBMITTED: 2,
    OrderStatus.SOURCE_CONFIRMED: 3,
    OrderStatus.CLAIMING: 4,
    OrderStatus.REFUNDING: 4,
    OrderStatus.FAILED: 4,
    OrderStatus.EXPIRED: 4,
    OrderStatus.SETTLED: 5,
    OrderStatus.REFUNDED: 5,
}


def map_engine_state(state: Any) -> OrderStatus:
    """Map a raw engine state to an order status.

    Total over any input: unknown or missing states yield ``FALLBACK_STATUS``.
    """
    if state is None:
        return FALLBACK_STATUS
    key = str(state).strip().upper()
    return _ENGINE_STATE_MAP.get(key, FALLBACK_STATUS)


def status_rank(status: OrderStatus | str) -> int:
    return _STATUS_RANK[OrderStatus(status)]


def advance_status(current: OrderStatus | str, proposed: OrderStatus | str) -> OrderStatus:
    """Return ``proposed`` unless it would move the order backwards."""
    current_status = OrderStatus(current)
    proposed_status = OrderStatus(proposed)
    if status_rank(proposed_status) < status_rank(current_status):
        return current_status
    return proposed_status
