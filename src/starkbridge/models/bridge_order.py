# src/starkbridge/models/bridge_order.py
"""SQLAlchemy models for bridge orders and their append-only audit trail."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, VARCHAR, BigInteger, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from starkbridge.db.session import Base
from starkbridge.db.time import utcnow


class OrderStatus(str, Enum):
    """Canonical lifecycle states of an incoming bridge order."""

    CREATED = "CREATED"
    AWAITING_USER_SIGNATURE = "AWAITING_USER_SIGNATURE"
    SOURCE_SUBMITTED = "SOURCE_SUBMITTED"
    SOURCE_CONFIRMED = "SOURCE_CONFIRMED"
    CLAIMING = "CLAIMING"
    REFUNDING = "REFUNDING"
    SETTLED = "SETTLED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


# The engine gave up on the swap, but deposited funds may still become
# refundable, so these stay reconcilable.
LAPSED_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.FAILED, OrderStatus.EXPIRED})

ACTIVE_STATUSES: frozenset[OrderStatus] = LAPSED_STATUSES | {
    OrderStatus.CREATED,
    OrderStatus.AWAITING_USER_SIGNATURE,
    OrderStatus.SOURCE_SUBMITTED,
    OrderStatus.SOURCE_CONFIRMED,
    OrderStatus.CLAIMING,
    OrderStatus.REFUNDING,
}

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(OrderStatus) - ACTIVE_STATUSES

# SQLite only autoincrements INTEGER primary keys.
_SEQUENCE_ID = BigInteger().with_variant(Integer(), "sqlite")


class ActionType(str, Enum):
    """Operations attempted on an order."""

    CREATE_ORDER = "CREATE_ORDER"
    MANUAL_RETRY = "MANUAL_RETRY"
    AUTO_CLAIM = "AUTO_CLAIM"
    AUTO_REFUND = "AUTO_REFUND"
    POLL_ORDER = "POLL_ORDER"
    SUBMIT_ORDER = "SUBMIT_ORDER"


class ActionOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class EventKind(str, Enum):
    """Observed state transitions."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_RECONCILED = "ORDER_RECONCILED"
    ORDER_SUBMITTED = "ORDER_SUBMITTED"


class BridgeOrder(Base):
    """One requested BTC to Starknet incoming swap."""

    __tablename__ = "bridge_order"

    id: Mapped[str] = mapped_column(VARCHAR(36), primary_key=True)
    # Assigned by the swap engine at creation; never rewritten afterwards.
    atomiq_swap_id: Mapped[str | None] = mapped_column(Text, nullable=True, unique=True)

    network: Mapped[str] = mapped_column(VARCHAR(16), nullable=False)
    source_asset: Mapped[str] = mapped_column(VARCHAR(16), nullable=False, default="BTC")
    destination_asset: Mapped[str] = mapped_column(VARCHAR(32), nullable=False)
    # Base-unit integers are kept as decimal strings to stay exact at any precision.
    amount: Mapped[str] = mapped_column(Text, nullable=False)
    amount_type: Mapped[str] = mapped_column(VARCHAR(16), nullable=False)
    amount_source: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount_destination: Mapped[str | None] = mapped_column(Text, nullable=True)
    receive_address: Mapped[str] = mapped_column(Text, nullable=False)
    wallet_address: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    deposit_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        VARCHAR(32), nullable=False, default=OrderStatus.CREATED.value, index=True
    )
    source_tx_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_tx_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    quote: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class BridgeAction(Base):
    """Append-only record of an operation attempted on an order."""

    __tablename__ = "bridge_action"

    id: Mapped[int] = mapped_column(_SEQUENCE_ID, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        VARCHAR(36), ForeignKey("bridge_order.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(VARCHAR(32), nullable=False)
    outcome: Mapped[str] = mapped_column(VARCHAR(16), nullable=False)
    detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (Index("ix_bridge_action_order_id", "order_id", "id"),)


class BridgeEvent(Base):
    """Append-only record of a status transition observed on an order."""

    __tablename__ = "bridge_event"

    id: Mapped[int] = mapped_column(_SEQUENCE_ID, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        VARCHAR(36), ForeignKey("bridge_order.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(VARCHAR(32), nullable=False)
    from_status: Mapped[str | None] = mapped_column(VARCHAR(32), nullable=True)
    to_status: Mapped[str] = mapped_column(VARCHAR(32), nullable=False)
    detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (Index("ix_bridge_event_order_id", "order_id", "id"),)
