"""Persistence of bridge orders and their audit trail."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy.orm import Session

from starkbridge.core.errors import BridgeError, OrderNotFoundError
from starkbridge.db.time import utcnow
from starkbridge.models import (
    ACTIVE_STATUSES,
    ActionOutcome,
    ActionType,
    BridgeAction,
    BridgeEvent,
    BridgeOrder,
    EventKind,
    OrderStatus,
)
from starkbridge.schemas.bridge import (
    BridgeCreateOrderInput,
    BridgeOrderPage,
    BridgeOrderRead,
    PageMeta,
)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "atomiq_swap_id",
        "source_tx_id",
        "destination_tx_id",
        "deposit_address",
        "quote",
        "expires_at",
        "last_error",
        "raw_state",
    }
)


class OrderStore(Protocol):
    """Storage operations used by the bridge order service."""

    def create_order(
        self,
        input: BridgeCreateOrderInput,
        status: OrderStatus,
        engine_swap_id: str | None = None,
        quote: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
        raw_state: dict[str, Any] | None = None,
        amount_source: str | None = None,
        amount_destination: str | None = None,
        deposit_address: str | None = None,
    ) -> BridgeOrderRead: ...

    def get_order_by_id(self, order_id: str) -> BridgeOrderRead | None: ...

    def list_orders_by_wallet(
        self, wallet_address: str, page: int, limit: int
    ) -> BridgeOrderPage: ...

    def update_order(self, order_id: str, **patch: Any) -> BridgeOrderRead: ...

    def add_action(
        self,
        order_id: str,
        type: ActionType,
        outcome: ActionOutcome,
        detail: Mapping[str, Any] | None = None,
    ) -> None: ...

    def add_event(
        self,
        order_id: str,
        kind: EventKind,
        from_status: OrderStatus | None,
        to_status: OrderStatus,
        detail: Mapping[str, Any] | None = None,
    ) -> None: ...

    def get_active_orders(self, limit: int) -> list[BridgeOrderRead]: ...


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, OrderStatus) else value


class SqlAlchemyOrderStore:
    """Order store backed by SQLAlchemy sessions.

    Each call runs in its own session and commits before returning, so the
    objects handed back are detached snapshots.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create_order(
        self,
        input: BridgeCreateOrderInput,
        status: OrderStatus,
        engine_swap_id: str | None = None,
        quote: dict[str, Any] | None = None,
        expires_at: datetime | None = None,
        raw_state: dict[str, Any] | None = None,
        amount_source: str | None = None,
        amount_destination: str | None = None,
        deposit_address: str | None = None,
    ) -> BridgeOrderRead:
        now = utcnow()
        row = BridgeOrder(
            id=str(uuid.uuid4()),
            atomiq_swap_id=engine_swap_id,
            network=input.network,
            source_asset=input.source_asset,
            destination_asset=input.destination_asset,
            amount=input.amount,
            amount_type=input.amount_type,
            amount_source=amount_source,
            amount_destination=amount_destination,
            receive_address=input.receive_address,
            wallet_address=input.wallet_address.lower(),
            deposit_address=deposit_address,
            status=_enum_value(status),
            quote=quote,
            expires_at=expires_at,
            raw_state=raw_state,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as db:
            db.add(row)
            db.commit()
            db.refresh(row)
            return BridgeOrderRead.model_validate(row)

    def get_order_by_id(self, order_id: str) -> BridgeOrderRead | None:
        with self._session_factory() as db:
            row = db.get(BridgeOrder, order_id)
            return BridgeOrderRead.model_validate(row) if row else None

    def list_orders_by_wallet(
        self, wallet_address: str, page: int, limit: int
    ) -> BridgeOrderPage:
        with self._session_factory() as db:
            query = db.query(BridgeOrder).filter(
                BridgeOrder.wallet_address == wallet_address.lower()
            )
            total = query.count()
            rows = (
                query.order_by(BridgeOrder.created_at.desc(), BridgeOrder.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return BridgeOrderPage(
                data=[BridgeOrderRead.model_validate(row) for row in rows],
                meta=PageMeta.build(total=total, page=page, limit=limit),
            )

    def update_order(self, order_id: str, **patch: Any) -> BridgeOrderRead:
        """Apply a partial patch; keys left out keep their stored value.

        Raises:
            OrderNotFoundError: If no order has ``order_id``.
            BridgeError: On unknown fields or an attempt to rewrite the swap id.
        """
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise BridgeError(f"Cannot update bridge order fields: {sorted(unknown)}")

        with self._session_factory() as db:
            row = db.get(BridgeOrder, order_id)
            if row is None:
                raise OrderNotFoundError(order_id)

            new_swap_id = patch.get("atomiq_swap_id")
            if (
                "atomiq_swap_id" in patch
                and row.atomiq_swap_id is not None
                and new_swap_id != row.atomiq_swap_id
            ):
                raise BridgeError("atomiqSwapId is immutable once assigned")

            for key, value in patch.items():
                setattr(row, key, _enum_value(value))
            row.updated_at = utcnow()
            db.commit()
            db.refresh(row)
            return BridgeOrderRead.model_validate(row)

    def add_action(
        self,
        order_id: str,
        type: ActionType,
        outcome: ActionOutcome,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        with self._session_factory() as db:
            db.add(
                BridgeAction(
                    order_id=order_id,
                    type=ActionType(type).value,
                    outcome=ActionOutcome(outcome).value,
                    detail=dict(detail) if detail is not None else None,
                    created_at=utcnow(),
                )
            )
            db.commit()

    def add_event(
        self,
        order_id: str,
        kind: EventKind,
        from_status: OrderStatus | None,
        to_status: OrderStatus,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        with self._session_factory() as db:
            db.add(
                BridgeEvent(
                    order_id=order_id,
                    kind=EventKind(kind).value,
                    from_status=_enum_value(from_status),
                    to_status=_enum_value(to_status),
                    detail=dict(detail) if detail is not None else None,
                    created_at=utcnow(),
                )
            )
            db.commit()

    def get_active_orders(self, limit: int) -> list[BridgeOrderRead]:
        with self._session_factory() as db:
            rows = (
                db.query(BridgeOrder)
                .filter(BridgeOrder.status.in_([status.value for status in ACTIVE_STATUSES]))
                .order_by(BridgeOrder.updated_at.asc(), BridgeOrder.id.asc())
                .limit(limit)
                .all()
            )
            return [BridgeOrderRead.model_validate(row) for row in rows]

    # Read-only audit helpers for tests and debugging; not part of OrderStore.

    def list_actions(self, order_id: str) -> list[BridgeAction]:
        """Return an order's actions in insertion order."""
        with self._session_factory() as db:
            return (
                db.query(BridgeAction)
                .filter(BridgeAction.order_id == order_id)
                .order_by(BridgeAction.id.asc())
                .all()
            )

    def list_events(self, order_id: str) -> list[BridgeEvent]:
        """Return an order's events in insertion order."""
        with self._session_factory() as db:
            return (
                db.query(BridgeEvent)
                .filter(BridgeEvent.order_id == order_id)
                .order_by(BridgeEvent.id.asc())
                .all()
            )
