# tests/services/test_order_store.py
from __future__ import annotations

from collections.abc import Callable

import pytest

from starkbridge.core.errors import BridgeError, OrderNotFoundError
from starkbridge.models import ActionOutcome, ActionType, EventKind, OrderStatus
from starkbridge.schemas.bridge import BridgeOrderRead
from starkbridge.services.order_store import SqlAlchemyOrderStore
from tests.conftest import DEPOSIT_ADDRESS, WALLET_ADDRESS, build_order_input

SeedOrder = Callable[..., BridgeOrderRead]


def test_create_order_persists_snapshot(store: SqlAlchemyOrderStore) -> None:
    order = store.create_order(
        input=build_order_input(wallet_address=WALLET_ADDRESS.upper().replace("0X", "0x")),
        status=OrderStatus.CREATED,
        engine_swap_id="swap-42",
        quote={"amountIn": "10000"},
        raw_state={"state": "PR_CREATED"},
        amount_source="10000",
        deposit_address=DEPOSIT_ADDRESS,
    )

    assert order.id
    assert order.status == OrderStatus.CREATED
    assert order.atomiq_swap_id == "swap-42"
    assert order.wallet_address == WALLET_ADDRESS
    assert order.quote == {"amountIn": "10000"}
    assert order.created_at == order.updated_at

    loaded = store.get_order_by_id(order.id)
    assert loaded is not None
    assert loaded.model_dump() == order.model_dump()


def test_get_missing_order_returns_none(store: SqlAlchemyOrderStore) -> None:
    assert store.get_order_by_id("does-not-exist") is None


def test_list_orders_paginates_by_wallet(
    store: SqlAlchemyOrderStore, seed_order: SeedOrder
) -> None:
    seed_order()
    seed_order()
    seed_order()
    seed_order(wallet_address="0xother")

    page_one = store.list_orders_by_wallet(WALLET_ADDRESS, page=1, limit=2)
    page_two = store.list_orders_by_wallet(WALLET_ADDRESS.upper().replace("0X", "0x"), 2, 2)

    assert len(page_one.data) == 2
    assert page_one.meta.total == 3
    assert page_one.meta.has_next_page is True
    assert page_one.meta.has_prev_page is False

    assert len(page_two.data) == 1
    assert page_two.meta.total_pages == 2
    assert page_two.meta.has_next_page is False
    assert page_two.meta.has_prev_page is True

    seen = {order.id for order in page_one.data + page_two.data}
    assert len(seen) == 3


def test_list_orders_for_unknown_wallet_is_empty(store: SqlAlchemyOrderStore) -> None:
    page = store.list_orders_by_wallet("0xnobody", 1, 20)
    assert page.data == []
    assert page.meta.total == 0
    assert page.meta.total_pages == 0
    assert page.meta.has_next_page is False


def test_update_order_applies_partial_patch(
    store: SqlAlchemyOrderStore, seed_order: SeedOrder
) -> None:
    order = seed_order()

    updated = store.update_order(
        order.id,
        status=OrderStatus.SOURCE_CONFIRMED,
        source_tx_id="btc-tx-1",
    )

    assert updated.status == OrderStatus.SOURCE_CONFIRMED
    assert updated.source_tx_id == "btc-tx-1"
    assert updated.deposit_address == DEPOSIT_ADDRESS
    assert updated.quote == order.quote
    assert updated.updated_at >= order.updated_at


def test_update_order_guards(store: SqlAlchemyOrderStore, seed_order: SeedOrder) -> None:
    order = seed_order(engine_swap_id="swap-fixed")

    with pytest.raises(OrderNotFoundError):
        store.update_order("missing", status=OrderStatus.SETTLED)
    with pytest.raises(BridgeError, match="Cannot update"):
        store.update_order(order.id, wallet_address="0xnew")
    with pytest.raises(BridgeError, match="immutable"):
        store.update_order(order.id, atomiq_swap_id="swap-other")

    # Re-writing the same id is a no-op
    same = store.update_order(order.id, atomiq_swap_id="swap-fixed")
    assert same.atomiq_swap_id == "swap-fixed"


def test_audit_trail_is_append_only(store: SqlAlchemyOrderStore, seed_order: SeedOrder) -> None:
    order = seed_order()

    store.add_action(order.id, ActionType.POLL_ORDER, ActionOutcome.SUCCESS, {"a": 1})
    store.add_action(order.id, ActionType.AUTO_CLAIM, ActionOutcome.FAILED)
    store.add_event(
        order.id,
        EventKind.ORDER_RECONCILED,
        OrderStatus.CREATED,
        OrderStatus.SOURCE_SUBMITTED,
        {"statusRaw": "POSTED"},
    )

    actions = store.list_actions(order.id)
    assert [(a.type, a.outcome) for a in actions] == [
        ("POLL_ORDER", "SUCCESS"),
        ("AUTO_CLAIM", "FAILED"),
    ]
    assert actions[0].detail == {"a": 1}
    assert actions[1].detail is None

    events = store.list_events(order.id)
    assert len(events) == 1
    assert events[0].from_status == "CREATED"
    assert events[0].to_status == "SOURCE_SUBMITTED"


def test_get_active_orders_excludes_terminal_and_respects_limit(
    store: SqlAlchemyOrderStore, seed_order: SeedOrder
) -> None:
    active = [
        seed_order(OrderStatus.CREATED),
        seed_order(OrderStatus.CLAIMING),
        seed_order(OrderStatus.EXPIRED),
        seed_order(OrderStatus.FAILED),
    ]
    seed_order(OrderStatus.SETTLED)
    seed_order(OrderStatus.REFUNDED)

    orders = store.get_active_orders(limit=100)
    assert {order.id for order in orders} == {order.id for order in active}

    assert len(store.get_active_orders(limit=1)) == 1
