# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BRIDGE_ENABLED", "false")

from starkbridge.api.v1.endpoints.bridge import get_bridge_service_dep
from starkbridge.db.session import Base
from starkbridge.main import app as fastapi_app
from starkbridge.models import OrderStatus
from starkbridge.schemas.bridge import BridgeCreateOrderInput, BridgeOrderRead
from starkbridge.services.bridge_orders import BridgeOrderService
from starkbridge.services.order_store import SqlAlchemyOrderStore
from starkbridge.services.swap_engine import (
    ActionResult,
    IncomingSwap,
    OrderSnapshot,
    SwapEngineClient,
)

TEST_DB_URL = "sqlite://"

WALLET_ADDRESS = "0xabc0000000000000000000000000000000000000000000000000000000000def"
RECEIVE_ADDRESS = "0x" + "0" * 61 + "123"
DEPOSIT_ADDRESS = "tb1qdeposit0000000000000000000000000000000"


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> Iterator[Callable[[], Session]]:
    factory = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        # The store commits on every call, so clean up table by table.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def store(session_factory: Callable[[], Session]) -> SqlAlchemyOrderStore:
    return SqlAlchemyOrderStore(session_factory)


def build_order_input(**overrides: Any) -> BridgeCreateOrderInput:
    values: dict[str, Any] = {
        "network": "testnet",
        "source_asset": "BTC",
        "destination_asset": "USDC",
        "amount": "10000",
        "amount_type": "exactIn",
        "receive_address": RECEIVE_ADDRESS,
        "wallet_address": WALLET_ADDRESS,
    }
    values.update(overrides)
    return BridgeCreateOrderInput(**values)


def build_incoming_swap(swap_id: str = "swap-1", **overrides: Any) -> IncomingSwap:
    payment = {"type": "ADDRESS", "address": DEPOSIT_ADDRESS, "amountSats": "10000"}
    values: dict[str, Any] = {
        "engine_swap_id": swap_id,
        "status": "PR_CREATED",
        "quote": {
            "amountIn": "10000",
            "amountOut": "6500000",
            "depositAddress": DEPOSIT_ADDRESS,
            "bitcoinPayment": payment,
        },
        "expires_at": datetime.now(UTC) + timedelta(hours=1),
        "amount_source": "10000",
        "amount_destination": "6500000",
        "deposit_address": DEPOSIT_ADDRESS,
        "payment": payment,
    }
    values.update(overrides)
    return IncomingSwap(**values)


def build_snapshot(state: str | None, **overrides: Any) -> OrderSnapshot:
    values: dict[str, Any] = {
        "status": state,
        "source_tx_id": None,
        "destination_tx_id": None,
        "raw_state": {"state": state},
        "is_claimable": False,
        "is_refundable": False,
    }
    values.update(overrides)
    return OrderSnapshot(**values)


@pytest.fixture()
def mock_swap_engine() -> AsyncMock:
    engine = AsyncMock(spec=SwapEngineClient)
    engine.create_incoming_swap.return_value = build_incoming_swap()
    engine.get_order_snapshot.return_value = build_snapshot("PR_CREATED")
    engine.try_claim.return_value = ActionResult(success=False)
    engine.try_refund.return_value = ActionResult(success=False)
    engine.submit_incoming_swap.return_value = None
    return engine


@pytest.fixture()
def service(store: SqlAlchemyOrderStore, mock_swap_engine: AsyncMock) -> BridgeOrderService:
    return BridgeOrderService(store, mock_swap_engine)


@pytest.fixture()
def seed_order(store: SqlAlchemyOrderStore) -> Callable[..., BridgeOrderRead]:
    """Persist an order directly, bypassing the swap engine."""

    counter = iter(range(1, 10_000))

    def _seed(status: OrderStatus = OrderStatus.CREATED, **overrides: Any) -> BridgeOrderRead:
        swap_id = overrides.pop("engine_swap_id", f"seed-swap-{next(counter)}")
        wallet = overrides.pop("wallet_address", WALLET_ADDRESS)
        return store.create_order(
            input=build_order_input(wallet_address=wallet),
            status=status,
            engine_swap_id=swap_id,
            quote=build_incoming_swap(swap_id).quote,
            raw_state={"state": "PR_CREATED"},
            deposit_address=DEPOSIT_ADDRESS,
            **overrides,
        )

    return _seed


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def override_bridge_service(app: FastAPI, service: BridgeOrderService) -> Iterator[None]:
    async def _service_override() -> BridgeOrderService:
        return service

    app.dependency_overrides[get_bridge_service_dep] = _service_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_bridge_service_dep, None)


@pytest.fixture()
def client(app: FastAPI, override_bridge_service: None) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
