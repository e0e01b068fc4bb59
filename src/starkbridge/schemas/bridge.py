"""Bridge order Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from starkbridge.models.bridge_order import OrderStatus

BridgeNetwork = Literal["mainnet", "testnet"]
AmountType = Literal["exactIn", "exactOut"]


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class BridgeCreateOrderInput(CamelModel):
    """Canonical, already validated request to open an incoming swap order."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    network: BridgeNetwork
    source_asset: Literal["BTC"] = "BTC"
    destination_asset: str
    amount: str = Field(..., description="Requested quantity in base units")
    amount_type: AmountType
    receive_address: str
    wallet_address: str


class BridgeOrderRead(CamelModel):
    """Detached snapshot of a persisted bridge order."""

    id: str
    atomiq_swap_id: str | None = None
    network: BridgeNetwork
    source_asset: str = "BTC"
    destination_asset: str
    amount: str
    amount_type: AmountType
    amount_source: str | None = None
    amount_destination: str | None = None
    receive_address: str
    wallet_address: str
    deposit_address: str | None = None
    status: OrderStatus
    source_tx_id: str | None = None
    destination_tx_id: str | None = None
    quote: dict[str, Any] | None = None
    expires_at: datetime | None = None
    last_error: str | None = None
    raw_state: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class PageMeta(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> PageMeta:
        """Derive page navigation flags from a total count."""
        total_pages = (total + limit - 1) // limit if total else 0
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class BridgeOrderPage(CamelModel):
    """One page of a wallet's orders, newest first."""

    data: list[BridgeOrderRead]
    meta: PageMeta


class SubmitOrderRequest(CamelModel):
    """User-side funding submission for an order awaiting payment."""

    signed_psbt_base64: str | None = Field(
        None, description="Signed PSBT to hand to the swap engine for broadcast"
    )
    source_tx_id: str | None = Field(
        None, description="Bitcoin transaction id when the user paid the deposit address"
    )


class CreatedOrder(CamelModel):
    """Summary returned right after an order is opened."""

    order_id: str
    status: OrderStatus
    deposit_address: str | None
    amount_sats: str | None
    quote: dict[str, Any] | None
    payment: dict[str, Any] | None
    expires_at: datetime | None

    @classmethod
    def from_order(cls, order: BridgeOrderRead) -> CreatedOrder:
        quote = order.quote or {}
        return cls(
            order_id=order.id,
            status=order.status,
            deposit_address=order.deposit_address,
            amount_sats=quote.get("amountIn"),
            quote=order.quote,
            payment=quote.get("bitcoinPayment"),
            expires_at=order.expires_at,
        )


class CreatedOrderEnvelope(BaseModel):
    data: CreatedOrder


class OrderEnvelope(BaseModel):
    data: BridgeOrderRead
