"""Bridge order endpoints for the Stark Bridge API."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

from starkbridge.core.errors import (
    BridgeError,
    BridgeValidationError,
    OrderNotFoundError,
    SwapEngineError,
)
from starkbridge.core.settings import settings
from starkbridge.schemas.bridge import (
    BridgeOrderPage,
    CreatedOrder,
    CreatedOrderEnvelope,
    OrderEnvelope,
    SubmitOrderRequest,
)
from starkbridge.services.bridge_orders import BridgeOrderService
from starkbridge.services.validation import validate_create_order_payload

# Configure logger for this module
logger = logging.getLogger(__name__)

GENERIC_ERROR_DETAIL = "Bridge request failed"

router = APIRouter(prefix="/bridge", tags=["bridge"])

T = TypeVar("T")


async def get_bridge_service_dep(request: Request) -> BridgeOrderService:
    """Resolve the process-wide bridge order service from the app state."""
    runtime = getattr(request.app.state, "bridge_runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bridge integration disabled",
        )
    return await runtime.get_service()


BridgeServiceDep = Annotated[BridgeOrderService, Depends(get_bridge_service_dep)]


async def _call(operation: str, action: Callable[[], Awaitable[T]]) -> T:
    """Run a service call and translate bridge errors into HTTP errors."""
    try:
        return await action()
    except BridgeValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SwapEngineError as exc:
        logger.warning("bridge %s failed at swap engine: %s", operation, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except BridgeError as exc:
        logger.error("bridge %s failed: %s", operation, exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=GENERIC_ERROR_DETAIL
        ) from exc
    except Exception as exc:
        logger.exception("bridge %s failed unexpectedly", operation)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=GENERIC_ERROR_DETAIL
        ) from exc


@router.post(
    "/orders",
    response_model=CreatedOrderEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    service: BridgeServiceDep,
    payload: Annotated[dict[str, Any], Body()],
) -> CreatedOrderEnvelope:
    """Open a BTC to Starknet order and return how the user should pay for it.

    Args:
        service: Bridge order service
        payload: Raw order request (sourceAsset, destinationAsset, amount,
            amountType, receiveAddress, walletAddress)

    Returns:
        The new order id, status, deposit address or PSBT and quote

    Raises:
        HTTPException: 400 on invalid input, 502 on swap engine failure
    """

    async def action() -> CreatedOrderEnvelope:
        order_input = validate_create_order_payload(payload, settings.bridge_network)
        order = await service.create_order(order_input)
        return CreatedOrderEnvelope(data=CreatedOrder.from_order(order))

    return await _call("createOrder", action)


@router.get("/orders", response_model=BridgeOrderPage)
async def list_orders(
    service: BridgeServiceDep,
    wallet_address: Annotated[str | None, Query(alias="walletAddress")] = None,
    page: Annotated[str | None, Query()] = None,
    limit: Annotated[str | None, Query()] = None,
) -> BridgeOrderPage:
    """List a wallet's orders, newest first."""
    return await _call(
        "listOrders", lambda: service.list_orders(wallet_address or "", page, limit)
    )


@router.get("/orders/{order_id}", response_model=OrderEnvelope)
async def get_order(order_id: str, service: BridgeServiceDep) -> OrderEnvelope:
    """Return a single order."""
    order = await _call("getOrder", lambda: service.get_order(order_id))
    return OrderEnvelope(data=order)


@router.post("/orders/{order_id}/retry", response_model=OrderEnvelope)
async def retry_order(order_id: str, service: BridgeServiceDep) -> OrderEnvelope:
    """Reconcile an order against the swap engine right away."""
    order = await _call("retryOrder", lambda: service.retry_order(order_id))
    return OrderEnvelope(data=order)


@router.post("/orders/{order_id}/submit", response_model=OrderEnvelope)
async def submit_order(
    order_id: str,
    body: SubmitOrderRequest,
    service: BridgeServiceDep,
) -> OrderEnvelope:
    """Forward a signed PSBT or a paid Bitcoin transaction id for an order."""
    order = await _call(
        "submitOrder",
        lambda: service.submit_order(
            order_id,
            signed_psbt_base64=body.signed_psbt_base64,
            source_tx_id=body.source_tx_id,
        ),
    )
    return OrderEnvelope(data=order)
