"""Swap engine client for BTC to Starknet incoming swaps.

This module provides the adapter between the bridge order service and the
external swap engine that builds deposit addresses/PSBTs, tracks Bitcoin
confirmations and executes claim/refund transactions. It includes:

- HTTP client with optional shared-secret JWT authentication
- Strict, versioned parsing of engine responses
- Conversion between base units and the engine's decimal-string amounts
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from jose import jwt
from pydantic import ValidationError

from starkbridge.core.errors import (
    BridgeValidationError,
    PaymentResolutionError,
    SwapEngineError,
    SwapNotFoundError,
)
from starkbridge.core.settings import settings
from starkbridge.schemas.bridge import AmountType, BridgeNetwork, BridgeOrderRead
from starkbridge.schemas.swap_engine import (
    AddressPayment,
    EngineSwap,
    FundedPsbt,
    RawPsbt,
    SwapEnvelope,
    TxResult,
)
from starkbridge.services.amounts import (
    DESTINATION_DECIMALS,
    SOURCE_DECIMALS,
    get_destination_decimals,
    to_base_units,
    to_decimal_string,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_ACCEPTED = 202
HTTP_NOT_FOUND = 404
HTTP_INTERNAL_SERVER_ERROR = 500

TESTNET_WBTC_TICKER = "_TESTNET_WBTC_VESU"


@dataclass(frozen=True)
class SwapEngineConfig:
    """Immutable configuration for swap engine access."""

    base_url: str
    shared_secret: str | None
    audience: str
    issuer: str
    token_ttl_seconds: int
    timeout_seconds: float


def load_swap_engine_config() -> SwapEngineConfig:
    """Build a swap engine configuration from application settings."""

    return SwapEngineConfig(
        base_url=settings.swap_engine_base_url,
        shared_secret=settings.swap_engine_shared_secret,
        audience=settings.swap_engine_audience,
        issuer=settings.swap_engine_issuer,
        token_ttl_seconds=settings.swap_engine_token_ttl_seconds,
        timeout_seconds=float(settings.swap_engine_http_timeout_seconds),
    )


@dataclass(frozen=True)
class IncomingSwap:
    """Result of opening an incoming swap on the engine."""

    engine_swap_id: str
    status: str
    quote: dict[str, Any]
    expires_at: datetime | None
    amount_source: str | None
    amount_destination: str | None
    deposit_address: str | None
    payment: dict[str, Any]


@dataclass(frozen=True)
class OrderSnapshot:
    """Point-in-time view of the engine's swap behind an order."""

    status: str | None
    source_tx_id: str | None
    destination_tx_id: str | None
    raw_state: dict[str, Any] = field(default_factory=dict)
    is_claimable: bool = False
    is_refundable: bool = False


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a claim or refund attempt."""

    success: bool
    tx_id: str | None = None
    error: str | None = None


class SwapEngine(Protocol):
    """Operations the bridge order service needs from a swap engine."""

    async def create_incoming_swap(
        self,
        network: BridgeNetwork,
        destination_asset: str,
        amount: str,
        amount_type: AmountType,
        receive_address: str,
    ) -> IncomingSwap: ...

    async def get_order_snapshot(self, order: BridgeOrderRead) -> OrderSnapshot: ...

    async def try_claim(self, order: BridgeOrderRead) -> ActionResult: ...

    async def try_refund(self, order: BridgeOrderRead) -> ActionResult: ...

    async def submit_incoming_swap(
        self,
        order: BridgeOrderRead,
        signed_psbt_base64: str | None = None,
        source_tx_id: str | None = None,
    ) -> str | None: ...


def resolve_destination_token(network: BridgeNetwork, destination_asset: str) -> str:
    """Return the engine ticker for a destination asset on ``network``."""
    asset = destination_asset.strip().upper()
    ticker = TESTNET_WBTC_TICKER if network == "testnet" and asset == "WBTC" else asset
    if ticker not in DESTINATION_DECIMALS:
        raise SwapEngineError(f"Unsupported destination asset: {destination_asset}")
    return ticker


def describe_payment(payment: AddressPayment | FundedPsbt | RawPsbt) -> dict[str, Any]:
    """Render a payment artifact in the shape exposed to API callers."""
    if isinstance(payment, AddressPayment):
        described: dict[str, Any] = {"type": payment.type, "address": payment.address}
        if payment.amount is not None:
            described["amountSats"] = str(_engine_amount(payment.amount, SOURCE_DECIMALS))
        if payment.hyperlink:
            described["hyperlink"] = payment.hyperlink
        return described
    if isinstance(payment, FundedPsbt):
        return {
            "type": payment.type,
            "psbtBase64": payment.psbt_base64,
            "psbtHex": payment.psbt_hex,
            "signInputs": list(payment.sign_inputs),
        }
    if isinstance(payment, RawPsbt):
        return {
            "type": payment.type,
            "psbtBase64": payment.psbt_base64,
            "psbtHex": payment.psbt_hex,
            "in1Sequence": payment.in1_sequence,
        }
    raise PaymentResolutionError(f"Unknown payment artifact: {type(payment).__name__}")


def _engine_amount(amount: str, decimals: int) -> int:
    try:
        return to_base_units(amount, decimals)
    except BridgeValidationError as err:
        raise SwapEngineError(f"Swap engine returned an invalid amount: {amount!r}") from err


class SwapEngineClient:
    """HTTP client wrapper for swap engine interactions."""

    def __init__(
        self,
        config: SwapEngineConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or load_swap_engine_config()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
        )

    def _build_auth_headers(self, *, idempotency_key: str | None = None) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}

        if self.config.shared_secret:
            now = int(time.time())
            payload = {
                "iss": self.config.issuer,
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(payload, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"

        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: Any | None = None,
        idempotency_key: str | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                path,
                json=json_data,
                headers=self._build_auth_headers(idempotency_key=idempotency_key),
            )
        except httpx.HTTPError as exc:
            raise SwapEngineError(f"Swap engine request failed: {exc}") from exc

        if response.status_code >= HTTP_INTERNAL_SERVER_ERROR:
            raise SwapEngineError(
                f"Swap engine responded with {response.status_code} for {method} {path}"
            )
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("error") or body.get("message") or body)
        return str(body)

    @staticmethod
    def _parse_swap(response: httpx.Response) -> EngineSwap:
        try:
            return SwapEnvelope.model_validate(response.json()).swap
        except (ValueError, ValidationError) as exc:
            raise SwapEngineError(f"Malformed swap engine response: {exc}") from exc

    @staticmethod
    def _parse_tx(response: httpx.Response) -> TxResult:
        try:
            return TxResult.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SwapEngineError(f"Malformed swap engine response: {exc}") from exc

    @staticmethod
    def _swap_path(swap_id: str, action: str | None = None) -> str:
        path = f"/v1/swaps/{quote(swap_id, safe='')}"
        return f"{path}/{action}" if action else path

    async def _get_swap(self, order: BridgeOrderRead) -> EngineSwap:
        if not order.atomiq_swap_id:
            raise SwapNotFoundError("Missing atomiqSwapId for bridge order")

        response = await self._request("GET", self._swap_path(order.atomiq_swap_id))
        if response.status_code == HTTP_NOT_FOUND:
            raise SwapNotFoundError(f"Swap {order.atomiq_swap_id} not found on swap engine")
        if response.status_code != HTTP_OK:
            raise SwapEngineError(
                f"Unexpected swap engine response ({response.status_code}) "
                f"when loading swap: {self._error_detail(response)}"
            )
        return self._parse_swap(response)

    async def create_incoming_swap(
        self,
        network: BridgeNetwork,
        destination_asset: str,
        amount: str,
        amount_type: AmountType,
        receive_address: str,
    ) -> IncomingSwap:
        """Open an incoming swap and resolve how the user has to pay for it.

        ``amount`` is in base units: satoshis for ``exactIn``, destination
        token units for ``exactOut``. An ``exactOut`` amount is never read as
        satoshis; it is scaled with the destination token decimals before it
        goes to the engine.

        Raises:
            SwapEngineError: Unsupported asset, engine failure or missing swap id.
            PaymentResolutionError: No deposit address or PSBT in the response.
        """
        ticker = resolve_destination_token(network, destination_asset)
        decimals = get_destination_decimals(ticker)
        exact_in = amount_type == "exactIn"
        amount_for_engine = to_decimal_string(
            to_base_units(amount, 0), SOURCE_DECIMALS if exact_in else decimals
        )

        response = await self._request(
            "POST",
            "/v1/swaps/incoming",
            json_data={
                "network": network,
                "srcToken": "BTC",
                "dstToken": ticker,
                "amount": amount_for_engine,
                "exactIn": exact_in,
                "dstAddress": receive_address,
            },
        )
        if response.status_code not in (HTTP_OK, HTTP_CREATED):
            raise SwapEngineError(
                f"Unexpected swap engine response ({response.status_code}) "
                f"when creating swap: {self._error_detail(response)}"
            )

        swap = self._parse_swap(response)
        if not swap.id.strip():
            raise SwapEngineError("Unable to create swap engine swap id")

        if swap.payment is None:
            logger.error(
                "Swap engine returned no payment artifact for swap %s (state=%s)",
                swap.id,
                swap.state,
            )
            raise PaymentResolutionError(
                f"Swap engine returned no deposit address or PSBT for swap {swap.id}"
            )

        payment = describe_payment(swap.payment)
        deposit_address = (
            swap.payment.address if isinstance(swap.payment, AddressPayment) else None
        )

        amount_source = (
            str(_engine_amount(swap.input.amount, SOURCE_DECIMALS))
            if swap.input is not None
            else (amount if exact_in else None)
        )
        amount_destination = (
            str(_engine_amount(swap.output.amount, decimals))
            if swap.output is not None
            else (None if exact_in else amount)
        )
        if "amountSats" not in payment and deposit_address and amount_source:
            payment["amountSats"] = amount_source

        quote_snapshot: dict[str, Any] = {
            "amountIn": amount_source,
            "amountOut": amount_destination,
            "depositAddress": deposit_address,
            "bitcoinPayment": payment,
        }

        return IncomingSwap(
            engine_swap_id=swap.id,
            status=swap.state,
            quote=quote_snapshot,
            expires_at=swap.expires_at,
            amount_source=amount_source,
            amount_destination=amount_destination,
            deposit_address=deposit_address,
            payment=payment,
        )

    async def get_order_snapshot(self, order: BridgeOrderRead) -> OrderSnapshot:
        """Fetch the engine's current view of the swap behind ``order``."""
        swap = await self._get_swap(order)
        return OrderSnapshot(
            status=swap.state,
            source_tx_id=swap.input_tx_id,
            destination_tx_id=swap.output_tx_id,
            raw_state={
                "state": swap.state,
                "claimable": swap.claimable,
                "refundable": swap.refundable,
            },
            is_claimable=swap.claimable,
            is_refundable=swap.refundable,
        )

    async def _try_settle(self, order: BridgeOrderRead, action: str) -> ActionResult:
        swap_id = order.atomiq_swap_id
        try:
            swap = await self._get_swap(order)
            eligible = swap.claimable if action == "claim" else swap.refundable
            if not eligible:
                return ActionResult(success=False)

            response = await self._request(
                "POST",
                self._swap_path(swap.id, action),
                idempotency_key=f"{action}:{swap.id}",
            )
            if response.status_code not in (HTTP_OK, HTTP_CREATED, HTTP_ACCEPTED):
                raise SwapEngineError(
                    f"Unexpected swap engine response ({response.status_code}) "
                    f"on {action}: {self._error_detail(response)}"
                )
            result = self._parse_tx(response)
        except SwapEngineError as exc:
            logger.warning("Swap engine %s failed for swap %s: %s", action, swap_id, exc)
            return ActionResult(success=False, error=str(exc))

        return ActionResult(success=True, tx_id=result.tx_id)

    async def try_claim(self, order: BridgeOrderRead) -> ActionResult:
        """Claim the destination payout if the swap is currently claimable."""
        return await self._try_settle(order, "claim")

    async def try_refund(self, order: BridgeOrderRead) -> ActionResult:
        """Refund the source funds if the swap is currently refundable."""
        return await self._try_settle(order, "refund")

    async def submit_incoming_swap(
        self,
        order: BridgeOrderRead,
        signed_psbt_base64: str | None = None,
        source_tx_id: str | None = None,
    ) -> str | None:
        """Hand the user's funding to the engine and return the source tx id."""
        if signed_psbt_base64:
            if not order.atomiq_swap_id:
                raise SwapNotFoundError("Missing atomiqSwapId for bridge order")
            response = await self._request(
                "POST",
                self._swap_path(order.atomiq_swap_id, "submit-psbt"),
                json_data={"psbtBase64": signed_psbt_base64},
                idempotency_key=f"submit:{order.atomiq_swap_id}",
            )
            if response.status_code == HTTP_NOT_FOUND:
                raise SwapNotFoundError(f"Swap {order.atomiq_swap_id} not found on swap engine")
            if response.status_code not in (HTTP_OK, HTTP_CREATED, HTTP_ACCEPTED):
                raise SwapEngineError(
                    f"Unexpected swap engine response ({response.status_code}) "
                    f"when submitting PSBT: {self._error_detail(response)}"
                )
            return self._parse_tx(response).tx_id
        if source_tx_id:
            return source_tx_id
        raise BridgeValidationError("Either signedPsbtBase64 or sourceTxId must be provided")

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        if self._owns_client:
            await self._client.aclose()
