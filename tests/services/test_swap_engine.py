# tests/services/test_swap_engine.py
from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
from jose import jwt

from starkbridge.core.errors import PaymentResolutionError, SwapEngineError, SwapNotFoundError
from starkbridge.models import OrderStatus
from starkbridge.schemas.bridge import BridgeOrderRead
from starkbridge.services.swap_engine import (
    TESTNET_WBTC_TICKER,
    SwapEngineClient,
    SwapEngineConfig,
    resolve_destination_token,
)
from tests.conftest import DEPOSIT_ADDRESS, RECEIVE_ADDRESS, WALLET_ADDRESS

BASE_URL = "http://engine.test"
SHARED_SECRET = "engine-shared-secret"

Handler = Callable[[httpx.Request], httpx.Response]


def _config(shared_secret: str | None = None) -> SwapEngineConfig:
    return SwapEngineConfig(
        base_url=BASE_URL,
        shared_secret=shared_secret,
        audience="swap-engine",
        issuer="stark-bridge",
        token_ttl_seconds=300,
        timeout_seconds=5.0,
    )


def _client(handler: Handler, shared_secret: str | None = None) -> SwapEngineClient:
    http_client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return SwapEngineClient(_config(shared_secret), http_client=http_client)


def _swap(**overrides: Any) -> dict[str, Any]:
    swap: dict[str, Any] = {
        "id": "swap-1",
        "state": "PR_CREATED",
        "input": {"amount": "0.0001"},
        "output": {"amount": "6.5"},
        "expiresAt": 1767225600000,
        "payment": {
            "type": "ADDRESS",
            "address": DEPOSIT_ADDRESS,
            "amount": "0.0001",
            "hyperlink": f"bitcoin:{DEPOSIT_ADDRESS}?amount=0.0001",
        },
        "claimable": False,
        "refundable": False,
    }
    swap.update(overrides)
    return swap


def _envelope(swap: dict[str, Any], version: int = 1) -> dict[str, Any]:
    return {"schemaVersion": version, "swap": swap}


def _order(swap_id: str | None = "swap-1") -> BridgeOrderRead:
    now = datetime.now(UTC)
    return BridgeOrderRead(
        id="order-1",
        atomiq_swap_id=swap_id,
        network="testnet",
        destination_asset="USDC",
        amount="10000",
        amount_type="exactIn",
        receive_address=RECEIVE_ADDRESS,
        wallet_address=WALLET_ADDRESS,
        status=OrderStatus.AWAITING_USER_SIGNATURE,
        created_at=now,
        updated_at=now,
    )


def test_resolve_destination_token_uses_testnet_wbtc_ticker() -> None:
    assert resolve_destination_token("testnet", "wbtc") == TESTNET_WBTC_TICKER
    assert resolve_destination_token("mainnet", "WBTC") == "WBTC"
    with pytest.raises(SwapEngineError, match="Unsupported destination asset: DOGE"):
        resolve_destination_token("mainnet", "DOGE")


@pytest.mark.asyncio
async def test_create_incoming_swap_with_deposit_address() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json=_envelope(_swap()))

    client = _client(handler)
    swap = await client.create_incoming_swap(
        network="testnet",
        destination_asset="USDC",
        amount="10000",
        amount_type="exactIn",
        receive_address=RECEIVE_ADDRESS,
    )

    assert len(requests) == 1
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/swaps/incoming"
    assert json.loads(request.content) == {
        "network": "testnet",
        "srcToken": "BTC",
        "dstToken": "USDC",
        "amount": "0.0001",
        "exactIn": True,
        "dstAddress": RECEIVE_ADDRESS,
    }
    assert "Authorization" not in request.headers

    assert swap.engine_swap_id == "swap-1"
    assert swap.status == "PR_CREATED"
    assert swap.amount_source == "10000"
    assert swap.amount_destination == "6500000"
    assert swap.deposit_address == DEPOSIT_ADDRESS
    assert swap.expires_at == datetime(2026, 1, 1, tzinfo=UTC)
    assert swap.payment["type"] == "ADDRESS"
    assert swap.payment["amountSats"] == "10000"
    assert swap.quote["amountIn"] == "10000"
    assert swap.quote["depositAddress"] == DEPOSIT_ADDRESS
    assert swap.quote["bitcoinPayment"] == swap.payment


@pytest.mark.asyncio
async def test_create_exact_out_swap_with_funded_psbt() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        payment = {
            "type": "FUNDED_PSBT",
            "psbtBase64": "cHNidP8BAHECAAAAAQ==",
            "psbtHex": "70736274ff",
            "signInputs": [0, 1],
        }
        return httpx.Response(
            200,
            json=_envelope(
                _swap(input={"amount": "0.00151"}, output={"amount": "0.0015"}, payment=payment)
            ),
        )

    client = _client(handler)
    swap = await client.create_incoming_swap(
        network="testnet",
        destination_asset="WBTC",
        amount="150000",
        amount_type="exactOut",
        receive_address=RECEIVE_ADDRESS,
    )

    # exactOut amounts are destination base units
    assert bodies[0]["dstToken"] == TESTNET_WBTC_TICKER
    assert bodies[0]["amount"] == "0.0015"
    assert bodies[0]["exactIn"] is False

    assert swap.deposit_address is None
    assert swap.amount_source == "151000"
    assert swap.amount_destination == "150000"
    assert swap.payment == {
        "type": "FUNDED_PSBT",
        "psbtBase64": "cHNidP8BAHECAAAAAQ==",
        "psbtHex": "70736274ff",
        "signInputs": [0, 1],
    }


@pytest.mark.asyncio
async def test_create_swap_with_raw_psbt() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payment = {"type": "RAW_PSBT", "psbtBase64": "cHNidP8=", "in1Sequence": 4294967293}
        return httpx.Response(201, json=_envelope(_swap(payment=payment)))

    swap = await _client(handler).create_incoming_swap(
        network="mainnet",
        destination_asset="STRK",
        amount="50000",
        amount_type="exactIn",
        receive_address=RECEIVE_ADDRESS,
    )

    assert swap.payment["type"] == "RAW_PSBT"
    assert swap.payment["in1Sequence"] == 4294967293
    assert swap.quote["depositAddress"] is None


@pytest.mark.asyncio
async def test_missing_payment_is_a_hard_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=_envelope(_swap(payment=None)))

    with pytest.raises(PaymentResolutionError):
        await _client(handler).create_incoming_swap(
            network="testnet",
            destination_asset="USDC",
            amount="10000",
            amount_type="exactIn",
            receive_address=RECEIVE_ADDRESS,
        )


@pytest.mark.asyncio
async def test_unknown_payment_variant_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=_envelope(_swap(payment={"type": "LIGHTNING"})))

    with pytest.raises(SwapEngineError, match="Malformed swap engine response"):
        await _client(handler).create_incoming_swap(
            network="testnet",
            destination_asset="USDC",
            amount="10000",
            amount_type="exactIn",
            receive_address=RECEIVE_ADDRESS,
        )


@pytest.mark.asyncio
async def test_unsupported_schema_version_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json=_envelope(_swap(), version=2))

    with pytest.raises(SwapEngineError):
        await _client(handler).create_incoming_swap(
            network="testnet",
            destination_asset="USDC",
            amount="10000",
            amount_type="exactIn",
            receive_address=RECEIVE_ADDRESS,
        )


@pytest.mark.asyncio
async def test_unsupported_asset_fails_before_calling_engine() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(SwapEngineError, match="Unsupported destination asset"):
        await _client(handler).create_incoming_swap(
            network="mainnet",
            destination_asset="DOGE",
            amount="10000",
            amount_type="exactIn",
            receive_address=RECEIVE_ADDRESS,
        )
    assert calls == []


@pytest.mark.asyncio
async def test_engine_client_errors_and_outages() -> None:
    def rejecting(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "amount too low"})

    with pytest.raises(SwapEngineError, match="amount too low"):
        await _client(rejecting).create_incoming_swap(
            network="testnet",
            destination_asset="USDC",
            amount="1",
            amount_type="exactIn",
            receive_address=RECEIVE_ADDRESS,
        )

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SwapEngineError, match="request failed"):
        await _client(unreachable).get_order_snapshot(_order())


@pytest.mark.asyncio
async def test_snapshot_reports_engine_state() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/swaps/swap-1"
        return httpx.Response(
            200,
            json=_envelope(
                _swap(state="BTC_TX_CONFIRMED", inputTxId="btc-tx-1", claimable=True)
            ),
        )

    snapshot = await _client(handler).get_order_snapshot(_order())

    assert snapshot.status == "BTC_TX_CONFIRMED"
    assert snapshot.source_tx_id == "btc-tx-1"
    assert snapshot.destination_tx_id is None
    assert snapshot.is_claimable is True
    assert snapshot.is_refundable is False
    assert snapshot.raw_state == {
        "state": "BTC_TX_CONFIRMED",
        "claimable": True,
        "refundable": False,
    }


@pytest.mark.asyncio
async def test_snapshot_of_unknown_swap_raises_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "not found"})

    with pytest.raises(SwapNotFoundError):
        await _client(handler).get_order_snapshot(_order())

    with pytest.raises(SwapNotFoundError):
        await _client(handler).get_order_snapshot(_order(swap_id=None))


@pytest.mark.asyncio
async def test_try_claim_success_sends_idempotency_key() -> None:
    claims: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=_envelope(_swap(claimable=True)))
        claims.append(request)
        return httpx.Response(200, json={"txId": "starknet-tx-1"})

    result = await _client(handler).try_claim(_order())

    assert result.success is True
    assert result.tx_id == "starknet-tx-1"
    assert claims[0].url.path == "/v1/swaps/swap-1/claim"
    assert claims[0].headers["Idempotency-Key"] == "claim:swap-1"


@pytest.mark.asyncio
async def test_try_claim_failure_is_reported_not_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json=_envelope(_swap(claimable=True)))
        return httpx.Response(503, text="engine busy")

    result = await _client(handler).try_claim(_order())

    assert result.success is False
    assert result.tx_id is None
    assert result.error is not None
    assert "503" in result.error


@pytest.mark.asyncio
async def test_try_claim_reports_failed_swap_reload() -> None:
    gets: list[httpx.Request] = []
    posts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            posts.append(request)
            return httpx.Response(200, json={"txId": "starknet-tx-1"})
        gets.append(request)
        if len(gets) == 1:
            return httpx.Response(200, json=_envelope(_swap(claimable=True)))
        return httpx.Response(503, text="engine busy")

    client = _client(handler)
    snapshot = await client.get_order_snapshot(_order())
    result = await client.try_claim(_order())

    assert snapshot.is_claimable is True
    assert result.success is False
    assert result.error is not None
    assert "503" in result.error
    assert len(gets) == 2
    assert posts == []


@pytest.mark.asyncio
async def test_try_refund_reports_missing_swap_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("engine must not be called")

    result = await _client(handler).try_refund(_order(swap_id=None))

    assert result.success is False
    assert result.error == "Missing atomiqSwapId for bridge order"


@pytest.mark.asyncio
async def test_try_refund_skips_ineligible_swap() -> None:
    posts: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            posts.append(request)
        return httpx.Response(200, json=_envelope(_swap(refundable=False)))

    result = await _client(handler).try_refund(_order())

    assert result.success is False
    assert result.error is None
    assert posts == []


@pytest.mark.asyncio
async def test_submit_signed_psbt() -> None:
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/swaps/swap-1/submit-psbt"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"txId": "btc-tx-9"})

    client = _client(handler)
    tx_id = await client.submit_incoming_swap(_order(), signed_psbt_base64="c2lnbmVk")

    assert tx_id == "btc-tx-9"
    assert bodies == [{"psbtBase64": "c2lnbmVk"}]
    # A plain deposit payment only needs the user's transaction id echoed back
    assert await client.submit_incoming_swap(_order(), source_tx_id="btc-tx-2") == "btc-tx-2"


@pytest.mark.asyncio
async def test_shared_secret_adds_signed_bearer_token() -> None:
    headers: list[httpx.Headers] = []

    def handler(request: httpx.Request) -> httpx.Response:
        headers.append(request.headers)
        return httpx.Response(200, json=_envelope(_swap()))

    await _client(handler, shared_secret=SHARED_SECRET).get_order_snapshot(_order())

    scheme, token = headers[0]["Authorization"].split(" ", 1)
    assert scheme == "Bearer"
    claims = jwt.decode(token, SHARED_SECRET, algorithms=["HS256"], audience="swap-engine")
    assert claims["iss"] == "stark-bridge"
    assert claims["exp"] > claims["iat"]


@pytest.mark.asyncio
async def test_close_leaves_injected_client_open() -> None:
    http_client = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(lambda request: httpx.Response(200)),
    )
    client = SwapEngineClient(_config(), http_client=http_client)

    await client.close()

    assert http_client.is_closed is False
    await http_client.aclose()
