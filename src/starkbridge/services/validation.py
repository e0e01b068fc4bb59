"""Validation and normalization of inbound bridge order requests.

Everything here is pure: no I/O and no side effects. Each failure raises a
``BridgeValidationError`` whose message names the offending field.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from starkbridge.core.errors import BridgeValidationError
from starkbridge.schemas.bridge import AmountType, BridgeCreateOrderInput, BridgeNetwork
from starkbridge.services.amounts import MAX_AMOUNT_DIGITS

SUPPORTED_DESTINATION_ASSETS = ("USDC", "ETH", "STRK", "WBTC", "USDT", "TBTC")
MAX_LIST_LIMIT = 100
DEFAULT_PAGE = 1
DEFAULT_LIST_LIMIT = 20

# Starknet addresses are field elements below 2**251.
STARKNET_ADDRESS_UPPER_BOUND = 2**251
_STARKNET_ADDRESS = re.compile(r"0x[0-9a-fA-F]{1,64}")
_POSITIVE_INTEGER = re.compile(r"[0-9]+")


def _as_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        # str() of a huge int trips the interpreter's digit limit.
        return str(value) if value.bit_length() <= 1024 else ""
    return ""


def normalize_wallet_address(value: Any) -> str:
    return _as_string(value).strip().lower()


def validate_amount_type(value: Any) -> AmountType:
    normalized = _as_string(value).strip()
    if normalized not in ("exactIn", "exactOut"):
        raise BridgeValidationError("amountType must be one of: exactIn, exactOut")
    return normalized  # type: ignore[return-value]


def validate_positive_integer_string(value: Any, field: str) -> str:
    """Return ``value`` as a canonical positive base-unit integer string."""
    normalized = _as_string(value).strip()
    if not _POSITIVE_INTEGER.fullmatch(normalized):
        raise BridgeValidationError(f"{field} must be a positive integer string")
    if len(normalized.lstrip("0")) > MAX_AMOUNT_DIGITS:
        raise BridgeValidationError(f"{field} must be at most {MAX_AMOUNT_DIGITS} digits")
    if int(normalized) <= 0:
        raise BridgeValidationError(f"{field} must be greater than zero")
    return normalized


def validate_destination_asset(value: Any) -> str:
    normalized = _as_string(value).strip().upper()
    if normalized not in SUPPORTED_DESTINATION_ASSETS:
        raise BridgeValidationError(
            "destinationAsset is unsupported, use one of: "
            + ", ".join(SUPPORTED_DESTINATION_ASSETS)
        )
    return normalized


def parse_starknet_address(raw: str) -> str:
    """Parse a Starknet address into its zero-padded lower-case form.

    Raises:
        ValueError: If ``raw`` is not a hex felt within the address range.
    """
    if not _STARKNET_ADDRESS.fullmatch(raw):
        raise ValueError(f"not a hex address: {raw!r}")
    value = int(raw, 16)
    if value >= STARKNET_ADDRESS_UPPER_BOUND:
        raise ValueError("address out of range")
    return f"0x{value:064x}"


def validate_starknet_receive_address(value: Any) -> str:
    raw = _as_string(value).strip()
    if not raw:
        raise BridgeValidationError("receiveAddress is required")
    try:
        return parse_starknet_address(raw)
    except ValueError as err:
        raise BridgeValidationError("receiveAddress must be a valid Starknet address") from err


def validate_create_order_payload(
    payload: Mapping[str, Any] | None,
    network: BridgeNetwork,
) -> BridgeCreateOrderInput:
    """Turn a raw JSON body into a canonical create-order input.

    Args:
        payload: Untyped request body.
        network: Bitcoin network the service is configured for.

    Returns:
        The normalized order input.

    Raises:
        BridgeValidationError: On the first invalid field.
    """
    body: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}

    source_asset = _as_string(body.get("sourceAsset")).strip().upper()
    if source_asset != "BTC":
        raise BridgeValidationError("sourceAsset must be BTC for incoming bridge")

    wallet_address = normalize_wallet_address(body.get("walletAddress"))
    if not wallet_address:
        raise BridgeValidationError("walletAddress is required")

    return BridgeCreateOrderInput(
        network=network,
        source_asset="BTC",
        destination_asset=validate_destination_asset(body.get("destinationAsset")),
        amount=validate_positive_integer_string(body.get("amount"), "amount"),
        amount_type=validate_amount_type(body.get("amountType")),
        receive_address=validate_starknet_receive_address(body.get("receiveAddress")),
        wallet_address=wallet_address,
    )


def validate_pagination(page: Any, limit: Any) -> tuple[int, int]:
    """Validate page/limit and cap ``limit`` at ``MAX_LIST_LIMIT``."""
    page_value = DEFAULT_PAGE if page is None else page
    limit_value = DEFAULT_LIST_LIMIT if limit is None else limit
    if isinstance(page_value, str):
        page_value = int(validate_positive_integer_string(page_value, "page"))
    if isinstance(limit_value, str):
        limit_value = int(validate_positive_integer_string(limit_value, "limit"))

    if isinstance(page_value, bool) or not isinstance(page_value, int) or page_value < 1:
        raise BridgeValidationError("page must be a positive integer")
    if isinstance(limit_value, bool) or not isinstance(limit_value, int) or limit_value < 1:
        raise BridgeValidationError("limit must be a positive integer")
    return page_value, min(limit_value, MAX_LIST_LIMIT)

