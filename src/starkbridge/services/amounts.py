"""Token amount conversion between base units and decimal strings.

Base units (e.g. ``"10000000"`` satoshis for 0.1 BTC) are used everywhere in
the API and the database. Decimal strings (``"0.1"``) are only used on the
wire to the swap engine. Conversions are pure string/integer arithmetic; no
floating point is ever involved.
"""

from __future__ import annotations

import re

from starkbridge.core.errors import BridgeValidationError

SOURCE_DECIMALS = 8  # BTC
DEFAULT_DECIMALS = 8

DESTINATION_DECIMALS: dict[str, int] = {
    "WBTC": 8,
    "TBTC": 18,
    "ETH": 18,
    "STRK": 18,
    "USDC": 6,
    "USDT": 6,
    "_TESTNET_WBTC_VESU": 8,
}

_DECIMAL_CHARS = re.compile(r"[0-9.]+")

# Amounts are bounded to uint256-sized values (78 decimal digits).
MAX_AMOUNT_DIGITS = 78
_AMOUNT_LIMIT = 10**MAX_AMOUNT_DIGITS


def get_destination_decimals(asset: str) -> int:
    """Return the decimal count of a destination asset, 8 when unknown."""
    return DESTINATION_DECIMALS.get(asset.upper(), DEFAULT_DECIMALS)


def to_base_units(amount: str, decimals: int) -> int:
    """Convert a decimal string to base units.

    Fractional digits beyond ``decimals`` are truncated, never rounded.

    Examples:
        >>> to_base_units("0.001", 8)
        100000
        >>> to_base_units("100", 6)
        100000000
    """
    trimmed = amount.strip() if isinstance(amount, str) else ""
    if (
        not trimmed
        or not _DECIMAL_CHARS.fullmatch(trimmed)
        or trimmed.startswith(".")
        or trimmed.endswith(".")
        or trimmed.count(".") > 1
    ):
        raise BridgeValidationError(f"Invalid token amount: {amount!r}")
    if decimals < 0:
        raise BridgeValidationError(f"decimals must be non-negative, got {decimals}")

    before, _, after = trimmed.partition(".")
    digits = before.lstrip("0") + after[:decimals].ljust(decimals, "0")
    if len(digits.lstrip("0")) > MAX_AMOUNT_DIGITS:
        raise BridgeValidationError(f"Token amount exceeds {MAX_AMOUNT_DIGITS} digits")
    return int(digits) if digits else 0


def to_decimal_string(base_units: int, decimals: int) -> str:
    """Convert base units to the shortest exact decimal string.

    Examples:
        >>> to_decimal_string(100000, 8)
        '0.001'
        >>> to_decimal_string(100000000, 6)
        '100'
    """
    if isinstance(base_units, bool) or not isinstance(base_units, int):
        raise BridgeValidationError(f"base units must be an integer, got {base_units!r}")
    if base_units < 0:
        raise BridgeValidationError("base units must be non-negative")
    if decimals <= 0:
        base_units *= 10 ** (-decimals)
    if base_units >= _AMOUNT_LIMIT:
        raise BridgeValidationError(f"base units exceed {MAX_AMOUNT_DIGITS} digits")
    if decimals <= 0:
        return str(base_units)

    padded = str(base_units).rjust(decimals + 1, "0")
    split_point = len(padded) - decimals
    int_part = padded[:split_point].lstrip("0") or "0"
    fraction = padded[split_point:].rstrip("0") or "0"
    return int_part if fraction == "0" else f"{int_part}.{fraction}"
