"""Exception hierarchy shared by the bridge order service and its API."""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base exception raised for bridge-related failures."""


class BridgeValidationError(BridgeError, ValueError):
    """Raised when caller input is malformed or out of range.

    Validation never touches storage or the swap engine, so these map to a
    client error.
    """


class OrderNotFoundError(BridgeError, LookupError):
    """Raised when a referenced bridge order does not exist."""

    def __init__(self, order_id: str) -> None:
        super().__init__("Bridge order not found")
        self.order_id = order_id


class SwapEngineError(BridgeError):
    """Raised when a swap engine call fails or returns something unusable."""


class SwapNotFoundError(SwapEngineError):
    """Raised when the swap engine cannot locate the swap behind an order."""


class PaymentResolutionError(SwapEngineError):
    """Raised when a created swap carries no usable deposit address or PSBT."""
