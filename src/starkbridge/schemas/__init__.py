# src/starkbridge/schemas/__init__.py
"""
Pydantic schemas for API request/response models and the swap engine wire format.
"""

from .bridge import (
    BridgeCreateOrderInput,
    BridgeOrderPage,
    BridgeOrderRead,
    CreatedOrder,
    PageMeta,
    SubmitOrderRequest,
)
from .swap_engine import AddressPayment, FundedPsbt, RawPsbt, SwapEnvelope

__all__ = [
    "BridgeCreateOrderInput", "BridgeOrderPage", "BridgeOrderRead",
    "CreatedOrder", "PageMeta", "SubmitOrderRequest",
    "AddressPayment", "FundedPsbt", "RawPsbt", "SwapEnvelope",
]
