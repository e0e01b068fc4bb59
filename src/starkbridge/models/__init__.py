# src/starkbridge/models/__init__.py
"""SQLAlchemy models for the Stark Bridge service."""

from .bridge_order import (
    ACTIVE_STATUSES,
    LAPSED_STATUSES,
    TERMINAL_STATUSES,
    ActionOutcome,
    ActionType,
    BridgeAction,
    BridgeEvent,
    BridgeOrder,
    EventKind,
    OrderStatus,
)

__all__ = [
    "ACTIVE_STATUSES", "LAPSED_STATUSES", "TERMINAL_STATUSES",
    "ActionOutcome", "ActionType", "EventKind", "OrderStatus",
    "BridgeAction", "BridgeEvent", "BridgeOrder",
]
