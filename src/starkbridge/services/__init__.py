"""Business logic services for the Stark Bridge application."""

from .bridge_orders import BridgeOrderService, ReconcileSummary
from .bridge_runtime import BridgeRuntime
from .order_store import OrderStore, SqlAlchemyOrderStore
from .recovery_poller import RecoveryPoller
from .swap_engine import SwapEngine, SwapEngineClient

__all__ = [
    "BridgeOrderService",
    "ReconcileSummary",
    "BridgeRuntime",
    "OrderStore",
    "SqlAlchemyOrderStore",
    "RecoveryPoller",
    "SwapEngine",
    "SwapEngineClient",
]
