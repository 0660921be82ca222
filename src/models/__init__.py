from src.models.order import (
    ExecutionType,
    NormalizedOrderRequest,
    OrderSide,
    OrderValidation,
    SignedOrder,
    TradeMode,
)
from src.models.session import L2Credentials, Session, SessionState, SessionStatus

__all__ = [
    "ExecutionType",
    "L2Credentials",
    "NormalizedOrderRequest",
    "OrderSide",
    "OrderValidation",
    "Session",
    "SessionState",
    "SessionStatus",
    "SignedOrder",
    "TradeMode",
]
