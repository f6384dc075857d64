"""Live order routing, order book and operator approval."""

from swingbot.execution.approval import OrderApproval
from swingbot.execution.orders import Order, OrderBook, OrderBookSnapshot, OrderStatus
from swingbot.execution.router import ExecutionRouter, OrderPlacer, PlacementResult

__all__ = [
    "ExecutionRouter",
    "Order",
    "OrderApproval",
    "OrderBook",
    "OrderBookSnapshot",
    "OrderPlacer",
    "OrderStatus",
    "PlacementResult",
]
