"""Operator approval of orders held for manual review."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from swingbot.connectors.notifier import NotificationSink, safe_notify
from swingbot.errors import ApprovalError, OrderNotFoundError
from swingbot.execution.orders import Order, OrderBook, OrderStatus
from swingbot.models import ExecutionResult

if TYPE_CHECKING:
    from swingbot.execution.router import ExecutionRouter
    from swingbot.monitoring.metrics import Metrics


class OrderApproval:
    def __init__(
        self,
        order_book: OrderBook,
        router: ExecutionRouter | None = None,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
        place_on_approval: bool = True,
    ) -> None:
        self.order_book = order_book
        self.router = router
        self.notifier = notifier
        self.metrics = metrics
        self.place_on_approval = place_on_approval
        self.log = structlog.get_logger(__name__)

    def _pending(self, order_id: str) -> Order:
        order = self.order_book.get(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found")
        if not order.requires_approval:
            raise ApprovalError("Order does not require approval")
        if order.status is not OrderStatus.PENDING or order.approved_at or order.rejected_at:
            raise ApprovalError("Order already processed")
        return order

    def approve(self, order_id: str, approved_by: str = "operator") -> tuple[Order, ExecutionResult | None]:
        """Approve a held order and, when configured, place it.

        Raises:
            OrderNotFoundError: unknown order id.
            ApprovalError: order not held for approval or already decided.
        """
        with self.order_book.lock:
            order = self._pending(order_id)
            order.approved_at = datetime.now(timezone.utc)
            order.approved_by = approved_by
            self.order_book.save(order)
            self.log.info("order_approved", order_id=order.order_id, approved_by=approved_by)
            safe_notify(
                self.notifier,
                f"ORDER APPROVED: {order.side} {order.quantity} {order.symbol}",
                {"order_id": order.order_id, "approved_by": approved_by},
                self.metrics,
            )
            result = None
            if self.place_on_approval and self.router is not None:
                result = self.router.place_approved(order)
            self._update_gauge()
            return order, result

    def reject(
        self,
        order_id: str,
        reason: str = "Rejected by operator",
        rejected_by: str = "operator",
    ) -> Order:
        with self.order_book.lock:
            order = self._pending(order_id)
            order.status = OrderStatus.CANCELLED
            order.rejected_at = datetime.now(timezone.utc)
            order.rejected_by = rejected_by
            order.rejection_reason = reason
            self.order_book.save(order)
            self.log.info(
                "order_rejected_by_operator",
                order_id=order.order_id,
                rejected_by=rejected_by,
                reason=reason,
            )
            safe_notify(
                self.notifier,
                f"ORDER REJECTED: {order.side} {order.quantity} {order.symbol}",
                {"order_id": order.order_id, "rejected_by": rejected_by, "reason": reason},
                self.metrics,
            )
            self._update_gauge()
            return order

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.pending_approvals.set(len(self.order_book.pending_approval()))
