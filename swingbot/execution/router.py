"""Route signals to paper simulation or to the live broker behind the risk gate."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol

import structlog

from swingbot.config.settings import ExecutionConfig, RiskConfig
from swingbot.connectors.llm_review import ReviewContract, apply_review
from swingbot.connectors.notifier import NotificationSink, safe_notify
from swingbot.execution.orders import Order, OrderBook, OrderStatus
from swingbot.models import (
    ExecutionResult,
    ExecutionStatus,
    RiskCheck,
    RiskDecision,
    Signal,
    SignalDirection,
)
from swingbot.risk.gate import MANUAL_APPROVAL, BalanceProvider, OrderRequest, RiskGate

if TYPE_CHECKING:
    from swingbot.monitoring.metrics import Metrics
    from swingbot.paper.simulator import PaperSimulator


FILLED_BROKER_STATUSES = ("executed", "traded", "filled")


@dataclass(frozen=True)
class PlacementResult:
    success: bool
    broker_order_id: str | None = None
    status: str | None = None
    error: str | None = None


class OrderPlacer(Protocol):
    def place_order(
        self,
        symbol: str,
        side: str,
        quantity: int,
        order_type: str,
        client_order_id: str,
        dry_run: bool,
    ) -> PlacementResult: ...


def client_order_id(request: OrderRequest, now: float | None = None) -> str:
    prefix = "L" if request.direction is SignalDirection.LONG else "S"
    stamp = str(int(now if now is not None else time.time()))[-6:]
    return f"{prefix}-{request.security_id}-{stamp}"


class ExecutionRouter:
    """Single entry point for executing a signal.

    Paper mode skips balance, circuit breaker and approval checks and hands
    the signal to the paper simulator. Live mode holds the order-book lock
    from the snapshot through the order write.
    """

    def __init__(
        self,
        risk: RiskConfig,
        execution: ExecutionConfig,
        order_book: OrderBook,
        placer: OrderPlacer | None = None,
        balance_provider: BalanceProvider | None = None,
        paper_simulator: PaperSimulator | None = None,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.risk = risk
        self.execution = execution
        self.order_book = order_book
        self.placer = placer
        self.paper_simulator = paper_simulator
        self.notifier = notifier
        self.metrics = metrics
        self.gate = RiskGate(risk, execution, balance_provider, notifier, metrics)
        self.log = structlog.get_logger(__name__)

    @property
    def paper_mode(self) -> bool:
        return self.execution.mode == "paper"

    def execute(
        self,
        signal: Signal | OrderRequest | Mapping[str, Any],
        dry_run: bool | None = None,
        review: ReviewContract | None = None,
    ) -> ExecutionResult:
        request = self._request(signal)
        dry_run = self.execution.dry_run if dry_run is None else dry_run

        validation = self.gate.validate(request)
        if not validation.passed:
            return self._rejected(request, RiskDecision((validation,)))

        if self.paper_mode:
            return self._execute_paper(request)

        force_approval = apply_review(False, review)
        with self.order_book.lock:
            snapshot = self.order_book.snapshot(self.risk.circuit_breaker_window_minutes)
            decision = self.gate.evaluate(request, snapshot, dry_run, force_approval)
            if not decision.allowed:
                if decision.failed_check == MANUAL_APPROVAL:
                    return self._create_pending(request, decision, dry_run)
                return self._rejected(request, decision)
            self._notify_large_order(request, dry_run)
            order = self._new_order(request, dry_run, requires_approval=False)
            self.order_book.add(order)
            return self._place(order, decision)

    def place_approved(self, order: Order) -> ExecutionResult:
        """Place an order that an operator approved."""
        with self.order_book.lock:
            return self._place(order, RiskDecision((RiskCheck(MANUAL_APPROVAL, True),)))

    def _request(self, signal: Signal | OrderRequest | Mapping[str, Any]) -> OrderRequest:
        if isinstance(signal, OrderRequest):
            return signal
        if isinstance(signal, Signal):
            return OrderRequest.from_signal(signal)
        return OrderRequest.from_mapping(signal)

    def _execute_paper(self, request: OrderRequest) -> ExecutionResult:
        if self.paper_simulator is None or request.signal is None:
            return ExecutionResult(
                ExecutionStatus.FAILED,
                "Paper execution requires a signal and a paper simulator",
            )
        result = self.paper_simulator.execute(request.signal)
        self._count(result.status)
        return result

    def _new_order(self, request: OrderRequest, dry_run: bool, requires_approval: bool) -> Order:
        return Order(
            client_order_id=client_order_id(request),
            symbol=request.symbol,
            security_id=request.security_id,
            side=request.direction.side if request.direction else "BUY",
            quantity=int(request.quantity or 0),
            price=request.entry_price,
            order_type=self.execution.order_type,
            status=OrderStatus.PENDING,
            requires_approval=requires_approval,
            dry_run=dry_run,
            signal=dict(request.payload),
        )

    def _create_pending(
        self, request: OrderRequest, decision: RiskDecision, dry_run: bool
    ) -> ExecutionResult:
        order = self.order_book.add(self._new_order(request, dry_run, requires_approval=True))
        reason = decision.reasons[0] if decision.reasons else "Manual approval required"
        self.log.info(
            "order_pending_approval",
            symbol=request.symbol,
            order_id=order.order_id,
            reason=reason,
        )
        safe_notify(
            self.notifier,
            f"APPROVAL REQUIRED: {order.side} {order.quantity} {order.symbol} @ ₹{order.price:.2f}",
            {
                "order_id": order.order_id,
                "client_order_id": order.client_order_id,
                "reason": reason,
                "notional": round(order.notional, 2),
            },
            self.metrics,
        )
        if self.metrics:
            self.metrics.pending_approvals.set(len(self.order_book.pending_approval()))
        self._count(ExecutionStatus.PENDING_APPROVAL)
        return ExecutionResult(
            ExecutionStatus.PENDING_APPROVAL,
            reason,
            order_id=order.order_id,
            decision=decision,
            created_at=order.created_at,
        )

    def _rejected(self, request: OrderRequest, decision: RiskDecision) -> ExecutionResult:
        reason = decision.reasons[0] if decision.reasons else "Rejected"
        self.log.info("order_rejected", symbol=request.symbol, check=decision.failed_check, reason=reason)
        self._count(ExecutionStatus.REJECTED)
        return ExecutionResult(ExecutionStatus.REJECTED, reason, decision=decision)

    def _notify_large_order(self, request: OrderRequest, dry_run: bool) -> None:
        if dry_run:
            return
        threshold = self.risk.current_capital * self.risk.large_order_pct / 100.0
        if request.notional <= threshold:
            return
        safe_notify(
            self.notifier,
            f"LARGE ORDER: {request.symbol} ₹{request.notional:.2f}",
            {
                "symbol": request.symbol,
                "quantity": request.quantity,
                "entry_price": request.entry_price,
                "pct_of_capital": round(request.notional / self.risk.current_capital * 100, 2),
            },
            self.metrics,
        )

    def _place(self, order: Order, decision: RiskDecision) -> ExecutionResult:
        if self.placer is None:
            return self._fail(order, decision, "No order placer configured")
        try:
            placement = self.placer.place_order(
                symbol=order.symbol,
                side=order.side,
                quantity=order.quantity,
                order_type=order.order_type,
                client_order_id=order.client_order_id,
                dry_run=order.dry_run,
            )
        except Exception as exc:
            self.log.warning("order_submit_failed", symbol=order.symbol, error=str(exc))
            return self._fail(order, decision, str(exc))

        if not placement.success:
            self.log.warning("order_submit_failed", symbol=order.symbol, error=placement.error)
            return self._fail(order, decision, placement.error or "Order placement failed")

        filled = (placement.status or "").lower() in FILLED_BROKER_STATUSES
        order.status = OrderStatus.EXECUTED if filled else OrderStatus.PLACED
        order.broker_order_id = placement.broker_order_id
        order.error = None
        self.order_book.save(order)
        self.log.info(
            "order_placed",
            symbol=order.symbol,
            order_id=order.order_id,
            client_order_id=order.client_order_id,
            broker_order_id=placement.broker_order_id,
            dry_run=order.dry_run,
        )
        safe_notify(
            self.notifier,
            f"ORDER PLACED: {order.side} {order.quantity} {order.symbol}",
            {"order_id": order.order_id, "broker_order_id": placement.broker_order_id},
            self.metrics,
        )
        self._count(ExecutionStatus.PLACED)
        return ExecutionResult(
            ExecutionStatus.PLACED,
            "Order placed",
            order_id=order.order_id,
            decision=decision,
            created_at=order.created_at,
        )

    def _fail(self, order: Order, decision: RiskDecision, error: str) -> ExecutionResult:
        order.status = OrderStatus.FAILED
        order.error = error
        self.order_book.save(order)
        self._count(ExecutionStatus.FAILED)
        return ExecutionResult(
            ExecutionStatus.FAILED,
            f"Order placement failed: {error}",
            order_id=order.order_id,
            decision=decision,
            created_at=order.created_at,
        )

    def _count(self, status: ExecutionStatus) -> None:
        if self.metrics:
            self.metrics.orders_total.labels(status=status.value).inc()
