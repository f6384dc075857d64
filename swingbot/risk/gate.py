"""Live admission checks.

Checks run in a fixed order and stop at the first failure, so a decision
carries at most one failing check:

1. validation       order shape (entry, stop, quantity, direction)
2. balance          broker balance covers the order value
3. position_size    order value within the per-position cap
4. total_exposure   open orders plus this order within the exposure cap
5. circuit_breaker  live failure rate over the trailing window
6. manual_approval  approval quota for the first live trades
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Protocol

import structlog

from swingbot.config.settings import ExecutionConfig, RiskConfig
from swingbot.connectors.notifier import NotificationSink, safe_notify
from swingbot.models import RiskCheck, RiskDecision, Signal, SignalDirection
from swingbot.monitoring.metrics import Metrics

if TYPE_CHECKING:
    from swingbot.execution.orders import OrderBookSnapshot


logger = structlog.get_logger(__name__)

VALIDATION = "validation"
BALANCE = "balance"
POSITION_SIZE = "position_size"
TOTAL_EXPOSURE = "total_exposure"
CIRCUIT_BREAKER = "circuit_breaker"
MANUAL_APPROVAL = "manual_approval"


class BalanceProvider(Protocol):
    def available_balance(self) -> float: ...


@dataclass(frozen=True)
class OrderRequest:
    """Order intent as received by the router; deliberately not self-validating."""

    symbol: str
    security_id: str
    direction: SignalDirection | None
    entry_price: float | None
    stop_loss: float | None
    quantity: int | None
    take_profit: float | None = None
    signal: Signal | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def notional(self) -> float:
        return (self.entry_price or 0.0) * (self.quantity or 0)

    @classmethod
    def from_signal(cls, signal: Signal) -> "OrderRequest":
        return cls(
            symbol=signal.instrument.symbol,
            security_id=signal.instrument.security_id,
            direction=signal.direction,
            entry_price=signal.entry_price,
            stop_loss=signal.stop_loss,
            quantity=signal.quantity,
            take_profit=signal.take_profit,
            signal=signal,
            payload=signal.to_dict(),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "OrderRequest":
        direction = data.get("direction")
        try:
            parsed = SignalDirection(direction) if direction else None
        except ValueError:
            parsed = None
        return cls(
            symbol=str(data.get("symbol", "")),
            security_id=str(data.get("security_id", "")),
            direction=parsed,
            entry_price=data.get("entry_price"),
            stop_loss=data.get("stop_loss"),
            quantity=data.get("quantity"),
            take_profit=data.get("take_profit"),
            payload=dict(data),
        )


class RiskGate:
    """Ordered live admission checks with first-failure short-circuit."""

    def __init__(
        self,
        risk: RiskConfig,
        execution: ExecutionConfig,
        balance_provider: BalanceProvider | None = None,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.risk = risk
        self.execution = execution
        self.balance_provider = balance_provider
        self.notifier = notifier
        self.metrics = metrics

    @property
    def capital(self) -> float:
        return self.risk.current_capital

    def validate(self, request: OrderRequest) -> RiskCheck:
        if request.entry_price is None or request.entry_price <= 0:
            return RiskCheck(VALIDATION, False, "Missing entry price")
        if request.stop_loss is None or request.stop_loss <= 0:
            return RiskCheck(VALIDATION, False, "Missing stop loss")
        if request.quantity is None or request.quantity <= 0:
            return RiskCheck(VALIDATION, False, "Missing quantity")
        if request.direction is None:
            return RiskCheck(VALIDATION, False, "Missing direction")
        return RiskCheck(VALIDATION, True)

    def check_balance(self, request: OrderRequest) -> RiskCheck:
        required = request.notional
        if self.balance_provider is None:
            return RiskCheck(BALANCE, False, "Unable to check account balance: no balance provider")
        try:
            available = float(self.balance_provider.available_balance())
        except Exception as exc:
            logger.warning("balance_check_failed", symbol=request.symbol, error=str(exc))
            safe_notify(
                self.notifier,
                "BALANCE CHECK FAILED: order not placed, check the account balance manually",
                {"symbol": request.symbol, "required": round(required, 2), "error": str(exc)},
                self.metrics,
            )
            return RiskCheck(BALANCE, False, f"Unable to check account balance: {exc}")

        if available < required:
            safe_notify(
                self.notifier,
                "INSUFFICIENT BALANCE: add funds to continue trading",
                {
                    "symbol": request.symbol,
                    "required": round(required, 2),
                    "available": round(available, 2),
                    "shortfall": round(required - available, 2),
                },
                self.metrics,
            )
            return RiskCheck(
                BALANCE,
                False,
                f"Insufficient balance: ₹{required:.2f} required, ₹{available:.2f} available",
            )
        return RiskCheck(BALANCE, True)

    def check_position_size(self, request: OrderRequest) -> RiskCheck:
        pct = self.risk.max_position_size_pct
        max_value = self.capital * pct / 100.0
        order_value = request.notional
        if order_value > max_value:
            return RiskCheck(
                POSITION_SIZE,
                False,
                f"Order exceeds max position size: ₹{order_value:.2f} > ₹{max_value:.2f} ({pct}%)",
            )
        return RiskCheck(POSITION_SIZE, True)

    def check_exposure(self, request: OrderRequest, snapshot: OrderBookSnapshot) -> RiskCheck:
        pct = self.risk.max_total_exposure_pct
        max_value = self.capital * pct / 100.0
        total = snapshot.open_notional + request.notional
        if total > max_value:
            return RiskCheck(
                TOTAL_EXPOSURE,
                False,
                f"Total exposure exceeds limit: ₹{total:.2f} > ₹{max_value:.2f} ({pct}%)",
            )
        return RiskCheck(TOTAL_EXPOSURE, True)

    def check_circuit_breaker(self, snapshot: OrderBookSnapshot) -> RiskCheck:
        if snapshot.recent_live_total == 0:
            return RiskCheck(CIRCUIT_BREAKER, True)
        rate = snapshot.failure_rate_pct
        if rate > self.risk.circuit_breaker_threshold_pct:
            return RiskCheck(
                CIRCUIT_BREAKER,
                False,
                f"Circuit breaker activated: {rate:.1f}% failure rate in last hour",
            )
        return RiskCheck(CIRCUIT_BREAKER, True)

    def check_manual_approval(
        self,
        snapshot: OrderBookSnapshot,
        dry_run: bool,
        force_approval: bool = False,
    ) -> RiskCheck:
        quota = self.execution.manual_approval_count
        executed = snapshot.executed_live_count
        message = f"Manual approval required for first {quota} trades ({executed}/{quota} executed)"
        if dry_run:
            return RiskCheck(MANUAL_APPROVAL, True)
        if force_approval:
            return RiskCheck(MANUAL_APPROVAL, False, "Manual approval required by advisory review")
        if not self.execution.manual_approval_enabled or self.execution.auto_trading_enabled:
            return RiskCheck(MANUAL_APPROVAL, True)
        if executed >= quota:
            return RiskCheck(MANUAL_APPROVAL, True)
        return RiskCheck(MANUAL_APPROVAL, False, message)

    def evaluate(
        self,
        request: OrderRequest,
        snapshot: OrderBookSnapshot,
        dry_run: bool = False,
        force_approval: bool = False,
    ) -> RiskDecision:
        """Run every live check in order against one snapshot."""
        steps = (
            lambda: self.validate(request),
            lambda: self.check_balance(request),
            lambda: self.check_position_size(request),
            lambda: self.check_exposure(request, snapshot),
            lambda: self.check_circuit_breaker(snapshot),
            lambda: self.check_manual_approval(snapshot, dry_run, force_approval),
        )
        checks: list[RiskCheck] = []
        for step in steps:
            check = step()
            checks.append(check)
            if not check.passed:
                if check.name != MANUAL_APPROVAL:
                    logger.info(
                        "risk_check_failed",
                        symbol=request.symbol,
                        check=check.name,
                        reason=check.reason,
                    )
                    if self.metrics:
                        self.metrics.risk_rejections_total.labels(check=check.name).inc()
                break
        return RiskDecision(tuple(checks))
