"""Paper trading execution: open positions from signals, evaluate exits, close once."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from swingbot.connectors.notifier import NotificationSink, safe_notify
from swingbot.models import ExecutionResult, ExecutionStatus, Signal
from swingbot.paper.portfolio import ExitReason, PaperPortfolio, PaperPosition
from swingbot.risk.paper import PaperRiskManager

if TYPE_CHECKING:
    from swingbot.monitoring.metrics import Metrics


class PaperSimulator:
    """Simulated execution against one `PaperPortfolio`.

    `execute`, `close` and `check_exits` hold the portfolio lock from the first
    risk check through the ledger write.
    """

    def __init__(
        self,
        portfolio: PaperPortfolio,
        risk_manager: PaperRiskManager,
        max_holding_days: int = 20,
        notifier: NotificationSink | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.portfolio = portfolio
        self.risk_manager = risk_manager
        self.max_holding_days = max_holding_days
        self.notifier = notifier
        self.metrics = metrics
        self.log = structlog.get_logger(__name__)

    def execute(self, signal: Signal, now: datetime | None = None) -> ExecutionResult:
        now = now or datetime.now(timezone.utc)
        with self.portfolio.lock:
            decision = self.risk_manager.evaluate(self.portfolio, signal, now)
            if not decision.allowed:
                return ExecutionResult(
                    ExecutionStatus.REJECTED,
                    decision.reasons[0],
                    decision=decision,
                    created_at=now,
                )
            position = self.portfolio.open_position(
                PaperPosition(
                    portfolio=self.portfolio.name,
                    symbol=signal.instrument.symbol,
                    security_id=signal.instrument.security_id,
                    direction=signal.direction,
                    entry_price=signal.entry_price,
                    quantity=signal.quantity,
                    stop_loss=signal.stop_loss,
                    take_profit=signal.take_profit,
                    opened_at=now,
                    signal=signal.to_dict(),
                )
            )
            self._publish()

        self.log.info(
            "paper_position_opened",
            portfolio=self.portfolio.name,
            position_id=position.position_id,
            symbol=position.symbol,
            direction=position.direction.value,
            entry=position.entry_price,
            quantity=position.quantity,
        )
        safe_notify(
            self.notifier,
            f"PAPER ENTRY: {position.direction.value.upper()} {position.quantity} "
            f"{position.symbol} @ ₹{position.entry_price:.2f}",
            {
                "portfolio": self.portfolio.name,
                "stop_loss": position.stop_loss,
                "take_profit": position.take_profit,
                "risk_reward": signal.risk_reward,
            },
            self.metrics,
        )
        return ExecutionResult(
            ExecutionStatus.PAPER,
            "Paper position opened",
            position_id=position.position_id,
            decision=decision,
            created_at=now,
        )

    def mark(self, position_id: str, price: float) -> PaperPosition:
        """Update the current price of an open position; nothing else changes."""
        with self.portfolio.lock:
            position = self.portfolio.positions[position_id]
            if position.is_open:
                position.current_price = price
            return position

    def exit_reason(self, position: PaperPosition, now: datetime) -> tuple[ExitReason, float] | None:
        """Exit to take, if any, in priority order stop, target, holding period."""
        price = position.current_price or position.entry_price
        if position.is_long:
            if price <= position.stop_loss:
                return ExitReason.STOP_LOSS, position.stop_loss
            if price >= position.take_profit:
                return ExitReason.TAKE_PROFIT, position.take_profit
        else:
            if price >= position.stop_loss:
                return ExitReason.STOP_LOSS, position.stop_loss
            if price <= position.take_profit:
                return ExitReason.TAKE_PROFIT, position.take_profit
        if position.days_held(now) >= self.max_holding_days:
            return ExitReason.TIME_BASED, price
        return None

    def check_exits(self, now: datetime | None = None) -> list[PaperPosition]:
        now = now or datetime.now(timezone.utc)
        closed = []
        with self.portfolio.lock:
            for position in self.portfolio.open_positions():
                exit_ = self.exit_reason(position, now)
                if exit_ is not None:
                    reason, price = exit_
                    closed.append(self.close(position.position_id, price, reason, now))
        return closed

    def close(
        self,
        position_id: str,
        exit_price: float,
        reason: ExitReason = ExitReason.MANUAL,
        now: datetime | None = None,
    ) -> PaperPosition:
        """Close a position; a second close raises `PositionAlreadyClosedError`."""
        with self.portfolio.lock:
            position = self.portfolio.close_position(position_id, exit_price, reason, now)
            self._publish()

        self.log.info(
            "paper_position_closed",
            portfolio=self.portfolio.name,
            position_id=position.position_id,
            symbol=position.symbol,
            reason=reason.value,
            exit_price=exit_price,
            pnl=position.pnl,
        )
        if self.metrics:
            self.metrics.paper_positions_closed_total.labels(reason=reason.value).inc()
        safe_notify(
            self.notifier,
            f"PAPER EXIT: {position.symbol} ({reason.value}) P&L ₹{position.pnl:.2f}",
            {
                "portfolio": self.portfolio.name,
                "entry_price": position.entry_price,
                "exit_price": exit_price,
                "quantity": position.quantity,
            },
            self.metrics,
        )
        return position

    def _publish(self) -> None:
        self.portfolio.refresh_equity()
        if self.metrics:
            self.metrics.update_portfolio(
                self.portfolio.name,
                self.portfolio.equity,
                self.portfolio.drawdown_pct,
                len(self.portfolio.open_positions()),
            )
