"""Paper portfolio state: positions, reserved capital, equity and drawdown."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any
from uuid import uuid4

from swingbot.errors import PositionAlreadyClosedError
from swingbot.models import SignalDirection
from swingbot.paper.ledger import LedgerReason, PaperLedger


class PositionStatus(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class ExitReason(StrEnum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TIME_BASED = "time_based"
    MANUAL = "manual"


@dataclass
class PaperPosition:
    portfolio: str
    symbol: str
    security_id: str
    direction: SignalDirection
    entry_price: float
    quantity: int
    stop_loss: float
    take_profit: float
    position_id: str = field(default_factory=lambda: uuid4().hex)
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_price: float | None = None
    status: PositionStatus = PositionStatus.OPEN
    exit_price: float | None = None
    exit_reason: ExitReason | None = None
    closed_at: datetime | None = None
    pnl: float | None = None
    signal: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.current_price is None:
            self.current_price = self.entry_price

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    @property
    def is_long(self) -> bool:
        return self.direction is SignalDirection.LONG

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    def pnl_at(self, price: float) -> float:
        if self.is_long:
            return round((price - self.entry_price) * self.quantity, 2)
        return round((self.entry_price - price) * self.quantity, 2)

    @property
    def unrealized_pnl(self) -> float:
        if not self.is_open:
            return 0.0
        return self.pnl_at(self.current_price or self.entry_price)

    def days_held(self, now: datetime | None = None) -> int:
        now = now or datetime.now(timezone.utc)
        return (now - self.opened_at).days

    def to_dict(self) -> dict[str, Any]:
        return {
            "position_id": self.position_id,
            "portfolio": self.portfolio,
            "symbol": self.symbol,
            "security_id": self.security_id,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "quantity": self.quantity,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "opened_at": self.opened_at.isoformat(),
            "current_price": self.current_price,
            "status": self.status.value,
            "exit_price": self.exit_price,
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "pnl": self.pnl,
        }


class PaperPortfolio:
    """Capital accounting for one paper portfolio.

    `lock` must be held across any check-then-mutate sequence; the portfolio
    methods take it themselves so single calls are safe on their own.
    """

    def __init__(
        self,
        name: str,
        initial_capital: float,
        ledger: PaperLedger | None = None,
    ) -> None:
        self.name = name
        self.initial_capital = initial_capital
        self.ledger = ledger if ledger is not None else PaperLedger(name)
        self.lock = threading.RLock()
        self.positions: dict[str, PaperPosition] = {}
        self.reserved_capital = 0.0
        self.peak_equity = float(initial_capital)
        self.max_drawdown_pct = 0.0
        if len(self.ledger) == 0:
            self.ledger.credit(
                LedgerReason.INITIAL_CAPITAL,
                initial_capital,
                description=f"Initial capital for {name}",
            )
        else:
            self._restore_open_positions()
            self._restore_drawdown()
        self.refresh_equity()

    def _restore_open_positions(self) -> None:
        for position_id, entry in self.ledger.open_reservations().items():
            data = entry.meta.get("position")
            if not data:
                continue
            position = PaperPosition(
                portfolio=self.name,
                symbol=data["symbol"],
                security_id=data["security_id"],
                direction=SignalDirection(data["direction"]),
                entry_price=float(data["entry_price"]),
                quantity=int(data["quantity"]),
                stop_loss=float(data["stop_loss"]),
                take_profit=float(data["take_profit"]),
                position_id=position_id,
                opened_at=entry.created_at,
            )
            self.positions[position_id] = position
            self.reserved_capital += entry.amount

    def _restore_drawdown(self) -> None:
        """Peak and max drawdown along the realized capital curve.

        Marks between closes are not persisted, so intra-trade peaks are lost.
        """
        for capital in self.ledger.capital_curve():
            self.peak_equity = max(self.peak_equity, capital)
            if self.peak_equity > 0:
                drawdown = (self.peak_equity - capital) / self.peak_equity * 100
                self.max_drawdown_pct = max(self.max_drawdown_pct, drawdown)

    @property
    def capital(self) -> float:
        return self.ledger.capital

    @property
    def available_capital(self) -> float:
        return round(self.capital - self.reserved_capital, 2)

    def open_positions(self) -> list[PaperPosition]:
        return [p for p in self.positions.values() if p.is_open]

    def closed_positions(self) -> list[PaperPosition]:
        return [p for p in self.positions.values() if not p.is_open]

    @property
    def exposure(self) -> float:
        return sum(p.notional for p in self.open_positions())

    @property
    def unrealized_pnl(self) -> float:
        return round(sum(p.unrealized_pnl for p in self.open_positions()), 2)

    @property
    def equity(self) -> float:
        return round(self.capital + self.unrealized_pnl, 2)

    @property
    def drawdown_pct(self) -> float:
        if self.peak_equity <= 0:
            return 0.0
        return max(0.0, (self.peak_equity - self.equity) / self.peak_equity * 100)

    @property
    def utilization_pct(self) -> float:
        if self.capital <= 0:
            return 0.0
        return self.reserved_capital / self.capital * 100

    def refresh_equity(self) -> float:
        with self.lock:
            equity = self.equity
            self.peak_equity = max(self.peak_equity, equity)
            self.max_drawdown_pct = max(self.max_drawdown_pct, self.drawdown_pct)
            return equity

    def open_position(self, position: PaperPosition) -> PaperPosition:
        """Reserve capital for `position` with a trade_entry debit."""
        with self.lock:
            self.ledger.debit(
                LedgerReason.TRADE_ENTRY,
                position.notional,
                description=f"Entry {position.direction.value} {position.quantity} {position.symbol}",
                position_id=position.position_id,
                created_at=position.opened_at,
                meta={"position": position.to_dict()},
            )
            self.reserved_capital += position.notional
            self.positions[position.position_id] = position
            return position

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        reason: ExitReason,
        closed_at: datetime | None = None,
    ) -> PaperPosition:
        """Close a position once, releasing its reservation and writing one terminal entry.

        Raises:
            PositionAlreadyClosedError: the position is already closed.
            KeyError: unknown position id.
        """
        with self.lock:
            position = self.positions[position_id]
            if not position.is_open:
                raise PositionAlreadyClosedError(f"position {position_id} is already closed")
            pnl = position.pnl_at(exit_price)
            if pnl > 0:
                entry_reason, write = LedgerReason.PROFIT, self.ledger.credit
            elif pnl < 0:
                entry_reason, write = LedgerReason.LOSS, self.ledger.debit
            else:
                entry_reason, write = LedgerReason.BREAKEVEN, self.ledger.credit
            write(
                entry_reason,
                abs(pnl),
                description=f"Exit {position.symbol} ({reason.value})",
                position_id=position.position_id,
                created_at=closed_at,
                meta={"exit_reason": reason.value, "exit_price": exit_price},
            )
            self.reserved_capital = max(0.0, round(self.reserved_capital - position.notional, 2))
            position.status = PositionStatus.CLOSED
            position.exit_price = exit_price
            position.exit_reason = reason
            position.current_price = exit_price
            position.closed_at = closed_at or datetime.now(timezone.utc)
            position.pnl = pnl
            self.refresh_equity()
            return position

    def summary(self) -> dict[str, Any]:
        with self.lock:
            return {
                "portfolio": self.name,
                "initial_capital": self.initial_capital,
                "capital": self.capital,
                "reserved_capital": round(self.reserved_capital, 2),
                "available_capital": self.available_capital,
                "equity": self.equity,
                "unrealized_pnl": self.unrealized_pnl,
                "peak_equity": round(self.peak_equity, 2),
                "drawdown_pct": round(self.drawdown_pct, 2),
                "max_drawdown_pct": round(self.max_drawdown_pct, 2),
                "utilization_pct": round(self.utilization_pct, 2),
                "open_positions": len(self.open_positions()),
                "closed_positions": len(self.closed_positions()),
            }
