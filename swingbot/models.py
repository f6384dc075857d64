"""Shared data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from swingbot.errors import InvalidSignalError


class SignalDirection(StrEnum):
    LONG = "long"
    SHORT = "short"

    @property
    def side(self) -> str:
        return "BUY" if self is SignalDirection.LONG else "SELL"


@dataclass(frozen=True)
class Instrument:
    symbol: str
    security_id: str
    lot_size: int = 1
    exchange_segment: str = "NSE_EQ"


@dataclass(frozen=True)
class Signal:
    """A directional trade plan.

    Construction enforces price ordering (long: stop < entry < target, short
    mirrored), a positive quantity and `risk_reward >= min_risk_reward`.
    """

    instrument: Instrument
    direction: SignalDirection
    entry_price: float
    stop_loss: float
    take_profit: float
    quantity: int
    risk_reward: float
    confidence: float
    holding_days_estimate: int
    metadata: dict[str, Any] = field(default_factory=dict)
    min_risk_reward: float = 1.5

    def __post_init__(self) -> None:
        if not isinstance(self.direction, SignalDirection):
            try:
                object.__setattr__(self, "direction", SignalDirection(self.direction))
            except ValueError:
                raise InvalidSignalError(f"invalid direction: {self.direction!r}") from None
        if self.entry_price <= 0 or self.stop_loss <= 0 or self.take_profit <= 0:
            raise InvalidSignalError("prices must be positive")
        if self.quantity <= 0:
            raise InvalidSignalError(f"quantity must be positive, got {self.quantity}")
        if self.direction is SignalDirection.LONG:
            if not self.stop_loss < self.entry_price < self.take_profit:
                raise InvalidSignalError(
                    f"long signal requires stop < entry < target "
                    f"({self.stop_loss} / {self.entry_price} / {self.take_profit})"
                )
        elif not self.take_profit < self.entry_price < self.stop_loss:
            raise InvalidSignalError(
                f"short signal requires target < entry < stop "
                f"({self.take_profit} / {self.entry_price} / {self.stop_loss})"
            )
        if self.risk_reward < self.min_risk_reward:
            raise InvalidSignalError(
                f"risk_reward {self.risk_reward} below minimum {self.min_risk_reward}"
            )

    @property
    def is_long(self) -> bool:
        return self.direction is SignalDirection.LONG

    @property
    def notional(self) -> float:
        return self.entry_price * self.quantity

    @property
    def risk_per_share(self) -> float:
        return abs(self.entry_price - self.stop_loss)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.instrument.symbol,
            "security_id": self.instrument.security_id,
            "lot_size": self.instrument.lot_size,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "quantity": self.quantity,
            "risk_reward": self.risk_reward,
            "confidence": self.confidence,
            "holding_days_estimate": self.holding_days_estimate,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Signal":
        instrument = Instrument(
            symbol=data["symbol"],
            security_id=str(data["security_id"]),
            lot_size=int(data.get("lot_size", 1)),
        )
        return cls(
            instrument=instrument,
            direction=SignalDirection(data["direction"]),
            entry_price=float(data["entry_price"]),
            stop_loss=float(data["stop_loss"]),
            take_profit=float(data["take_profit"]),
            quantity=int(data["quantity"]),
            risk_reward=float(data["risk_reward"]),
            confidence=float(data.get("confidence", 0.0)),
            holding_days_estimate=int(data.get("holding_days_estimate", 0)),
            metadata=dict(data.get("metadata") or {}),
            min_risk_reward=0.0,
        )


@dataclass(frozen=True)
class RiskCheck:
    name: str
    passed: bool
    reason: str | None = None


@dataclass(frozen=True)
class RiskDecision:
    """Ordered admission checks; evaluation stops at the first failure."""

    checks: tuple[RiskCheck, ...] = ()

    @property
    def allowed(self) -> bool:
        return all(check.passed for check in self.checks)

    @property
    def reasons(self) -> list[str]:
        return [check.reason or check.name for check in self.checks if not check.passed]

    @property
    def failed_check(self) -> str | None:
        for check in self.checks:
            if not check.passed:
                return check.name
        return None


class ExecutionStatus(StrEnum):
    PLACED = "placed"
    PAPER = "paper"
    PENDING_APPROVAL = "pending_approval"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class ExecutionResult:
    status: ExecutionStatus
    message: str = ""
    order_id: str | None = None
    position_id: str | None = None
    decision: RiskDecision | None = None
    created_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status in (
            ExecutionStatus.PLACED,
            ExecutionStatus.PAPER,
            ExecutionStatus.PENDING_APPROVAL,
        )
