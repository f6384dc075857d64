"""Live order records and the order book that backs the risk gate."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4

import orjson


class OrderStatus(StrEnum):
    PENDING = "pending"
    PLACED = "placed"
    EXECUTED = "executed"
    FAILED = "failed"
    CANCELLED = "cancelled"


OPEN_STATUSES = (OrderStatus.PENDING, OrderStatus.PLACED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Order:
    client_order_id: str
    symbol: str
    security_id: str
    side: str
    quantity: int
    price: float | None
    order_type: str = "MARKET"
    status: OrderStatus = OrderStatus.PENDING
    requires_approval: bool = False
    dry_run: bool = False
    order_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_reason: str | None = None
    broker_order_id: str | None = None
    error: str | None = None
    signal: dict[str, Any] = field(default_factory=dict)

    @property
    def notional(self) -> float:
        return (self.price or 0.0) * self.quantity

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        values = dict(data)
        values["status"] = OrderStatus(values.get("status", OrderStatus.PENDING))
        for key in ("created_at", "updated_at", "approved_at", "rejected_at"):
            values[key] = _parse_ts(values.get(key))
        if values.get("created_at") is None:
            values["created_at"] = _utcnow()
        if values.get("updated_at") is None:
            values["updated_at"] = values["created_at"]
        return cls(**values)


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Counters read once per admission so every check sees the same state."""

    taken_at: datetime
    recent_live_total: int
    recent_live_failed: int
    executed_live_count: int
    open_notional: float
    pending_approval_count: int

    @property
    def failure_rate_pct(self) -> float:
        if self.recent_live_total == 0:
            return 0.0
        return self.recent_live_failed / self.recent_live_total * 100


class OrderBook:
    """In-memory order store with optional JSONL persistence.

    Every write appends the full order to `<orders_path>/orders.jsonl`; on load
    the last line per order id wins.
    """

    def __init__(self, orders_path: str | Path | None = None) -> None:
        self.lock = threading.RLock()
        self._orders: dict[str, Order] = {}
        self.orders_file: Path | None = None
        if orders_path is not None:
            path = Path(orders_path)
            path.mkdir(parents=True, exist_ok=True)
            self.orders_file = path / "orders.jsonl"
            self._load()

    def _load(self) -> None:
        if self.orders_file is None or not self.orders_file.exists():
            return
        with open(self.orders_file, "rb") as handle:
            for line in handle:
                if not line.strip():
                    continue
                order = Order.from_dict(orjson.loads(line))
                self._orders[order.order_id] = order

    def _persist(self, order: Order) -> None:
        if self.orders_file is None:
            return
        with open(self.orders_file, "ab") as handle:
            handle.write(orjson.dumps(order.to_dict()) + b"\n")

    def add(self, order: Order) -> Order:
        with self.lock:
            self._orders[order.order_id] = order
            self._persist(order)
        return order

    def save(self, order: Order) -> Order:
        with self.lock:
            order.updated_at = _utcnow()
            self._orders[order.order_id] = order
            self._persist(order)
        return order

    def get(self, order_id: str) -> Order | None:
        with self.lock:
            order = self._orders.get(order_id)
            if order is None:
                order = next(
                    (o for o in self._orders.values() if o.client_order_id == order_id), None
                )
            return order

    def all(self) -> list[Order]:
        with self.lock:
            return list(self._orders.values())

    def pending_approval(self) -> list[Order]:
        with self.lock:
            return [
                o
                for o in self._orders.values()
                if o.requires_approval and o.status is OrderStatus.PENDING and o.approved_at is None
            ]

    def open_orders_notional(self) -> float:
        with self.lock:
            return sum(o.notional for o in self._orders.values() if o.is_open)

    def snapshot(self, window_minutes: int = 60, now: datetime | None = None) -> OrderBookSnapshot:
        now = now or _utcnow()
        cutoff = now - timedelta(minutes=window_minutes)
        with self.lock:
            orders: Iterable[Order] = list(self._orders.values())
        live = [o for o in orders if not o.dry_run]
        recent = [o for o in live if o.created_at > cutoff]
        return OrderBookSnapshot(
            taken_at=now,
            recent_live_total=len(recent),
            recent_live_failed=sum(1 for o in recent if o.status is OrderStatus.FAILED),
            executed_live_count=sum(1 for o in live if o.status is OrderStatus.EXECUTED),
            open_notional=sum(o.notional for o in orders if o.is_open),
            pending_approval_count=sum(
                1 for o in orders if o.requires_approval and o.status is OrderStatus.PENDING
            ),
        )
