"""Append-only capital ledger for paper portfolios."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import Any, Iterable

import orjson

from swingbot.errors import LedgerError


class EntryType(StrEnum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerReason(StrEnum):
    INITIAL_CAPITAL = "initial_capital"
    TRADE_ENTRY = "trade_entry"
    PROFIT = "profit"
    LOSS = "loss"
    BREAKEVEN = "breakeven"
    FUNDING = "funding"


TERMINAL_REASONS = (LedgerReason.PROFIT, LedgerReason.LOSS, LedgerReason.BREAKEVEN)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass(frozen=True)
class LedgerEntry:
    sequence: int
    portfolio: str
    entry_type: EntryType
    reason: LedgerReason
    amount: float
    created_at: datetime
    description: str = ""
    position_id: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def signed_amount(self) -> float:
        return self.amount if self.entry_type is EntryType.CREDIT else -self.amount

    @property
    def moves_capital(self) -> bool:
        # trade_entry debits are reservations, tracked by the portfolio
        return self.reason is not LedgerReason.TRADE_ENTRY

    @property
    def is_terminal(self) -> bool:
        return self.reason in TERMINAL_REASONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "portfolio": self.portfolio,
            "entry_type": self.entry_type.value,
            "reason": self.reason.value,
            "amount": self.amount,
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "position_id": self.position_id,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerEntry":
        return cls(
            sequence=int(data["sequence"]),
            portfolio=str(data["portfolio"]),
            entry_type=EntryType(data["entry_type"]),
            reason=LedgerReason(data["reason"]),
            amount=float(data["amount"]),
            created_at=_parse_ts(data["created_at"]),
            description=str(data.get("description", "")),
            position_id=data.get("position_id"),
            meta=dict(data.get("meta") or {}),
        )


class PaperLedger:
    """Credit/debit entries for one portfolio.

    Capital is derived from the entries and never stored. When `ledger_path` is
    set every entry is appended to `<ledger_path>/<portfolio>.jsonl`.
    """

    def __init__(self, portfolio: str, ledger_path: str | Path | None = None) -> None:
        self.portfolio = portfolio
        self._entries: list[LedgerEntry] = []
        self.ledger_file: Path | None = None
        if ledger_path is not None:
            path = Path(ledger_path)
            path.mkdir(parents=True, exist_ok=True)
            self.ledger_file = path / f"{portfolio}.jsonl"

    @classmethod
    def load(cls, portfolio: str, ledger_path: str | Path) -> "PaperLedger":
        """Rebuild a ledger from its JSONL file; a missing file yields an empty ledger."""
        ledger = cls(portfolio, ledger_path)
        if ledger.ledger_file is not None and ledger.ledger_file.exists():
            with open(ledger.ledger_file, "rb") as handle:
                for line in handle:
                    if line.strip():
                        ledger._entries.append(LedgerEntry.from_dict(orjson.loads(line)))
        return ledger

    @property
    def entries(self) -> list[LedgerEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        entry_type: EntryType | str,
        reason: LedgerReason | str,
        amount: float,
        description: str = "",
        position_id: str | None = None,
        created_at: datetime | None = None,
        meta: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        try:
            entry_type = EntryType(entry_type)
            reason = LedgerReason(reason)
        except ValueError as exc:
            raise LedgerError(str(exc)) from None
        if amount < 0:
            raise LedgerError(f"ledger amount must be non-negative, got {amount}")
        entry = LedgerEntry(
            sequence=len(self._entries) + 1,
            portfolio=self.portfolio,
            entry_type=entry_type,
            reason=reason,
            amount=round(float(amount), 2),
            created_at=created_at or datetime.now(timezone.utc),
            description=description,
            position_id=position_id,
            meta=dict(meta or {}),
        )
        self._persist(entry)
        self._entries.append(entry)
        return entry

    def credit(self, reason: LedgerReason | str, amount: float, **kwargs: Any) -> LedgerEntry:
        return self.record(EntryType.CREDIT, reason, amount, **kwargs)

    def debit(self, reason: LedgerReason | str, amount: float, **kwargs: Any) -> LedgerEntry:
        return self.record(EntryType.DEBIT, reason, amount, **kwargs)

    def _persist(self, entry: LedgerEntry) -> None:
        if self.ledger_file is None:
            return
        with open(self.ledger_file, "ab") as handle:
            handle.write(orjson.dumps(entry.to_dict()) + b"\n")

    @property
    def capital(self) -> float:
        return round(sum(e.signed_amount for e in self._entries if e.moves_capital), 2)

    def capital_curve(self) -> list[float]:
        """Capital after each capital-moving entry, in sequence order."""
        curve: list[float] = []
        running = 0.0
        for entry in self._entries:
            if entry.moves_capital:
                running = round(running + entry.signed_amount, 2)
                curve.append(running)
        return curve

    def for_position(self, position_id: str) -> list[LedgerEntry]:
        return [e for e in self._entries if e.position_id == position_id]

    def open_reservations(self) -> dict[str, LedgerEntry]:
        """trade_entry debits whose position has no terminal entry yet."""
        closed = {e.position_id for e in self._entries if e.is_terminal}
        return {
            e.position_id: e
            for e in self._entries
            if e.reason is LedgerReason.TRADE_ENTRY and e.position_id not in closed
        }

    def realized_pnl_on(self, day: date) -> float:
        """Net of profit/loss entries dated `day` (UTC)."""
        return round(
            sum(e.signed_amount for e in self._trading_entries() if e.created_at.date() == day),
            2,
        )

    def terminal_entries(self) -> list[LedgerEntry]:
        return [e for e in self._entries if e.is_terminal]

    def trailing_losses(self, limit: int) -> list[LedgerEntry]:
        """Most recent consecutive loss entries, newest first, at most `limit`."""
        streak: list[LedgerEntry] = []
        for entry in reversed(self.terminal_entries()):
            if entry.reason is not LedgerReason.LOSS or len(streak) >= limit:
                break
            streak.append(entry)
        return streak

    def _trading_entries(self) -> Iterable[LedgerEntry]:
        return (e for e in self._entries if e.reason in (LedgerReason.PROFIT, LedgerReason.LOSS))
