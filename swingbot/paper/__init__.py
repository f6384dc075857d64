"""Paper trading: ledger, portfolio, simulator and reconciliation."""

from swingbot.paper.ledger import EntryType, LedgerEntry, LedgerReason, PaperLedger
from swingbot.paper.portfolio import ExitReason, PaperPortfolio, PaperPosition, PositionStatus
from swingbot.paper.reconciler import PaperReconciler
from swingbot.paper.simulator import PaperSimulator

__all__ = [
    "EntryType",
    "ExitReason",
    "LedgerEntry",
    "LedgerReason",
    "PaperLedger",
    "PaperPortfolio",
    "PaperPosition",
    "PaperReconciler",
    "PaperSimulator",
    "PositionStatus",
]
