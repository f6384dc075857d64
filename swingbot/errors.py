"""Exception types raised by the decision core.

Risk rejections are never raised; they are returned as structured results
(`RiskDecision`, `ExecutionResult`). These exceptions cover programming and
state errors only.
"""

from __future__ import annotations


class SwingbotError(Exception):
    """Base class for all swingbot errors."""


class InsufficientDataError(SwingbotError):
    """Series too short or indicator prerequisites unmet."""


class InvalidSignalError(SwingbotError):
    """A signal violates its price ordering or risk-reward invariant."""


class UnknownIndicatorError(SwingbotError):
    """Configured indicator type is not part of the supported set."""


class LedgerError(SwingbotError):
    """Invalid ledger entry (negative amount, unknown entry type)."""


class PositionAlreadyClosedError(SwingbotError):
    """A paper position was closed twice."""


class OrderNotFoundError(SwingbotError):
    """Order id is not present in the order book."""


class ApprovalError(SwingbotError):
    """Approval action is not valid for the order's current state."""
