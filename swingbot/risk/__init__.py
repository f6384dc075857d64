"""Admission checks for live orders and paper entries."""

from swingbot.risk.gate import BalanceProvider, OrderRequest, RiskGate
from swingbot.risk.paper import PaperRiskManager

__all__ = ["BalanceProvider", "OrderRequest", "PaperRiskManager", "RiskGate"]
