"""Admission checks for simulated entries against a paper portfolio."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog

from swingbot.config.settings import PaperTradingConfig
from swingbot.models import RiskCheck, RiskDecision, Signal

if TYPE_CHECKING:
    from swingbot.monitoring.metrics import Metrics
    from swingbot.paper.portfolio import PaperPortfolio


logger = structlog.get_logger(__name__)

CAPITAL = "capital"
POSITION_SIZE = "position_size"
TOTAL_EXPOSURE = "total_exposure"
MAX_POSITIONS = "max_positions"
DAILY_LOSS = "daily_loss"
DRAWDOWN = "drawdown"
LOSS_COOLDOWN = "loss_cooldown"


class PaperRiskManager:
    """Ordered checks; the first failure ends evaluation.

    Callers hold `portfolio.lock` from `evaluate` through the reservation so
    two signals cannot both pass the exposure check.
    """

    def __init__(self, config: PaperTradingConfig, metrics: Metrics | None = None) -> None:
        self.config = config
        self.metrics = metrics

    def evaluate(
        self,
        portfolio: PaperPortfolio,
        signal: Signal,
        now: datetime | None = None,
    ) -> RiskDecision:
        now = now or datetime.now(timezone.utc)
        notional = signal.notional
        steps = (
            lambda: self.check_capital(portfolio, notional),
            lambda: self.check_position_size(portfolio, notional),
            lambda: self.check_exposure(portfolio, notional),
            lambda: self.check_max_positions(portfolio),
            lambda: self.check_daily_loss(portfolio, now),
            lambda: self.check_drawdown(portfolio),
            lambda: self.check_loss_cooldown(portfolio, now),
        )
        checks: list[RiskCheck] = []
        for step in steps:
            check = step()
            checks.append(check)
            if not check.passed:
                logger.info(
                    "risk_check_failed",
                    portfolio=portfolio.name,
                    symbol=signal.instrument.symbol,
                    check=check.name,
                    reason=check.reason,
                )
                if self.metrics:
                    self.metrics.risk_rejections_total.labels(check=check.name).inc()
                break
        return RiskDecision(tuple(checks))

    def check_capital(self, portfolio: PaperPortfolio, notional: float) -> RiskCheck:
        available = portfolio.available_capital
        if available < notional:
            return RiskCheck(
                CAPITAL,
                False,
                f"Insufficient capital: ₹{notional:.2f} required, ₹{available:.2f} available",
            )
        return RiskCheck(CAPITAL, True)

    def check_position_size(self, portfolio: PaperPortfolio, notional: float) -> RiskCheck:
        pct = self.config.max_position_size_pct
        max_value = portfolio.capital * pct / 100.0
        if notional > max_value:
            return RiskCheck(
                POSITION_SIZE,
                False,
                f"Order exceeds max position size: ₹{notional:.2f} > ₹{max_value:.2f} ({pct}%)",
            )
        return RiskCheck(POSITION_SIZE, True)

    def check_exposure(self, portfolio: PaperPortfolio, notional: float) -> RiskCheck:
        pct = self.config.max_total_exposure_pct
        max_value = portfolio.capital * pct / 100.0
        total = portfolio.exposure + notional
        if total > max_value:
            return RiskCheck(
                TOTAL_EXPOSURE,
                False,
                f"Total exposure exceeds limit: ₹{total:.2f} > ₹{max_value:.2f} ({pct}%)",
            )
        return RiskCheck(TOTAL_EXPOSURE, True)

    def check_max_positions(self, portfolio: PaperPortfolio) -> RiskCheck:
        count = len(portfolio.open_positions())
        limit = self.config.max_open_positions
        if count >= limit:
            return RiskCheck(MAX_POSITIONS, False, f"Max open positions reached: {count}/{limit}")
        return RiskCheck(MAX_POSITIONS, True)

    def check_daily_loss(self, portfolio: PaperPortfolio, now: datetime) -> RiskCheck:
        net = portfolio.ledger.realized_pnl_on(now.astimezone(timezone.utc).date())
        if net >= 0:
            return RiskCheck(DAILY_LOSS, True)
        loss = -net
        pct = self.config.max_daily_loss_pct
        max_loss = portfolio.capital * pct / 100.0
        if loss > max_loss:
            return RiskCheck(
                DAILY_LOSS,
                False,
                f"Daily loss limit exceeded: ₹{loss:.2f} > ₹{max_loss:.2f} ({pct}%)",
            )
        return RiskCheck(DAILY_LOSS, True)

    def check_drawdown(self, portfolio: PaperPortfolio) -> RiskCheck:
        drawdown = portfolio.drawdown_pct
        limit = self.config.max_drawdown_pct
        if drawdown > limit:
            return RiskCheck(
                DRAWDOWN,
                False,
                f"Max drawdown exceeded: {drawdown:.2f}% > {limit}%",
            )
        return RiskCheck(DRAWDOWN, True)

    def check_loss_cooldown(self, portfolio: PaperPortfolio, now: datetime) -> RiskCheck:
        limit = self.config.max_consecutive_losses
        streak = portfolio.ledger.trailing_losses(limit)
        if len(streak) < limit:
            return RiskCheck(LOSS_COOLDOWN, True)
        last_loss = streak[0].created_at
        resume_at = last_loss + timedelta(hours=self.config.cooldown_after_loss_hours)
        if now < resume_at:
            return RiskCheck(
                LOSS_COOLDOWN,
                False,
                f"Cooldown after {len(streak)} consecutive losses until {resume_at.isoformat()}",
            )
        return RiskCheck(LOSS_COOLDOWN, True)
