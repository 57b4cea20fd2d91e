from dataclasses import dataclass, field
from typing import List
import logging

from .config import RiskLimits
from .models import ArbitrageOpportunity, ExecutionResult, OpportunityStatus


@dataclass
class BotLearnings:
    """Running tally of what the bot has seen so far this session."""
    successful_trades: int = 0
    failed_trades: int = 0
    historical_profit: float = 0.0
    known_issues: List[str] = field(default_factory=list)

    @property
    def total_trades(self) -> int:
        return self.successful_trades + self.failed_trades

    @property
    def success_rate(self) -> float:
        return self.successful_trades / self.total_trades if self.total_trades else 0.0


class RiskEngine:
    """
    Sizes trades and acts as a circuit breaker.
    Separates the decision 'Can we trade?' from the logic of finding the trade.
    """
    def __init__(self, limits: RiskLimits, logger: logging.Logger):
        self.cfg = limits
        self.logger = logger
        self.session_pnl = 0.0
        self.consecutive_fails = 0
        self.kill_switch = False
        self.learnings = BotLearnings()
        self.last_status = "Idle"

    @staticmethod
    def trade_size(investment_amount: float, max_per_trade: float) -> float:
        """
        Amount to commit to one trade: the per-trade cap when one is set,
        never more than what is available.
        """
        if investment_amount <= 0:
            return 0.0
        cap = max_per_trade or investment_amount
        return min(cap, investment_amount)

    def update_last_trade_status(self, msg: str):
        self.last_status = msg

    def pre_trade_check(self, opp: ArbitrageOpportunity, amount: float) -> bool:
        """
        The Final Gatekeeper: Can we execute this specific opportunity at this size?
        """
        if self.kill_switch:
            # System is locked down due to previous failures or drawdown
            return False

        if opp.status is not OpportunityStatus.READY:
            return False

        if amount <= 0:
            self.update_last_trade_status(f"Skipped {opp.route}: nothing to invest")
            return False

        limit = self.cfg.max_exposure_per_trade
        if limit is not None and amount > limit:
            self.logger.warning(f"⛔ REJECTED: Trade size {amount:.2f} exceeds limit {limit}")
            self.update_last_trade_status(f"Rejected {opp.route}: size {amount:.2f} > {limit}")
            return False

        return True

    def record_execution_result(self, result: ExecutionResult):
        """
        Updates the internal state based on the result of an attempted trade.
        """
        self.session_pnl += result.profit_after_costs
        self.learnings.historical_profit += result.profit_after_costs

        if result.success:
            self.consecutive_fails = 0
            self.learnings.successful_trades += 1
        else:
            self.consecutive_fails += 1
            self.learnings.failed_trades += 1
            if result.failure_reason is not None:
                issue = result.failure_reason.value
                if issue not in self.learnings.known_issues:
                    self.learnings.known_issues.append(issue)

            if self.consecutive_fails >= self.cfg.max_consecutive_failures:
                self.logger.critical(f"⛔ KILL SWITCH ACTIVATED: {self.consecutive_fails} consecutive execution failures.")
                self.kill_switch = True

        if self.session_pnl < -self.cfg.max_drawdown_usd and not self.kill_switch:
            self.logger.critical(f"⛔ KILL SWITCH ACTIVATED: Max drawdown hit (${self.session_pnl:.2f})")
            self.kill_switch = True

    def reset(self):
        """Re-arm after an operator has looked at what tripped the breaker."""
        self.consecutive_fails = 0
        self.session_pnl = 0.0
        self.kill_switch = False
