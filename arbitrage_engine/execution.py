import asyncio
import logging
import random
from typing import Optional, Tuple

from .models import ArbitrageOpportunity, ExecutionResult, FailureReason, StrategyType

DEFAULT_SUCCESS_RATE = {
    StrategyType.DIRECT: 0.95,
    StrategyType.TRIANGULAR: 0.85,
    StrategyType.QUADRILATERAL: 0.75,
}

FAILURE_REASONS = tuple(FailureReason)


def success_probability(opp: ArbitrageOpportunity, investment_amount: float, perturbation: float) -> float:
    """
    1 - risk (or the per-strategy default), minus 0.05 for trades above 50
    units, plus the market perturbation, clamped into [0, 1].
    """
    if opp.risk_factor is not None:
        base = 1.0 - opp.risk_factor
    else:
        base = DEFAULT_SUCCESS_RATE[opp.strategy_type]
    size_adjustment = -0.05 if investment_amount > 50 else 0.0
    return min(1.0, max(0.0, base + size_adjustment + perturbation))


def simulate_outcome(
    opp: ArbitrageOpportunity,
    investment_amount: float,
    reference_sol_price: float,
    rng: random.Random,
) -> ExecutionResult:
    """
    Draw one execution outcome. Pure apart from `rng`, so a seeded
    Random gives a reproducible result.
    """
    if reference_sol_price <= 0:
        raise ValueError(f"reference_sol_price must be positive, got {reference_sol_price}")

    scale_factor = investment_amount / 100
    expected_profit = opp.profit_usd * scale_factor
    gas_cost_sol = (opp.gas_cost_usd / reference_sol_price) * rng.uniform(0.9, 1.1)

    probability = success_probability(opp, investment_amount, rng.uniform(0.0, 0.1))
    success = rng.random() < probability

    actual_profit = expected_profit * rng.uniform(0.85, 1.15) if success else 0.0
    profit_after_costs = actual_profit - gas_cost_sol * reference_sol_price
    execution_time_ms = 200 + rng.randrange(400)
    failure_reason = None if success else rng.choice(FAILURE_REASONS)

    return ExecutionResult(
        success=success,
        profit_after_costs=profit_after_costs,
        execution_time_ms=execution_time_ms,
        gas_cost_sol=gas_cost_sol,
        failure_reason=failure_reason,
        success_probability=probability,
    )


class ExecutionSimulator:
    """
    Stands in for the on-chain round trip: waits out a simulated network
    latency, then draws the outcome. The wait is awaited, so detection
    ticks keep running while a trade is "in flight".
    """
    def __init__(
        self,
        logger: logging.Logger,
        rng: Optional[random.Random] = None,
        latency_range: Tuple[float, float] = (0.8, 1.8),
    ):
        self.logger = logger
        self.rng = rng or random.Random()
        self.latency_range = latency_range

    async def simulate(
        self,
        opp: ArbitrageOpportunity,
        investment_amount: float,
        reference_sol_price: float,
    ) -> ExecutionResult:
        self.logger.info(f"⚡ EXECUTION TRIGGERED: {opp.route} | Amt: {investment_amount:.2f}")

        low, high = self.latency_range
        delay = self.rng.uniform(low, high) if high > 0 else 0.0
        await asyncio.sleep(delay)

        result = simulate_outcome(opp, investment_amount, reference_sol_price, self.rng)

        if result.success:
            self.logger.info(
                f"✅ SUCCESS: {opp.id} | PnL after costs: ${result.profit_after_costs:.4f} "
                f"| {result.execution_time_ms}ms"
            )
        else:
            self.logger.warning(
                f"⚠️ FAILED: {opp.id} | {result.failure_reason.value} "
                f"| p={result.success_probability:.2f}"
            )
        return result
