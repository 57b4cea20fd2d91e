import asyncio
import random

import pytest

from arbitrage_engine.execution import ExecutionSimulator, simulate_outcome, success_probability
from arbitrage_engine.models import FailureReason, StrategyType


def test_probability_size_penalty_and_bounds(make_opportunity):
    opp = make_opportunity(risk_factor=0.9)
    assert success_probability(opp, 200, 0.0) == pytest.approx(0.05)
    assert success_probability(opp, 50, 0.0) == pytest.approx(0.1)

    assert success_probability(make_opportunity(risk_factor=5.0), 200, 0.1) == 0.0
    assert success_probability(make_opportunity(risk_factor=0.0), 10, 0.1) == 1.0


def test_probability_falls_back_to_strategy_default(make_opportunity):
    tri = make_opportunity(risk_factor=None, strategy_type=StrategyType.TRIANGULAR)
    assert success_probability(tri, 10, 0.0) == pytest.approx(0.85)


@pytest.mark.parametrize("seed", range(25))
def test_outcome_invariants(make_opportunity, seed):
    opp = make_opportunity(risk_factor=0.4, profit_usd=2.0, gas_cost_usd=0.015)
    result = simulate_outcome(opp, 200, 150.0, random.Random(seed))

    assert 0.0 <= result.success_probability <= 1.0
    assert 200 <= result.execution_time_ms < 600
    expected_gas = 0.015 / 150.0
    assert expected_gas * 0.9 <= result.gas_cost_sol <= expected_gas * 1.1

    gas_usd = result.gas_cost_sol * 150.0
    if result.success:
        assert result.failure_reason is None
        assert 2.0 * 2 * 0.85 - gas_usd <= result.profit_after_costs <= 2.0 * 2 * 1.15 - gas_usd
    else:
        assert isinstance(result.failure_reason, FailureReason)
        assert result.profit_after_costs == pytest.approx(-gas_usd)


def test_certain_success_and_certain_failure(make_opportunity):
    rng = random.Random(3)
    for _ in range(20):
        assert simulate_outcome(make_opportunity(risk_factor=0.0), 10, 150.0, rng).success
        assert not simulate_outcome(make_opportunity(risk_factor=2.0), 200, 150.0, rng).success


def test_seeded_outcomes_are_reproducible(make_opportunity):
    opp = make_opportunity(risk_factor=0.5)
    a = [simulate_outcome(opp, 100, 145.0, r) for r in [random.Random(11)] for _ in range(5)]
    b = [simulate_outcome(opp, 100, 145.0, r) for r in [random.Random(11)] for _ in range(5)]
    assert a == b


@pytest.mark.parametrize("price", [0.0, -144.0])
def test_non_positive_sol_price_is_rejected(make_opportunity, price):
    with pytest.raises(ValueError):
        simulate_outcome(make_opportunity(), 100, price, random.Random(0))


def test_simulator_awaits_latency_then_returns(make_opportunity, logger):
    sim = ExecutionSimulator(logger, rng=random.Random(1), latency_range=(0.0, 0.0))
    result = asyncio.run(sim.simulate(make_opportunity(), 25, 144.0))
    assert 200 <= result.execution_time_ms < 600
    assert result.gas_cost_sol > 0
