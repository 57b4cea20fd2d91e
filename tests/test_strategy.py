import random

import pytest

from arbitrage_engine.models import OpportunityStatus, PriceSnapshot, StrategyType
from arbitrage_engine.quotes import REFERENCE_QUOTES
from arbitrage_engine.strategy import (
    StrategyParams,
    compound_cycle,
    find_direct,
    find_opportunities,
    find_quadrilateral,
    find_triangular,
)

ALL = (StrategyType.DIRECT, StrategyType.TRIANGULAR, StrategyType.QUADRILATERAL)


@pytest.fixture
def snapshot():
    return PriceSnapshot(REFERENCE_QUOTES)


def _tokens_of(opp):
    return [step.from_token for step in opp.path] + [opp.path[-1].to_token]


def _venues_of(opp):
    return [step.venue for step in opp.path]


def test_direct_finds_orca_to_meteora_on_sol(snapshot):
    found = find_direct(snapshot, base_token="USDC", rng=random.Random(1), now=1000.0)
    sol = [o for o in found if o.route == "SOL (Orca → Meteora)"]

    assert len(sol) == 1
    opp = sol[0]
    assert opp.profit_pct == pytest.approx(0.589, abs=1e-3)
    assert opp.profit_usd == pytest.approx(100 / 144.25 * (145.10 - 144.25))
    assert opp.status is OpportunityStatus.READY
    assert opp.risk_factor == pytest.approx(0.1)
    assert opp.gas_cost_usd == pytest.approx(0.015)
    assert opp.path[0].venue == "Orca" and opp.path[1].venue == "Meteora"


def test_direct_skips_the_base_token_and_small_spreads(snapshot):
    found = find_direct(snapshot, base_token="USDC", now=1000.0)
    assert all(o.path[0].to_token != "USDC" for o in found)
    # Jupiter 144.95 -> Meteora 145.10 is only ~0.10%
    assert not [o for o in found if o.route == "SOL (Jupiter → Meteora)"]


def test_direct_profitability_invariant(snapshot):
    found = find_direct(snapshot, base_token="USDC", now=1000.0)
    assert found
    for opp in found:
        assert opp.profit_pct > 0.25
        assert opp.profit_usd > opp.gas_cost_usd * 1.2


def test_gas_filter_rejects_thin_profits():
    snap = PriceSnapshot({"SOL": {"Orca": 100.0, "Meteora": 100.5}, "USDC": {"Orca": 1.0}})
    assert find_direct(snap, base_token="USDC", now=1.0)

    # Same spread, but a gas estimate that eats the whole 0.5 profit.
    expensive = StrategyParams(
        min_profit_pct=0.25, gas_cost_native=0.5, gas_buffer=1.2, base_risk=0.1,
    )
    assert find_direct(snap, base_token="USDC", params=expensive, now=1.0) == []


def test_gas_uses_base_token_reference_price():
    snap = PriceSnapshot({"SOL": {"Orca": 100.0, "Meteora": 101.0}, "USDC": {"Orca": 1.02, "Meteora": 1.0}})
    found = find_direct(snap, base_token="USDC", reference_venue="Orca", now=1.0)
    assert found[0].gas_cost_usd == pytest.approx(0.015 * 1.02)

    no_base = PriceSnapshot({"SOL": {"Orca": 100.0, "Meteora": 101.0}})
    found = find_direct(no_base, base_token="USDC", now=1.0)
    assert found[0].gas_cost_usd == pytest.approx(0.015)


def test_flat_market_has_no_opportunities():
    flat = PriceSnapshot({
        "SOL": {"Orca": 150.0, "Raydium": 150.0},
        "JUP": {"Orca": 1.2, "Raydium": 1.2},
        "BONK": {"Orca": 0.00003, "Raydium": 0.00003},
        "USDC": {"Orca": 1.0, "Raydium": 1.0},
    })
    assert find_opportunities(flat, ALL, base_token="USDC", rng=random.Random(3), now=1.0) == []


def test_triangular_compounds_three_hops():
    # Only B is mispriced: 1.02 on X, 1.00 on Y.
    snap = PriceSnapshot({
        "A": {"X": 1.0, "Y": 1.0},
        "B": {"X": 1.02, "Y": 1.0},
    })
    found = find_triangular(snap, base_token="USDC", rng=random.Random(7), now=5.0)

    assert len(found) == 4
    for opp in found:
        assert opp.strategy_type is StrategyType.TRIANGULAR
        assert len(opp.path) == 3
        assert opp.profit_usd == pytest.approx(2.0)
        assert opp.profit_pct == pytest.approx(2.0)
        assert opp.gas_cost_usd == pytest.approx(0.025)
        assert 0.3 <= opp.risk_factor < 0.5
        assert opp.expected_success_rate == pytest.approx(1 - opp.risk_factor)

    routes = {o.route for o in found}
    assert routes == {"USDC → A → B → USDC", "USDC → B → A → USDC"}


def test_triangular_buffer_invariant_and_closure(snapshot):
    found = find_triangular(snapshot, base_token="USDC", rng=random.Random(11), now=1000.0)
    assert found
    for opp in found:
        assert opp.profit_pct > 0.4
        assert opp.profit_usd > opp.gas_cost_usd * 1.3
        assert opp.is_closed
        final = compound_cycle(snapshot, _tokens_of(opp), _venues_of(opp), "USDC")
        assert final - 100 == pytest.approx(opp.profit_usd)


def test_quadrilateral_uses_compounded_rates():
    snap = PriceSnapshot({
        "A": {"X": 1.0, "Y": 1.0},
        "B": {"X": 2.0, "Y": 2.0},
        "C": {"X": 1.02, "Y": 1.0},
    })
    found = find_quadrilateral(snap, base_token="USDC", rng=random.Random(5), now=5.0, samples=3)

    assert found
    for opp in found:
        assert len(opp.path) == 4
        assert opp.is_closed
        assert sorted(_tokens_of(opp)[1:-1]) == ["A", "B", "C"]
        assert opp.profit_usd == pytest.approx(2.0)
        assert opp.profit_pct > 0.4
        assert opp.profit_usd > opp.gas_cost_usd * 1.3
        assert opp.gas_cost_usd == pytest.approx(0.035)
        assert 0.5 <= opp.risk_factor < 0.8


def test_quadrilateral_samples_at_most_the_requested_triples(snapshot):
    found = find_quadrilateral(snapshot, base_token="USDC", rng=random.Random(2), now=1.0, samples=2)
    triples = {tuple(_tokens_of(o)[1:-1]) for o in found}
    assert len(triples) <= 2
    for opp in found:
        final = compound_cycle(snapshot, _tokens_of(opp), _venues_of(opp), "USDC")
        assert final - 100 == pytest.approx(opp.profit_usd)


def test_quadrilateral_needs_three_intermediates():
    snap = PriceSnapshot({"A": {"X": 1.0, "Y": 1.1}, "B": {"X": 1.0, "Y": 1.2}})
    assert find_quadrilateral(snap, base_token="USDC", rng=random.Random(0), now=1.0) == []


def test_every_opportunity_closes_on_the_base_token(snapshot):
    found = find_opportunities(snapshot, ALL, base_token="USDC", rng=random.Random(9), now=1.0)
    assert found
    for opp in found:
        assert opp.path[0].from_token == opp.path[-1].to_token == "USDC"
        expected_len = {StrategyType.DIRECT: 2, StrategyType.TRIANGULAR: 3, StrategyType.QUADRILATERAL: 4}
        assert len(opp.path) == expected_len[opp.strategy_type]
        assert 0.0 <= opp.risk_factor <= 1.0


def test_dispatcher_concatenates_enabled_strategies_in_order(snapshot):
    found = find_opportunities(
        snapshot, [StrategyType.TRIANGULAR, StrategyType.DIRECT], base_token="USDC", rng=random.Random(4), now=1.0,
    )
    kinds = [o.strategy_type for o in found]
    assert StrategyType.QUADRILATERAL not in kinds
    first_tri = kinds.index(StrategyType.TRIANGULAR)
    assert all(k is StrategyType.DIRECT for k in kinds[:first_tri])
    assert all(k is StrategyType.TRIANGULAR for k in kinds[first_tri:])

    assert find_opportunities(snapshot, [], base_token="USDC", now=1.0) == []


def test_ids_are_unique_within_a_cycle(snapshot):
    found = find_opportunities(snapshot, ALL, base_token="USDC", rng=random.Random(9), now=1.0)
    ids = [o.id for o in found]
    assert len(ids) == len(set(ids))


def test_seeded_runs_are_reproducible(snapshot):
    a = find_opportunities(snapshot, ALL, base_token="USDC", rng=random.Random(42), now=7.0)
    b = find_opportunities(snapshot, ALL, base_token="USDC", rng=random.Random(42), now=7.0)
    assert [(o.id, o.risk_factor) for o in a] == [(o.id, o.risk_factor) for o in b]
