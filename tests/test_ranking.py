from arbitrage_engine.models import IntelligenceTier, OpportunityStatus, StrategyType
from arbitrage_engine.ranking import filter_by_strategy, opportunity_score, select_opportunity, sort_for_display


def _trio(make_opportunity):
    return [
        make_opportunity("a", profit_usd=5.0, gas_cost_usd=4.0, risk_factor=0.1),
        make_opportunity("b", profit_usd=3.0, gas_cost_usd=0.5, risk_factor=0.9),
        make_opportunity("c", profit_usd=2.5, gas_cost_usd=0.2, risk_factor=0.0),
    ]


def test_each_tier_scores_differently(make_opportunity):
    opps = _trio(make_opportunity)
    assert select_opportunity(opps, IntelligenceTier.LOW) == "a"
    assert select_opportunity(opps, IntelligenceTier.MEDIUM) == "b"
    assert select_opportunity(opps, IntelligenceTier.HIGH) == "c"


def test_high_tier_treats_missing_risk_as_zero(make_opportunity):
    opp = make_opportunity(profit_usd=1.0, gas_cost_usd=0.25, risk_factor=None)
    assert opportunity_score(opp, IntelligenceTier.HIGH) == 0.75


def test_only_ready_entries_are_eligible(make_opportunity):
    opps = [
        make_opportunity("busy", profit_usd=50.0, status=OpportunityStatus.EXECUTING),
        make_opportunity("done", profit_usd=40.0, status=OpportunityStatus.COMPLETED),
        make_opportunity("parked", profit_usd=30.0, status=OpportunityStatus.ANALYZING),
        make_opportunity("ok", profit_usd=1.0),
    ]
    for tier in IntelligenceTier:
        assert select_opportunity(opps, tier) == "ok"


def test_nothing_ready_selects_nothing(make_opportunity):
    assert select_opportunity([], IntelligenceTier.MEDIUM) is None
    failed = [make_opportunity(status=OpportunityStatus.FAILED)]
    assert select_opportunity(failed, IntelligenceTier.LOW) is None


def test_negative_scores_still_select(make_opportunity):
    opps = [make_opportunity("x", profit_usd=0.01, gas_cost_usd=0.5)]
    assert select_opportunity(opps, IntelligenceTier.MEDIUM) == "x"


def test_ties_go_to_the_first_seen(make_opportunity):
    opps = [make_opportunity("first", profit_usd=2.0), make_opportunity("second", profit_usd=2.0)]
    assert select_opportunity(opps, IntelligenceTier.LOW) == "first"
    assert select_opportunity(list(reversed(opps)), IntelligenceTier.LOW) == "second"


def test_selection_is_deterministic(make_opportunity):
    opps = _trio(make_opportunity)
    picks = {select_opportunity(opps, IntelligenceTier.HIGH) for _ in range(20)}
    assert picks == {"c"}


def test_display_order_is_by_profit_whatever_the_status(make_opportunity):
    opps = [
        make_opportunity("low", profit_usd=0.5),
        make_opportunity("high", profit_usd=9.0, status=OpportunityStatus.COMPLETED),
        make_opportunity("mid", profit_usd=3.0, status=OpportunityStatus.EXECUTING),
    ]
    assert [o.id for o in sort_for_display(opps)] == ["high", "mid", "low"]


def test_filter_by_strategy(make_opportunity):
    opps = [
        make_opportunity("d"),
        make_opportunity("t", strategy_type=StrategyType.TRIANGULAR),
        make_opportunity("q", strategy_type=StrategyType.QUADRILATERAL),
    ]
    assert [o.id for o in filter_by_strategy(opps, StrategyType.TRIANGULAR)] == ["t"]
    assert [o.id for o in filter_by_strategy(opps)] == ["d", "t", "q"]
