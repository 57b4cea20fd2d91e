from typing import Iterable, List, Optional

from .models import ArbitrageOpportunity, IntelligenceTier, OpportunityStatus, StrategyType


def opportunity_score(opp: ArbitrageOpportunity, tier: IntelligenceTier) -> float:
    """
    LOW    -> gross profit
    MEDIUM -> profit net of gas
    HIGH   -> profit net of gas, minus risk_factor taken as a same-unit penalty
    """
    if tier is IntelligenceTier.LOW:
        return opp.profit_usd
    if tier is IntelligenceTier.MEDIUM:
        return opp.profit_usd - opp.gas_cost_usd
    return opp.profit_usd - opp.gas_cost_usd - (opp.risk_factor or 0.0)


def select_opportunity(opportunities: Iterable[ArbitrageOpportunity], tier: IntelligenceTier) -> Optional[str]:
    """
    Id of the READY opportunity with the best score for `tier`, or None.
    Ties go to the one seen first.
    """
    best: Optional[ArbitrageOpportunity] = None
    best_score = 0.0
    for opp in opportunities:
        if opp.status is not OpportunityStatus.READY:
            continue
        score = opportunity_score(opp, tier)
        if best is None or score > best_score:
            best, best_score = opp, score
    return best.id if best is not None else None


def sort_for_display(opportunities: Iterable[ArbitrageOpportunity]) -> List[ArbitrageOpportunity]:
    """Most profitable first, whatever the status or tier."""
    return sorted(opportunities, key=lambda o: o.profit_usd, reverse=True)


def filter_by_strategy(
    opportunities: Iterable[ArbitrageOpportunity],
    strategy: Optional[StrategyType] = None,
) -> List[ArbitrageOpportunity]:
    if strategy is None:
        return list(opportunities)
    return [o for o in opportunities if o.strategy_type is strategy]
