import logging

import pytest

from arbitrage_engine.models import ArbitrageOpportunity, ArbitrageStep, OpportunityStatus, StrategyType


@pytest.fixture
def logger():
    return logging.getLogger("arbitrage_engine.tests")


@pytest.fixture
def make_opportunity():
    """Factory for a direct SOL opportunity with overridable fields."""
    def _make(oid="direct-SOL-Orca-Meteora-0", **overrides):
        fields = dict(
            id=oid,
            strategy_type=StrategyType.DIRECT,
            route="SOL (Orca → Meteora)",
            path=(
                ArbitrageStep("Orca", "USDC", "SOL"),
                ArbitrageStep("Meteora", "SOL", "USDC"),
            ),
            profit_usd=0.59,
            profit_pct=0.59,
            gas_cost_usd=0.015,
            risk_factor=0.1,
            status=OpportunityStatus.READY,
        )
        fields.update(overrides)
        return ArbitrageOpportunity(**fields)
    return _make
