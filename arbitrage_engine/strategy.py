# arbitrage_engine/strategy.py
import itertools
import random
import time
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import ArbitrageOpportunity, ArbitrageStep, PriceSnapshot, StrategyType

REFERENCE_AMOUNT = 100.0


@dataclass(frozen=True)
class StrategyParams:
    """
    Profitability gates and risk shape for one strategy class.
    gas_cost_native is the fee estimate in the fee token (SOL-equivalent).
    """
    min_profit_pct: float
    gas_cost_native: float
    gas_buffer: float
    base_risk: float
    risk_jitter: float = 0.0


DEFAULT_PARAMS: Dict[StrategyType, StrategyParams] = {
    StrategyType.DIRECT: StrategyParams(min_profit_pct=0.25, gas_cost_native=0.015, gas_buffer=1.2, base_risk=0.1),
    StrategyType.TRIANGULAR: StrategyParams(min_profit_pct=0.4, gas_cost_native=0.025, gas_buffer=1.3, base_risk=0.3, risk_jitter=0.2),
    StrategyType.QUADRILATERAL: StrategyParams(min_profit_pct=0.4, gas_cost_native=0.035, gas_buffer=1.3, base_risk=0.5, risk_jitter=0.3),
}


def compound_cycle(
    snapshot: PriceSnapshot,
    tokens: Sequence[str],
    venues: Sequence[str],
    base_token: str,
    amount: float = REFERENCE_AMOUNT,
) -> Optional[float]:
    """
    Push `amount` of tokens[0] through hops tokens[i] -> tokens[i+1] on venues[i].
    `tokens` includes the closing token, so len(tokens) == len(venues) + 1.
    Returns the final amount, or None if some venue does not quote a hop.
    """
    for i, venue in enumerate(venues):
        rate = snapshot.rate(tokens[i], tokens[i + 1], venue, base_token)
        if rate is None:
            return None
        amount *= rate
    return amount


def _gas_cost_usd(snapshot: PriceSnapshot, params: StrategyParams, base_token: str, reference_venue: Optional[str]) -> float:
    # An unquoted base token is the numeraire itself.
    ref = snapshot.reference_price(base_token, reference_venue)
    return params.gas_cost_native * (ref if ref is not None else 1.0)


def _risk(params: StrategyParams, rng: random.Random) -> float:
    jitter = rng.random() * params.risk_jitter if params.risk_jitter else 0.0
    return min(1.0, params.base_risk + jitter)


def _make_id(strategy: StrategyType, tokens: Iterable[str], venues: Iterable[str], now: float) -> str:
    return f"{strategy.value}-{'-'.join(tokens)}-{'-'.join(venues)}-{int(now * 1000)}"


def _build_path(tokens: Sequence[str], venues: Sequence[str]) -> Tuple[ArbitrageStep, ...]:
    return tuple(
        ArbitrageStep(venue=venue, from_token=tokens[i], to_token=tokens[i + 1])
        for i, venue in enumerate(venues)
    )


def _cycle_candidates(
    snapshot: PriceSnapshot,
    strategy: StrategyType,
    intermediates: Sequence[str],
    base_token: str,
    params: StrategyParams,
    gas_usd: float,
    rng: random.Random,
    now: float,
) -> List[ArbitrageOpportunity]:
    """Every venue assignment for one ordered token cycle that clears both gates."""
    tokens = [base_token, *intermediates, base_token]
    hops = len(tokens) - 1
    found: List[ArbitrageOpportunity] = []

    for venues in itertools.product(snapshot.venues, repeat=hops):
        final = compound_cycle(snapshot, tokens, venues, base_token)
        if final is None:
            continue
        profit = final - REFERENCE_AMOUNT
        profit_pct = profit / REFERENCE_AMOUNT * 100
        if profit_pct <= params.min_profit_pct:
            continue
        if profit <= gas_usd * params.gas_buffer:
            continue

        risk = _risk(params, rng)
        found.append(ArbitrageOpportunity(
            id=_make_id(strategy, tokens[:-1], venues, now),
            strategy_type=strategy,
            route=" → ".join(tokens),
            path=_build_path(tokens, venues),
            profit_usd=profit,
            profit_pct=profit_pct,
            gas_cost_usd=gas_usd,
            risk_factor=risk,
            discovered_at=now,
            expected_success_rate=1.0 - risk,
        ))
    return found


def find_direct(
    snapshot: PriceSnapshot,
    base_token: str = "USDC",
    params: StrategyParams = DEFAULT_PARAMS[StrategyType.DIRECT],
    reference_venue: Optional[str] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
) -> List[ArbitrageOpportunity]:
    """
    Same token, two venues: buy where it is cheap, sell where it is rich.
    `sell_venue` is the cheap side (it sells us the token), `buy_venue` the
    rich side (it buys the token back).
    """
    rng = rng or random.Random()
    now = time.time() if now is None else now
    gas_usd = _gas_cost_usd(snapshot, params, base_token, reference_venue)
    found: List[ArbitrageOpportunity] = []

    for token in snapshot:
        if token == base_token:
            continue
        quotes = list(snapshot[token].items())
        for sell_venue, sell_price in quotes:
            for buy_venue, buy_price in quotes:
                if sell_venue == buy_venue or sell_price >= buy_price:
                    continue

                profit_pct = (buy_price / sell_price - 1) * 100
                if profit_pct <= params.min_profit_pct:
                    continue

                profit_usd = (REFERENCE_AMOUNT / sell_price) * (buy_price - sell_price)
                if profit_usd <= gas_usd * params.gas_buffer:
                    continue

                risk = _risk(params, rng)
                found.append(ArbitrageOpportunity(
                    id=_make_id(StrategyType.DIRECT, (token,), (sell_venue, buy_venue), now),
                    strategy_type=StrategyType.DIRECT,
                    route=f"{token} ({sell_venue} → {buy_venue})",
                    path=(
                        ArbitrageStep(venue=sell_venue, from_token=base_token, to_token=token),
                        ArbitrageStep(venue=buy_venue, from_token=token, to_token=base_token),
                    ),
                    profit_usd=profit_usd,
                    profit_pct=profit_pct,
                    gas_cost_usd=gas_usd,
                    risk_factor=risk,
                    discovered_at=now,
                    expected_success_rate=1.0 - risk,
                ))
    return found


def find_triangular(
    snapshot: PriceSnapshot,
    base_token: str = "USDC",
    params: StrategyParams = DEFAULT_PARAMS[StrategyType.TRIANGULAR],
    reference_venue: Optional[str] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
) -> List[ArbitrageOpportunity]:
    """base -> midA -> midB -> base over every ordered pair and venue triple."""
    rng = rng or random.Random()
    now = time.time() if now is None else now
    gas_usd = _gas_cost_usd(snapshot, params, base_token, reference_venue)
    mids = [t for t in snapshot if t != base_token]

    found: List[ArbitrageOpportunity] = []
    for pair in itertools.permutations(mids, 2):
        found.extend(_cycle_candidates(snapshot, StrategyType.TRIANGULAR, pair, base_token, params, gas_usd, rng, now))
    return found


def find_quadrilateral(
    snapshot: PriceSnapshot,
    base_token: str = "USDC",
    params: StrategyParams = DEFAULT_PARAMS[StrategyType.QUADRILATERAL],
    reference_venue: Optional[str] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
    samples: int = 3,
) -> List[ArbitrageOpportunity]:
    """
    Four hops through three distinct intermediates. The token space is
    explored by sampling `samples` ordered triples instead of all of them;
    each sampled triple is then searched over every venue assignment.
    """
    rng = rng or random.Random()
    now = time.time() if now is None else now
    mids = [t for t in snapshot if t != base_token]
    if len(mids) < 3 or samples <= 0:
        return []

    gas_usd = _gas_cost_usd(snapshot, params, base_token, reference_venue)
    # Cap attempts so a tiny universe cannot spin forever on duplicates.
    tried = set()
    attempts = 0
    while len(tried) < samples and attempts < samples * 10:
        attempts += 1
        tried.add(tuple(rng.sample(mids, 3)))

    found: List[ArbitrageOpportunity] = []
    for triple in sorted(tried, key=lambda t: [mids.index(x) for x in t]):
        found.extend(_cycle_candidates(snapshot, StrategyType.QUADRILATERAL, triple, base_token, params, gas_usd, rng, now))
    return found


def find_opportunities(
    snapshot: PriceSnapshot,
    strategies: Iterable[StrategyType],
    base_token: str = "USDC",
    reference_venue: Optional[str] = None,
    params: Optional[Dict[StrategyType, StrategyParams]] = None,
    rng: Optional[random.Random] = None,
    now: Optional[float] = None,
    quad_samples: int = 3,
) -> List[ArbitrageOpportunity]:
    """
    Concatenate the output of every enabled strategy, in Direct, Triangular,
    Quadrilateral order. The strategies do not interact.
    """
    params = {**DEFAULT_PARAMS, **(params or {})}
    rng = rng or random.Random()
    now = time.time() if now is None else now
    enabled = set(strategies)

    found: List[ArbitrageOpportunity] = []
    if StrategyType.DIRECT in enabled:
        found.extend(find_direct(snapshot, base_token, params[StrategyType.DIRECT], reference_venue, rng, now))
    if StrategyType.TRIANGULAR in enabled:
        found.extend(find_triangular(snapshot, base_token, params[StrategyType.TRIANGULAR], reference_venue, rng, now))
    if StrategyType.QUADRILATERAL in enabled:
        found.extend(find_quadrilateral(
            snapshot, base_token, params[StrategyType.QUADRILATERAL], reference_venue, rng, now, samples=quad_samples,
        ))
    return found
