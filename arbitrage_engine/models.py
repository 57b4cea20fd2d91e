from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple
import math
import time

from .errors import InvalidSnapshotError


class StrategyType(Enum):
    """
    The three classes of cyclic path the finder knows how to build.
    """
    DIRECT = "direct"
    TRIANGULAR = "triangular"
    QUADRILATERAL = "quadrilateral"


class OpportunityStatus(Enum):
    """
    Enum representing the lifecycle states of an opportunity.
    ANALYZING -> READY -> EXECUTING -> COMPLETED | FAILED
    """
    ANALYZING = "analyzing"
    READY = "ready"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class IntelligenceTier(Enum):
    """Selection policy used to auto-pick one READY opportunity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FailureReason(Enum):
    """
    Closed set of business outcomes for a failed execution.
    The value is the description shown to operators.
    """
    PRICE_MOVED_BEFORE_EXECUTION = "Price moved before execution completed"
    INSUFFICIENT_LIQUIDITY = "Insufficient liquidity in target pool"
    SLIPPAGE_EXCEEDED = "Order execution exceeded slippage tolerance"
    NETWORK_TIMEOUT = "Network congestion caused transaction timeout"
    RATE_LIMITED = "Rate limiting on DEX API"
    POOL_IMBALANCE = "Temporary pool imbalance"


class PriceSnapshot(Mapping[str, Mapping[str, float]]):
    """
    Immutable quote matrix: token -> (venue -> price).

    Prices are denominated in the base token of the cycle (a stablecoin),
    so the base token is the numeraire and is worth 1.0 on every venue.
    Validation happens here, at the boundary, so the finder never sees
    an empty venue map or a non-positive price.
    """
    __slots__ = ("_quotes", "captured_at")

    def __init__(self, quotes: Mapping[str, Mapping[str, float]], captured_at: Optional[float] = None):
        if not quotes:
            raise InvalidSnapshotError("Snapshot contains no tokens")

        clean: Dict[str, Dict[str, float]] = {}
        for token, venues in quotes.items():
            if not venues:
                raise InvalidSnapshotError(f"Token {token} has an empty venue map")
            row: Dict[str, float] = {}
            for venue, price in venues.items():
                if isinstance(price, bool) or not isinstance(price, (int, float)):
                    raise InvalidSnapshotError(f"{token}@{venue}: price must be numeric, got {price!r}")
                if not math.isfinite(price) or price <= 0:
                    raise InvalidSnapshotError(f"{token}@{venue}: price must be positive and finite, got {price}")
                row[venue] = float(price)
            clean[token] = row

        self._quotes = clean
        self.captured_at = captured_at if captured_at is not None else time.time()

    def __getitem__(self, token: str) -> Mapping[str, float]:
        return dict(self._quotes[token])

    def __iter__(self) -> Iterator[str]:
        return iter(self._quotes)

    def __len__(self) -> int:
        return len(self._quotes)

    def __repr__(self) -> str:
        return f"PriceSnapshot({self._quotes!r})"

    @property
    def tokens(self) -> List[str]:
        return list(self._quotes)

    @property
    def venues(self) -> List[str]:
        """Union of every venue quoting anything, in first-seen order."""
        seen: Dict[str, None] = {}
        for row in self._quotes.values():
            for venue in row:
                seen.setdefault(venue, None)
        return list(seen)

    def price(self, token: str, venue: str) -> Optional[float]:
        return self._quotes.get(token, {}).get(venue)

    def reference_price(self, token: str, venue: Optional[str] = None) -> Optional[float]:
        """
        Price of `token` on `venue` when quoted there, otherwise the mean
        of its quotes. None if the token is not in the snapshot at all.
        """
        row = self._quotes.get(token)
        if not row:
            return None
        if venue is not None and venue in row:
            return row[venue]
        return sum(row.values()) / len(row)

    def rate(self, from_token: str, to_token: str, venue: str, base_token: str) -> Optional[float]:
        """
        Units of `to_token` received per unit of `from_token` on `venue`.

        rate = price(from) / price(to), with the base token pinned at 1.0.
        Returns None when the venue does not quote a non-base side of the hop.
        """
        p_from = 1.0 if from_token == base_token else self.price(from_token, venue)
        p_to = 1.0 if to_token == base_token else self.price(to_token, venue)
        if p_from is None or p_to is None:
            return None
        return p_from / p_to


@dataclass(frozen=True, slots=True)
class ArbitrageStep:
    """One hop of a trade path: swap from_token into to_token on venue."""
    venue: str
    from_token: str
    to_token: str


@dataclass(slots=True)
class ArbitrageOpportunity:
    """
    A candidate cyclic path, owned by the OpportunityBook once discovered.
    Figures are for a 100-unit base token reference trade.
    """
    id: str
    strategy_type: StrategyType
    route: str
    path: Tuple[ArbitrageStep, ...]
    profit_usd: float
    profit_pct: float
    gas_cost_usd: float
    risk_factor: Optional[float] = None
    status: OpportunityStatus = OpportunityStatus.READY
    discovered_at: float = field(default_factory=time.time)
    timestamp: Optional[float] = None
    execution_time_ms: Optional[int] = None
    investment_amount: Optional[float] = None
    failure_reason: Optional[FailureReason] = None
    expected_success_rate: Optional[float] = None

    @property
    def base_token(self) -> str:
        return self.path[0].from_token

    @property
    def is_closed(self) -> bool:
        return bool(self.path) and self.path[0].from_token == self.path[-1].to_token

    @property
    def net_profit_usd(self) -> float:
        return self.profit_usd - self.gas_cost_usd


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """
    Outcome of one simulated execution attempt. Produced once, never mutated.
    """
    success: bool
    profit_after_costs: float
    execution_time_ms: int
    gas_cost_sol: float
    failure_reason: Optional[FailureReason] = None
    success_probability: float = 0.0


@dataclass(frozen=True, slots=True)
class ExecutionEvent:
    """Notification handed to observers once an execution settles."""
    opportunity_id: str
    route: str
    strategy_type: StrategyType
    investment_amount: float
    result: ExecutionResult
    settled_at: float = field(default_factory=time.time)
