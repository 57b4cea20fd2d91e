import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, Dict, Iterable, List, Optional

from .errors import LifecycleError
from .models import ArbitrageOpportunity, ExecutionResult, OpportunityStatus


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a lifecycle transition. On success `opportunity` is a copy
    of the entry after the transition; on refusal `error` says why.
    """
    ok: bool
    opportunity: Optional[ArbitrageOpportunity] = None
    error: Optional[LifecycleError] = None
    message: str = ""

    @classmethod
    def accepted(cls, opp: ArbitrageOpportunity) -> "TransitionResult":
        return cls(ok=True, opportunity=replace(opp))

    @classmethod
    def rejected(cls, error: LifecycleError, message: str) -> "TransitionResult":
        return cls(ok=False, error=error, message=message)


class OpportunityBook:
    """
    Owns the opportunity table (id -> opportunity).

    A single coarse lock guards the table; the working set is small.
    Every check-then-transition happens under it, so at most one caller
    can move a given id from READY to EXECUTING.
    """
    def __init__(self, logger: logging.Logger, history_size: int = 100):
        self.logger = logger
        self._table: Dict[str, ArbitrageOpportunity] = {}
        self._history: Deque[ArbitrageOpportunity] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    # --- writes -------------------------------------------------------------

    async def refresh(self, fresh: Iterable[ArbitrageOpportunity]) -> int:
        """
        Replace every entry that is not EXECUTING with `fresh`.
        In-flight entries survive untouched even if they were not rediscovered.
        Returns the number of entries in the table afterwards.
        """
        async with self._lock:
            table = {oid: opp for oid, opp in self._table.items() if opp.status is OpportunityStatus.EXECUTING}
            for opp in fresh:
                if opp.id in table:
                    continue
                table[opp.id] = opp
            dropped = len(self._table) - sum(1 for oid in self._table if oid in table)
            self._table = table
            self.logger.debug(f"Book refreshed: {len(table)} entries, {dropped} discarded")
            return len(table)

    async def begin_execution(self, opportunity_id: str, investment_amount: float) -> TransitionResult:
        async with self._lock:
            opp = self._table.get(opportunity_id)
            if opp is None:
                return TransitionResult.rejected(
                    LifecycleError.UNKNOWN_OPPORTUNITY, f"{opportunity_id} is not in the book"
                )
            if opp.status is not OpportunityStatus.READY:
                return TransitionResult.rejected(
                    LifecycleError.INVALID_STATE, f"{opportunity_id} is {opp.status.value}, expected ready"
                )
            opp.status = OpportunityStatus.EXECUTING
            opp.investment_amount = investment_amount
            return TransitionResult.accepted(opp)

    async def complete_execution(
        self,
        opportunity_id: str,
        result: ExecutionResult,
        reference_sol_price: Optional[float] = None,
    ) -> TransitionResult:
        """
        EXECUTING -> COMPLETED on success, EXECUTING -> FAILED otherwise.
        profit_usd is overwritten with the realised profit after costs, and
        gas_cost_usd with the gas actually paid when a SOL price is given.
        """
        async with self._lock:
            opp = self._table.get(opportunity_id)
            if opp is None:
                return TransitionResult.rejected(
                    LifecycleError.UNKNOWN_OPPORTUNITY, f"{opportunity_id} is not in the book"
                )
            if opp.status is not OpportunityStatus.EXECUTING:
                return TransitionResult.rejected(
                    LifecycleError.INVALID_STATE, f"{opportunity_id} is {opp.status.value}, expected executing"
                )

            opp.status = OpportunityStatus.COMPLETED if result.success else OpportunityStatus.FAILED
            opp.timestamp = time.time()
            opp.execution_time_ms = result.execution_time_ms
            if reference_sol_price:
                opp.gas_cost_usd = result.gas_cost_sol * reference_sol_price
            opp.profit_usd = result.profit_after_costs
            opp.failure_reason = result.failure_reason

            self._history.append(replace(opp))
            return TransitionResult.accepted(opp)

    async def mark_analyzing(self, opportunity_id: str) -> TransitionResult:
        """Park a READY route for a secondary quality check."""
        return await self._move(opportunity_id, OpportunityStatus.READY, OpportunityStatus.ANALYZING)

    async def promote(self, opportunity_id: str) -> TransitionResult:
        """ANALYZING -> READY once the secondary check passed."""
        return await self._move(opportunity_id, OpportunityStatus.ANALYZING, OpportunityStatus.READY)

    async def _move(self, opportunity_id: str, expected: OpportunityStatus, target: OpportunityStatus) -> TransitionResult:
        async with self._lock:
            opp = self._table.get(opportunity_id)
            if opp is None:
                return TransitionResult.rejected(
                    LifecycleError.UNKNOWN_OPPORTUNITY, f"{opportunity_id} is not in the book"
                )
            if opp.status is not expected:
                return TransitionResult.rejected(
                    LifecycleError.INVALID_STATE, f"{opportunity_id} is {opp.status.value}, expected {expected.value}"
                )
            opp.status = target
            return TransitionResult.accepted(opp)

    # --- reads --------------------------------------------------------------

    def get(self, opportunity_id: str) -> Optional[ArbitrageOpportunity]:
        opp = self._table.get(opportunity_id)
        return replace(opp) if opp is not None else None

    def snapshot(self) -> List[ArbitrageOpportunity]:
        """Copies of every entry, in insertion order."""
        return [replace(opp) for opp in self._table.values()]

    def ready(self) -> List[ArbitrageOpportunity]:
        return [replace(o) for o in self._table.values() if o.status is OpportunityStatus.READY]

    def history(self) -> List[ArbitrageOpportunity]:
        """Settled opportunities, oldest first, bounded by history_size."""
        return list(self._history)

    def counts(self) -> Dict[OpportunityStatus, int]:
        out = {status: 0 for status in OpportunityStatus}
        for opp in self._table.values():
            out[opp.status] += 1
        return out

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, opportunity_id: str) -> bool:
        return opportunity_id in self._table
