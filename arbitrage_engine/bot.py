import asyncio
import inspect
import logging
import random
from typing import Awaitable, Callable, List, Optional, Set, Union

from .config import BotConfig, StrategyToggles
from .errors import QuoteSourceError
from .execution import ExecutionSimulator
from .lifecycle import OpportunityBook, TransitionResult
from .models import (
    ArbitrageOpportunity,
    ExecutionEvent,
    ExecutionResult,
    FailureReason,
    IntelligenceTier,
    PriceSnapshot,
)
from .quotes import QuoteSource
from .ranking import select_opportunity, sort_for_display
from .risk_engine import RiskEngine
from .strategy import find_opportunities

Observer = Callable[[ExecutionEvent], Union[None, Awaitable[None]]]


def _aborted_result() -> ExecutionResult:
    """Outcome recorded when the simulated round trip never came back."""
    return ExecutionResult(
        success=False,
        profit_after_costs=0.0,
        execution_time_ms=0,
        gas_cost_sol=0.0,
        failure_reason=FailureReason.NETWORK_TIMEOUT,
    )


class ArbitrageBot:
    """
    The autonomous loop. Two independent periodic tasks share one book:
      - detection: quotes -> finder -> book.refresh   (every detection_interval)
      - execution: book -> ranker -> risk -> simulate (every execution_interval, when auto_run)
    Stopping lets in-flight executions settle; nothing is cancelled mid-trade.
    """
    def __init__(
        self,
        config: BotConfig,
        quote_source: QuoteSource,
        logger: logging.Logger,
        book: Optional[OpportunityBook] = None,
        simulator: Optional[ExecutionSimulator] = None,
        risk: Optional[RiskEngine] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.quotes = quote_source
        self.logger = logger
        self.rng = rng or random.Random()
        self.book = book or OpportunityBook(logger, history_size=config.history_size)
        self.simulator = simulator or ExecutionSimulator(logger, rng=self.rng, latency_range=config.latency_range)
        self.risk = risk or RiskEngine(config.risk, logger)

        self.last_snapshot: Optional[PriceSnapshot] = None
        self.events: List[ExecutionEvent] = []
        self._observers: List[Observer] = []
        self._in_flight: Set[asyncio.Task] = set()
        self._running = False
        self._stop_event: Optional[asyncio.Event] = None

    # --- configuration -------------------------------------------------------

    def subscribe(self, observer: Observer):
        self._observers.append(observer)

    def update_config(
        self,
        strategies: Optional[StrategyToggles] = None,
        intelligence: Optional[IntelligenceTier] = None,
        investment_amount: Optional[float] = None,
        max_per_trade: Optional[float] = None,
        auto_run: Optional[bool] = None,
    ):
        """Applied between ticks; a tick always reads one consistent config."""
        if strategies is not None:
            self.config.strategies = strategies
        if intelligence is not None:
            self.config.intelligence = intelligence
        if investment_amount is not None:
            if investment_amount < 0:
                raise ValueError("investment_amount must be >= 0")
            self.config.investment_amount = investment_amount
        if max_per_trade is not None:
            if max_per_trade < 0:
                raise ValueError("max_per_trade must be >= 0")
            self.config.max_per_trade = max_per_trade
        if auto_run is not None:
            self.config.auto_run = auto_run

    @property
    def reference_sol_price(self) -> Optional[float]:
        if self.last_snapshot is None:
            return None
        return self.last_snapshot.reference_price(self.config.fee_token, self.config.reference_venue)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # --- ticks ---------------------------------------------------------------

    async def detection_tick(self) -> List[ArbitrageOpportunity]:
        cfg = self.config
        try:
            snapshot = await self.quotes.fetch_snapshot()
        except QuoteSourceError as e:
            self.logger.error(f"Could not analyze the latest market data: {e}")
            return sort_for_display(self.book.snapshot())

        self.last_snapshot = snapshot
        found = find_opportunities(
            snapshot,
            cfg.strategies.enabled(),
            base_token=cfg.base_token,
            reference_venue=cfg.reference_venue,
            rng=self.rng,
            quad_samples=cfg.quad_samples,
        )
        await self.book.refresh(found)

        ranked = sort_for_display(self.book.snapshot())
        if found:
            best = sort_for_display(found)[0]
            self.logger.info(
                f"✨ FOUND: {len(found)} opportunities | best {best.route} "
                f"${best.profit_usd:.3f} ({best.profit_pct:.2f}%)"
            )
        return ranked

    async def execution_tick(self) -> Optional[asyncio.Task]:
        """Pick one READY opportunity and launch it. Returns the launched task, if any."""
        cfg = self.config
        if not cfg.auto_run or cfg.investment_amount <= 0:
            return None
        if self.risk.kill_switch:
            self.risk.update_last_trade_status("Kill switch on: auto execution paused")
            return None

        ready = self.book.ready()
        selected_id = select_opportunity(ready, cfg.intelligence)
        if selected_id is None:
            return None

        amount = self.risk.trade_size(cfg.investment_amount, cfg.max_per_trade)
        selected = next(o for o in ready if o.id == selected_id)
        if not self.risk.pre_trade_check(selected, amount):
            return None

        task = asyncio.create_task(self.execute(selected_id, amount))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def execute(self, opportunity_id: str, amount: Optional[float] = None) -> Union[ExecutionEvent, TransitionResult]:
        """
        Run one opportunity end to end. Returns the ExecutionEvent, or the
        rejected TransitionResult if the book refused to start it.
        """
        if amount is None:
            amount = self.risk.trade_size(self.config.investment_amount, self.config.max_per_trade)

        started = await self.book.begin_execution(opportunity_id, amount)
        if not started.ok:
            self.logger.info(f"Execution of {opportunity_id} refused: {started.message}")
            return started

        opp = started.opportunity
        self.risk.update_last_trade_status(f"ATTEMPT: {opp.route} with {amount:.2f}")

        sol_price = self.reference_sol_price or 1.0
        try:
            result = await self.simulator.simulate(opp, amount, sol_price)
        except asyncio.CancelledError:
            # Settle the entry so refresh can drop it, then let the cancel through.
            await self.book.complete_execution(opportunity_id, _aborted_result(), reference_sol_price=sol_price)
            raise
        except Exception as e:
            self.logger.exception(f"❌ Execution of {opp.route} crashed: {e}")
            result = _aborted_result()

        await self.book.complete_execution(opportunity_id, result, reference_sol_price=sol_price)
        self.risk.record_execution_result(result)

        if result.success:
            self.risk.update_last_trade_status(f"✅ {opp.route}: ${result.profit_after_costs:.4f}")
        else:
            self.risk.update_last_trade_status(f"❌ {opp.route}: {result.failure_reason.value}")

        event = ExecutionEvent(
            opportunity_id=opportunity_id,
            route=opp.route,
            strategy_type=opp.strategy_type,
            investment_amount=amount,
            result=result,
        )
        self.events.append(event)
        del self.events[:-self.config.history_size]
        await self._publish(event)
        return event

    async def _publish(self, event: ExecutionEvent):
        for observer in list(self._observers):
            try:
                out = observer(event)
                if inspect.isawaitable(out):
                    await out
            except Exception as e:
                # Logged, not propagated.
                self.logger.error(f"Observer {observer!r} failed: {e}")

    # --- loop ----------------------------------------------------------------

    async def _every(self, interval: float, tick: Callable[[], Awaitable]):
        while self._running:
            try:
                await tick()
            except Exception as e:
                self.logger.exception(f"Tick {tick.__name__} crashed: {e}")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def run(self):
        self._running = True
        self._stop_event = asyncio.Event()
        loops = [
            asyncio.create_task(self._every(self.config.detection_interval, self.detection_tick)),
            asyncio.create_task(self._every(self.config.execution_interval, self.execution_tick)),
        ]
        try:
            await asyncio.gather(*loops)
        finally:
            if self._in_flight:
                self.logger.info(f"Waiting for {len(self._in_flight)} in-flight execution(s) to settle...")
                await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def stop(self):
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
