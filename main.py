import asyncio
import sys
import questionary
from rich.live import Live
from rich.table import Table
from rich.layout import Layout
from rich.console import Console
from rich.panel import Panel

from arbitrage_engine.bot import ArbitrageBot
from arbitrage_engine.config import BotConfig, StrategyToggles, load_raw_config
from arbitrage_engine.logger import AsyncAuditLogger, setup_console_logger
from arbitrage_engine.models import IntelligenceTier, OpportunityStatus
from arbitrage_engine.quotes import CcxtQuoteSource, MockQuoteSource
from arbitrage_engine.ranking import sort_for_display

STATUS_STYLE = {
    OpportunityStatus.READY: "green",
    OpportunityStatus.EXECUTING: "yellow",
    OpportunityStatus.COMPLETED: "cyan",
    OpportunityStatus.FAILED: "red",
    OpportunityStatus.ANALYZING: "magenta",
}

# --- UI HELPER FUNCTIONS ---

def startup_selection(config: BotConfig) -> BotConfig:
    """Interactive CLI to pick strategies, intelligence and sizing."""
    print("\n🚀 DEX ARBITRAGE ENGINE \n")
    defaults = config.strategies
    picked = questionary.checkbox("Select Strategies:", choices=[
        questionary.Choice("direct", checked=defaults.direct),
        questionary.Choice("triangular", checked=defaults.triangular),
        questionary.Choice("quadrilateral", checked=defaults.quadrilateral),
    ]).ask()
    if not picked:
        print("No strategy selected. Exiting.")
        sys.exit()

    tier = questionary.select(
        "Bot Intelligence:", choices=[t.value for t in IntelligenceTier], default=config.intelligence.value
    ).ask()

    amount = questionary.text("Investment amount:", default=str(config.investment_amount)).ask()
    try:
        investment = float(amount)
    except (TypeError, ValueError):
        print("Investment amount must be a number. Exiting.")
        sys.exit()
    if investment < 0:
        print("Investment amount cannot be negative. Exiting.")
        sys.exit()

    config.strategies = StrategyToggles(**{name: name in picked for name in ("direct", "triangular", "quadrilateral")})
    config.intelligence = IntelligenceTier(tier)
    config.investment_amount = investment
    return config

def generate_dashboard(bot: ArbitrageBot):
    """
    Creates the Rich Console Dashboard layout.
    Shows opportunities, recent executions and the running tally.
    """

    # 1. Opportunity Table
    opp_table = Table(title="📡 Opportunities")
    opp_table.add_column("Route", style="cyan")
    opp_table.add_column("Type")
    opp_table.add_column("Profit", justify="right", style="green")
    opp_table.add_column("%", justify="right")
    opp_table.add_column("Gas", justify="right")
    opp_table.add_column("Risk", justify="right")
    opp_table.add_column("Status")

    for opp in sort_for_display(bot.book.snapshot())[:12]:
        style = STATUS_STYLE[opp.status]
        risk = f"{opp.risk_factor:.2f}" if opp.risk_factor is not None else "-"
        opp_table.add_row(
            opp.route, opp.strategy_type.value, f"${opp.profit_usd:,.4f}", f"{opp.profit_pct:.2f}",
            f"${opp.gas_cost_usd:.4f}", risk, f"[{style}]{opp.status.value}[/{style}]",
        )

    # 2. Execution Table
    exec_table = Table(title="💰 Recent Executions")
    exec_table.add_column("Route", style="magenta")
    exec_table.add_column("Amount", justify="right")
    exec_table.add_column("PnL", justify="right")
    exec_table.add_column("ms", justify="right")
    exec_table.add_column("Outcome")

    for event in reversed(bot.events[-8:]):
        r = event.result
        outcome = "[green]OK[/green]" if r.success else f"[red]{r.failure_reason.value}[/red]"
        exec_table.add_row(event.route, f"{event.investment_amount:.2f}", f"${r.profit_after_costs:,.4f}", str(r.execution_time_ms), outcome)

    # Layout Construction
    layout = Layout()
    layout.split_column(
        Layout(name="top"),
        Layout(name="bottom")
    )

    layout["top"].split_row(
        Layout(Panel(opp_table)),
        Layout(Panel(exec_table))
    )

    learn = bot.risk.learnings
    footer = Panel(
        f"[bold gold1]PnL: ${learn.historical_profit:,.4f} | Trades: {learn.successful_trades} ok / "
        f"{learn.failed_trades} failed | Tier: {bot.config.intelligence.value} | {bot.risk.last_status}[/bold gold1]",
        style="white on blue",
    )
    layout["bottom"].update(footer)
    layout["bottom"].size = 3

    return layout

def build_quote_source(raw_conf: dict, logger):
    if raw_conf.get('system', {}).get('quote_source', 'mock') == 'ccxt':
        c = raw_conf.get('ccxt', {})
        return CcxtQuoteSource(c['venues'], c['tokens'], logger, quote_token=c.get('quote_token', 'USDC'), timeout_ms=c.get('timeout_ms', 5000))
    return MockQuoteSource()

# --- MAIN CONTROLLER ---

async def run(config: BotConfig, raw_conf: dict):
    logger = setup_console_logger("arbitrage_engine", raw_conf.get('system', {}).get('log_level', 'ERROR'))
    quotes = build_quote_source(raw_conf, logger)
    bot = ArbitrageBot(config, quotes, logger)

    audit_log = AsyncAuditLogger(config.audit_log) if config.audit_log else None
    if audit_log:
        await audit_log.start()
        bot.subscribe(audit_log.on_execution)

    runner = None
    try:
        print("Initializing Diagnostic Checks...")
        if not await quotes.initialize():
            print("❌ Diagnostic Failed. Check venue configuration.")
            return

        runner = asyncio.create_task(bot.run())
        console = Console()
        with Live(console=console, refresh_per_second=4) as live:
            while not runner.done():
                live.update(generate_dashboard(bot))
                await asyncio.sleep(0.25)
    finally:
        print("Shutting down resources...")
        bot.stop()
        if runner is not None and not runner.done():
            await runner
        if audit_log:
            await audit_log.stop()
        await quotes.shutdown()

if __name__ == "__main__":
    raw_conf = load_raw_config("config.yaml")
    try:
        conf = startup_selection(BotConfig.from_dict(raw_conf))
        try:
            import uvloop
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        except ImportError:
            pass
        asyncio.run(run(conf, raw_conf))
    except KeyboardInterrupt:
        print("\n🛑 Bot Stopped by User.")
        sys.exit()
