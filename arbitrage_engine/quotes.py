import random
import time
from typing import Dict, List, Mapping, Optional

import ccxt.async_support as ccxt

from .errors import QuoteSourceError
from .models import PriceSnapshot

# Reference quote matrix the mock source fluctuates around (base: USDC).
REFERENCE_QUOTES: Dict[str, Dict[str, float]] = {
    "SOL": {"Raydium": 144.55, "Jupiter": 144.95, "Orca": 144.25, "Meteora": 145.10},
    "BONK": {"Raydium": 0.000027, "Jupiter": 0.0000272, "Orca": 0.0000276, "Meteora": 0.0000274},
    "USDC": {"Raydium": 1.00, "Jupiter": 1.00, "Orca": 1.00, "Meteora": 1.00},
    "mSOL": {"Raydium": 147.20, "Jupiter": 146.90, "Orca": 147.05, "Meteora": 147.40},
    "JUP": {"Raydium": 1.26, "Jupiter": 1.27, "Orca": 1.25, "Meteora": 1.28},
}


class QuoteSource:
    """
    Supplies a fresh PriceSnapshot on demand.
    initialize/shutdown are no-ops unless the source holds connections.
    """
    async def initialize(self) -> bool:
        return True

    async def fetch_snapshot(self) -> PriceSnapshot:
        raise NotImplementedError

    async def shutdown(self):
        pass


def _round_like(reference: float, value: float) -> float:
    if reference < 0.001:
        return round(value, 8)
    if reference < 0.1:
        return round(value, 6)
    return round(value, 4)


class MockQuoteSource(QuoteSource):
    """
    Randomized quotes: each reference price moves by up to +/- `fluctuation`
    (0.005 = 0.5%) per fetch, rounded to a precision that suits its magnitude.
    """
    def __init__(
        self,
        reference: Optional[Mapping[str, Mapping[str, float]]] = None,
        rng: Optional[random.Random] = None,
        fluctuation: float = 0.005,
    ):
        self.reference = {t: dict(v) for t, v in (reference or REFERENCE_QUOTES).items()}
        self.rng = rng or random.Random()
        self.fluctuation = fluctuation

    async def fetch_snapshot(self) -> PriceSnapshot:
        quotes: Dict[str, Dict[str, float]] = {}
        for token, venues in self.reference.items():
            quotes[token] = {}
            for venue, price in venues.items():
                move = (self.rng.random() - 0.5) * 2 * self.fluctuation
                quotes[token][venue] = _round_like(price, price * (1 + move))
        return PriceSnapshot(quotes, captured_at=time.time())


class CcxtQuoteSource(QuoteSource):
    """
    Public last-trade prices from centralized venues through ccxt.
    Read-only: no API keys, no orders. A venue that errors is skipped for
    this fetch; only a fetch where every venue fails raises.
    """
    def __init__(self, venues: List[str], tokens: List[str], logger, quote_token: str = "USDC", timeout_ms: int = 5000):
        self.venue_names = venues
        self.tokens = tokens
        self.quote_token = quote_token
        self.timeout_ms = timeout_ms
        self.logger = logger
        self.exchanges: Dict[str, ccxt.Exchange] = {}

    async def initialize(self) -> bool:
        """
        Connects to each venue and loads its markets.
        Returns False if ANY venue fails the diagnostic.
        """
        all_connected = True
        self.logger.info("📡 TESTING VENUE CONNECTIONS...")

        for name in self.venue_names:
            client = None
            try:
                ex_class = getattr(ccxt, name)
                client = ex_class({'timeout': self.timeout_ms, 'enableRateLimit': True})
                await client.load_markets()
                self.exchanges[name] = client
                self.logger.info(f"   ✅ {name.upper():<10} | Markets: {len(client.markets)}")

            except AttributeError:
                self.logger.error(f"   ❌ {name.upper():<10} | UNKNOWN VENUE: not supported by ccxt.")
                all_connected = False

            except ccxt.RequestTimeout:
                self.logger.error(f"   ❌ {name.upper():<10} | TIMEOUT: Venue API is slow or down.")
                all_connected = False
                await client.close()

            except ccxt.ExchangeNotAvailable:
                self.logger.error(f"   ❌ {name.upper():<10} | MAINTENANCE: Venue is currently offline.")
                all_connected = False
                await client.close()

            except ccxt.BaseError as e:
                self.logger.critical(f"   ❌ {name.upper():<10} | UNKNOWN ERROR: {str(e)}")
                all_connected = False
                await client.close()

        return all_connected

    async def fetch_snapshot(self) -> PriceSnapshot:
        quotes: Dict[str, Dict[str, float]] = {}

        for name, client in self.exchanges.items():
            for token in self.tokens:
                if token == self.quote_token:
                    continue
                symbol = f"{token}/{self.quote_token}"
                if symbol not in client.markets:
                    continue
                try:
                    ticker = await client.fetch_ticker(symbol)
                except ccxt.NetworkError as e:
                    self.logger.warning(f"{name}: {symbol} ticker unavailable ({e})")
                    continue
                except ccxt.ExchangeError as e:
                    self.logger.warning(f"{name}: {symbol} rejected ({e})")
                    continue

                last = ticker.get('last')
                if last and last > 0:
                    quotes.setdefault(token, {})[name] = float(last)

        if not quotes:
            raise QuoteSourceError("No venue returned a usable price")

        # The quote token is the numeraire on every venue that answered.
        answered = {venue for row in quotes.values() for venue in row}
        quotes[self.quote_token] = {venue: 1.0 for venue in answered}
        return PriceSnapshot(quotes, captured_at=time.time())

    async def shutdown(self):
        """
        Gracefully closes all REST API sessions.
        """
        for ex in self.exchanges.values():
            await ex.close()
