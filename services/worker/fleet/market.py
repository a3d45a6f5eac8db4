"""Synthetic market feed: prices jitter around fixed per-symbol bases."""

import logging
import random

from fleet.models import MarketQuote

logger = logging.getLogger(__name__)

# symbol -> (base price, volatility)
DEFAULT_UNIVERSE: dict[str, tuple[float, float]] = {
    "BTC/USD": (45000.0, 0.02),
    "ETH/USD": (3200.0, 0.03),
    "ADA/USD": (1.2, 0.05),
    "DOT/USD": (25.0, 0.04),
    "LINK/USD": (18.0, 0.06),
}
FALLBACK_BASE_PRICE = 100.0
FALLBACK_VOLATILITY = 0.03
MAX_VOLUME = 1_000_000


class MarketSimulator:
    def __init__(self, rng: random.Random | None = None, universe: dict | None = None):
        self.rng = rng or random.Random()
        self.universe = dict(universe if universe is not None else DEFAULT_UNIVERSE)

    @property
    def symbols(self) -> list[str]:
        return list(self.universe)

    def base_price(self, symbol: str) -> float:
        return self.universe.get(symbol, (FALLBACK_BASE_PRICE, FALLBACK_VOLATILITY))[0]

    def volatility(self, symbol: str) -> float:
        return self.universe.get(symbol, (FALLBACK_BASE_PRICE, FALLBACK_VOLATILITY))[1]

    def quote(self, symbol: str) -> MarketQuote:
        delta = (self.rng.random() - 0.5) * self.volatility(symbol)
        price = self.base_price(symbol) * (1 + delta)
        return MarketQuote(
            symbol=symbol,
            price=round(price, 2),
            change=round(delta * 100, 2),
            volume=self.rng.random() * MAX_VOLUME,
        )

    def snapshot(self) -> dict[str, MarketQuote]:
        """Full replacement snapshot for every tracked symbol."""
        return {symbol: self.quote(symbol) for symbol in self.universe}

    async def refresh(self, store) -> dict[str, MarketQuote]:
        quotes = self.snapshot()
        await store.replace_market_data(quotes)
        logger.debug(
            "Market refreshed: "
            + ", ".join(f"{s} {q.price:.2f} ({q.change:+.2f}%)" for s, q in quotes.items())
        )
        return quotes
