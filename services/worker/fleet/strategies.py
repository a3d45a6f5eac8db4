"""Per-strategy trade decisions, trade profit and performance scoring.

Each strategy kind maps to a pure rule in STRATEGY_RULES. Rules see a fresh
set of sampled market conditions rather than the live market snapshot; the
snapshot only supplies the symbol a trade is booked against.
"""

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable

from fleet.models import Bot, StrategyKind, TradeSide

logger = logging.getLogger(__name__)

CONFIDENCE_GATE = 50
FALLBACK_SYMBOL = "BTC/USD"
MIN_AMOUNT = 100.0
AMOUNT_RANGE = 400.0
TRADE_COST = 0.5


@dataclass
class MarketConditions:
    volatility: float  # [0, 1)
    trend: float  # [-1, 1)
    volume: float  # [0, 1)
    sentiment: float  # [0, 1)


@dataclass
class Signal:
    execute: bool
    side: TradeSide
    confidence: float


@dataclass
class TradeDecision:
    execute: bool
    side: TradeSide
    symbol: str
    amount: float
    confidence: int


def sample_market_conditions(rng: random.Random) -> MarketConditions:
    return MarketConditions(
        volatility=rng.random(),
        trend=(rng.random() - 0.5) * 2,
        volume=rng.random(),
        sentiment=rng.random(),
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ─── Strategy rules ───


def _arbitrage(bot, conditions, rng, agent) -> Signal:
    return Signal(
        execute=conditions.volatility > 0.3,
        side=TradeSide.BUY if rng.random() > 0.5 else TradeSide.SELL,
        confidence=conditions.volatility * 80,
    )


def _momentum(bot, conditions, rng, agent) -> Signal:
    return Signal(
        execute=abs(conditions.trend) > 0.2,
        side=TradeSide.BUY if conditions.trend > 0 else TradeSide.SELL,
        confidence=abs(conditions.trend) * 90,
    )


def _market_making(bot, conditions, rng, agent) -> Signal:
    return Signal(
        execute=conditions.volume > 0.4,
        side=TradeSide.BUY if rng.random() > 0.5 else TradeSide.SELL,
        confidence=conditions.volume * 70,
    )


def _scalping(bot, conditions, rng, agent) -> Signal:
    # Scalpers lean short: buy on only 30% of draws.
    return Signal(
        execute=conditions.volatility > 0.2,
        side=TradeSide.BUY if rng.random() > 0.7 else TradeSide.SELL,
        confidence=conditions.volatility * 85,
    )


def _ai_adaptive(bot, conditions, rng, agent) -> Signal:
    if agent is None:
        return Signal(execute=False, side=TradeSide.BUY, confidence=0.0)
    return Signal(
        execute=agent.should_trade(bot.id, conditions),
        side=agent.get_trade_type(bot.id, conditions),
        confidence=agent.get_confidence(bot.id),
    )


StrategyRule = Callable[[Bot, MarketConditions, random.Random, object], Signal]

STRATEGY_RULES: dict[StrategyKind, StrategyRule] = {
    StrategyKind.ARBITRAGE: _arbitrage,
    StrategyKind.MOMENTUM: _momentum,
    StrategyKind.MARKET_MAKING: _market_making,
    StrategyKind.SCALPING: _scalping,
    StrategyKind.AI_ADAPTIVE: _ai_adaptive,
}


def pick_symbol(symbols: list[str], rng: random.Random) -> str:
    if not symbols:
        return FALLBACK_SYMBOL
    return symbols[int(rng.random() * len(symbols))]


def generate_trade_decision(
    bot: Bot,
    conditions: MarketConditions,
    symbols: list[str],
    rng: random.Random,
    agent=None,
) -> TradeDecision:
    """Run the bot's strategy rule and gate it on confidence > 50.

    ``agent`` answers for ai_adaptive bots; other kinds ignore it.
    """
    signal = STRATEGY_RULES[bot.kind](bot, conditions, rng, agent)
    return TradeDecision(
        execute=signal.execute and signal.confidence > CONFIDENCE_GATE,
        side=signal.side,
        symbol=pick_symbol(symbols, rng),
        amount=MIN_AMOUNT + rng.random() * AMOUNT_RANGE,
        confidence=round_half_up(signal.confidence),
    )


def calculate_trade_profit(bot: Bot, decision: TradeDecision, rng: random.Random) -> float:
    """Profit = confidence/10 * (1 - risk) * U(0.5, 1.5) - 0.5, to cents."""
    base_profit = decision.confidence / 10
    risk_adjustment = 1 - bot.risk_level
    market_multiplier = 1 + (rng.random() - 0.5)
    profit = base_profit * risk_adjustment * market_multiplier - TRADE_COST
    return round(profit, 2)


def calculate_performance_score(success_rate: float, recent_profit: float) -> float:
    return round(success_rate * 0.6 + max(0.0, recent_profit * 10) * 0.4, 1)
