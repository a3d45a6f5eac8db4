"""Adaptive agent: reads aggregate market and portfolio state, tunes bot risk.

The agent also answers for ai_adaptive bots (should_trade / get_trade_type /
get_confidence) and keeps a small learning model per bot fed from executed
trades.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from fleet.models import DecisionCategory, TradeSide, clamp_risk

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 75
MIN_CONFIDENCE = 20
MAX_CONFIDENCE = 95
MODEL_HISTORY_CAP = 100
ROLLING_WINDOW = 20
CORRELATION_WINDOW = 50
CORRELATION_THRESHOLD = 0.7
TRADE_SCORE_THRESHOLD = 45
RANDOM_TRADE_GATE = 0.3


class Sentiment(Enum):
    STRONG_BULL = "strong_bull"
    BULL = "bull"
    NEUTRAL = "neutral"
    BEAR = "bear"
    STRONG_BEAR = "strong_bear"


@dataclass
class MarketAnalysis:
    volatility: float = 0.0
    trend: float = 0.0
    volume: float = 0.0
    sentiment: Sentiment = Sentiment.NEUTRAL
    timestamp: str | None = None  # None until the first analysis ran


@dataclass
class PerformanceMetrics:
    win_rate: float = 0.0
    avg_profit: float = 0.0
    risk_adjusted_return: float = 0.0


@dataclass
class LearningSample:
    decision: object
    profit: float
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class BotLearningModel:
    learning_rate: float = 0.1
    trade_history: deque = field(default_factory=lambda: deque(maxlen=MODEL_HISTORY_CAP))
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    adaptation_factor: float = 1.0
    last_optimization: str | None = None

    def record(self, decision, profit: float):
        self.trade_history.append(LearningSample(decision=decision, profit=profit))
        self._recompute()

    def _recompute(self):
        recent = list(self.trade_history)[-ROLLING_WINDOW:]
        if not recent:
            return
        winners = sum(1 for s in recent if s.profit > 0)
        win_rate = winners / len(recent) * 100
        avg_profit = sum(s.profit for s in recent) / len(recent)
        self.metrics = PerformanceMetrics(
            win_rate=win_rate,
            avg_profit=avg_profit,
            risk_adjusted_return=avg_profit / ((win_rate / 100) or 1),
        )


@dataclass
class PortfolioHealth:
    score: int
    recommendations: list[str]


@dataclass
class OptimizationResult:
    success: bool
    message: str
    confidence: float = 0.0
    bot_name: str | None = None


# sentiment -> (risk delta, decision message, confidence)
STRATEGY_PLAYBOOK: dict[Sentiment, tuple[float, str, int]] = {
    Sentiment.STRONG_BULL: (0.1, "Bull market detected: Activated aggressive trading strategies", 80),
    Sentiment.BULL: (0.05, "Bull market detected: Activated growth trading strategies", 75),
    Sentiment.BEAR: (-0.15, "Bear market detected: Activated defensive trading strategies", 75),
    Sentiment.STRONG_BEAR: (-0.15, "Strong bear market detected: Activated hedging strategies", 75),
    Sentiment.NEUTRAL: (0.0, "Neutral market: Maintaining balanced portfolio allocation", 70),
}


class AdaptiveAgent:
    def __init__(self, store, rng: random.Random | None = None):
        self.store = store
        self.rng = rng or random.Random()
        self.market_analysis = MarketAnalysis()
        self.overall_confidence: float = BASE_CONFIDENCE
        self.bot_models: dict[int, BotLearningModel] = {}
        self.sync_models()

    def sync_models(self, rebuild: bool = False):
        """Match learning models to the bots in the store.

        Models of bots that are gone are dropped. With ``rebuild`` every bot
        starts from a fresh model, as after a reset or an import.
        """
        if rebuild:
            self.bot_models = {}
        ids = {bot.id for bot in self.store.bots}
        for bot_id in list(self.bot_models):
            if bot_id not in ids:
                del self.bot_models[bot_id]
        for bot_id in ids:
            self.bot_models.setdefault(bot_id, BotLearningModel())

    def _model(self, bot_id: int) -> BotLearningModel | None:
        if bot_id not in self.bot_models and self.store.bot(bot_id) is not None:
            self.bot_models[bot_id] = BotLearningModel()
        return self.bot_models.get(bot_id)

    # ═══════════════════════════════════════════════════════════════════
    # MONITORING
    # ═══════════════════════════════════════════════════════════════════

    async def monitor_tick(self):
        self.analyze_market_conditions()
        await self.assess_portfolio_health()
        await self.make_strategic_decisions()

    def analyze_market_conditions(self) -> MarketAnalysis:
        quotes = list(self.store.market_data.values())
        if not quotes:
            logger.debug("No market data yet, keeping previous analysis")
            return self.market_analysis

        count = len(quotes)
        volatility = sum(abs(q.change) for q in quotes) / count
        trend = sum(q.change for q in quotes) / count
        volume = sum(q.volume for q in quotes) / (1_000_000 * count)

        self.market_analysis = MarketAnalysis(
            volatility=volatility,
            trend=trend,
            volume=volume,
            sentiment=self.classify_sentiment(trend, volatility),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self.update_confidence()
        logger.info(
            f"Market analysis: sentiment={self.market_analysis.sentiment.value} "
            f"vol={volatility:.3f} trend={trend:+.3f} volume={volume:.2f} "
            f"confidence={self.overall_confidence}"
        )
        return self.market_analysis

    @staticmethod
    def classify_sentiment(trend: float, volatility: float) -> Sentiment:
        if trend > 0.5 and volatility < 0.03:
            return Sentiment.STRONG_BULL
        if trend > 0.2 and volatility < 0.05:
            return Sentiment.BULL
        if trend < -0.5 and volatility > 0.08:
            return Sentiment.STRONG_BEAR
        if trend < -0.2 and volatility > 0.05:
            return Sentiment.BEAR
        return Sentiment.NEUTRAL

    def update_confidence(self) -> float:
        analysis = self.market_analysis
        confidence = BASE_CONFIDENCE
        if analysis.volatility < 0.04:
            confidence += 10
        if abs(analysis.trend) > 0.3:
            confidence += 5
        if analysis.volume > 0.7:
            confidence += 5
        if analysis.volatility > 0.08:
            confidence -= 15
        self.overall_confidence = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))
        return self.overall_confidence

    def overall_confidence_pct(self) -> int:
        return round(self.overall_confidence)

    async def assess_portfolio_health(self) -> PortfolioHealth:
        stats = self.store.overall_stats()
        active = self.store.active_bots()

        score = 100
        recommendations = []

        if stats.success_rate < 40:
            score -= 30
            recommendations.append("Low success rate detected. Consider strategy adjustment.")

        losing = sum(1 for b in active if b.profit < 0)
        if losing > len(active) * 0.6:
            score -= 25
            recommendations.append("Multiple bots in drawdown. Review risk parameters.")

        if self.detect_high_correlation():
            score -= 20
            recommendations.append("High correlation detected between bots. Diversification needed.")

        if score < 70 and recommendations:
            await self.store.add_decision(
                DecisionCategory.PORTFOLIO_HEALTH,
                f"Portfolio health: {score}/100. {recommendations[0]}",
                85,
            )
        return PortfolioHealth(score=score, recommendations=recommendations)

    def detect_high_correlation(self) -> bool:
        """Rough herding check: are recent outcomes overwhelmingly one-sided?"""
        recent = list(self.store.trading_history)[:CORRELATION_WINDOW]
        if not recent:
            return False
        directions = [1 if t.success else -1 for t in recent]
        return abs(sum(directions) / len(directions)) > CORRELATION_THRESHOLD

    async def make_strategic_decisions(self):
        analysis = self.market_analysis
        delta, message, confidence = STRATEGY_PLAYBOOK[analysis.sentiment]
        if delta:
            await self.adjust_risk_parameters(delta)
        await self.store.add_decision(DecisionCategory.STRATEGY, message, confidence)

        if analysis.timestamp is None:
            return
        if analysis.volatility > 0.08:
            await self.adjust_risk_parameters(-0.1)
        elif analysis.volatility < 0.03:
            await self.adjust_risk_parameters(0.05)

    async def adjust_risk_parameters(self, adjustment: float):
        for bot in self.store.active_bots():
            await self.store.update_bot(bot.id, risk_level=clamp_risk(bot.risk_level + adjustment))

    # ═══════════════════════════════════════════════════════════════════
    # AI_ADAPTIVE STRATEGY
    # ═══════════════════════════════════════════════════════════════════

    def trade_score(self, bot_id: int, conditions) -> float | None:
        bot = self.store.bot(bot_id)
        performance = self.store.bot_performance(bot_id)
        if bot is None or performance is None:
            return None
        score = (
            conditions.volatility * 30
            + abs(conditions.trend) * 25
            + conditions.volume * 20
            + (performance.success_rate / 100) * 15
            + min(10, performance.total_profit / 100) * 10
        )
        return score * bot.risk_level

    def should_trade(self, bot_id: int, conditions) -> bool:
        if self._model(bot_id) is None:
            return False
        score = self.trade_score(bot_id, conditions)
        if score is None:
            return False
        # TODO: confirm with product whether the random damping gate should stay.
        return score > TRADE_SCORE_THRESHOLD and self.rng.random() > RANDOM_TRADE_GATE

    def get_trade_type(self, bot_id: int, conditions) -> TradeSide:
        return TradeSide.BUY if conditions.trend > 0 else TradeSide.SELL

    def get_confidence(self, bot_id: int) -> float:
        bot = self.store.bot(bot_id)
        if bot is None or self._model(bot_id) is None:
            return 50
        performance = self.store.bot_performance(bot_id)
        confidence = self.overall_confidence
        confidence += (performance.success_rate - 50) / 2
        confidence += min(20, performance.total_profit / 10)
        confidence *= bot.risk_level
        return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))

    # ═══════════════════════════════════════════════════════════════════
    # LEARNING / OPTIMIZATION
    # ═══════════════════════════════════════════════════════════════════

    def learn_from_trade(self, bot_id: int, decision, profit: float):
        model = self._model(bot_id)
        if model is None:
            return
        model.record(decision, profit)

    async def optimize_bot(self, bot_id: int) -> OptimizationResult:
        bot = self.store.bot(bot_id)
        model = self._model(bot_id)
        if bot is None or model is None:
            return OptimizationResult(success=False, message="Bot not found")

        performance = self.store.bot_performance(bot_id)
        old_risk = bot.risk_level
        if performance.success_rate < 40:
            new_risk = clamp_risk(old_risk - 0.2)
            await self.store.update_bot(bot_id, risk_level=new_risk)
            message = (
                f"Reduced risk from {old_risk * 100:.0f}% to {new_risk * 100:.0f}% "
                f"due to low success rate"
            )
            confidence = 80
        elif performance.success_rate > 70 and performance.total_profit > 50:
            new_risk = clamp_risk(old_risk + 0.15)
            await self.store.update_bot(bot_id, risk_level=new_risk)
            message = (
                f"Increased risk from {old_risk * 100:.0f}% to {new_risk * 100:.0f}% "
                f"due to strong performance"
            )
            confidence = 85
        else:
            message = "Maintaining current parameters - performance within optimal range"
            confidence = 70

        model.last_optimization = datetime.now(timezone.utc).isoformat()
        logger.info(f"Optimized {bot.name}: {message}")
        return OptimizationResult(
            success=True, message=message, confidence=confidence, bot_name=bot.name,
        )

    # ═══════════════════════════════════════════════════════════════════
    # FORECASTS
    # ═══════════════════════════════════════════════════════════════════

    def predict_market_move(self) -> float:
        """Directional bias in [-100, 100] from the latest analysis."""
        a = self.market_analysis
        prediction = a.trend * 100
        prediction += (a.volume - 0.5) * 20
        prediction *= 1 - a.volatility
        return max(-100.0, min(100.0, prediction))

    def risk_assessment(self) -> float:
        stats = self.store.overall_stats()
        active = self.store.active_bots()
        risk = (1 - stats.success_rate / 100) * 40
        risk += self.market_analysis.volatility * 30
        if active:
            risk += sum(1 for b in active if b.risk_level > 0.7) / len(active) * 30
        return min(100.0, risk)
