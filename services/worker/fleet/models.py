"""Bot, market, trade and decision records plus their snapshot encoding."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

MIN_RISK = 0.1
MAX_RISK = 0.9


class StrategyKind(Enum):
    ARBITRAGE = "arbitrage"
    MOMENTUM = "momentum"
    MARKET_MAKING = "market_making"
    SCALPING = "scalping"
    AI_ADAPTIVE = "ai_adaptive"


class BotStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class TradeSide(Enum):
    BUY = "buy"
    SELL = "sell"


class DecisionCategory(Enum):
    SYSTEM = "system"
    EMERGENCY = "emergency"
    BOT_CONTROL = "bot_control"
    OPTIMIZATION = "optimization"
    STRATEGY = "strategy"
    PORTFOLIO_HEALTH = "portfolio_health"


def clamp_risk(value: float) -> float:
    # Rounded so repeated +/- nudges do not accumulate float noise.
    return round(max(MIN_RISK, min(MAX_RISK, value)), 4)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_rate_of(profitable: int, trades: int) -> float:
    return round(profitable / trades * 100, 2) if trades else 0.0


def _require_object(data, kind: str) -> dict:
    if not isinstance(data, dict):
        raise TypeError(f"{kind} record must be an object, got {type(data).__name__}")
    return data


@dataclass
class Bot:
    id: int
    name: str
    kind: StrategyKind
    strategy: str = ""
    status: BotStatus = BotStatus.INACTIVE
    risk_level: float = 0.5
    profit: float = 0.0
    trades: int = 0
    profitable_trades: int = 0
    success_rate: float = field(init=False, default=0.0)
    performance: float = 0.0

    def __post_init__(self):
        self.risk_level = clamp_risk(self.risk_level)
        self.success_rate = success_rate_of(self.profitable_trades, self.trades)

    @property
    def is_active(self) -> bool:
        return self.status == BotStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "strategy": self.strategy,
            "status": self.status.value,
            "riskLevel": self.risk_level,
            "profit": self.profit,
            "trades": self.trades,
            "profitableTrades": self.profitable_trades,
            "successRate": self.success_rate,
            "performance": self.performance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Bot":
        """Build a bot from its wire form. successRate is recomputed from the counters."""
        _require_object(data, "bot")
        trades = int(data.get("trades", 0))
        # Snapshots written before profitableTrades existed carry only the rate.
        profitable = data.get("profitableTrades")
        if profitable is None:
            profitable = round(trades * float(data.get("successRate", 0.0)) / 100)
        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            kind=StrategyKind(data["type"]),
            strategy=data.get("strategy", ""),
            status=BotStatus(data.get("status", "inactive")),
            risk_level=float(data.get("riskLevel", 0.5)),
            profit=float(data.get("profit", 0.0)),
            trades=trades,
            profitable_trades=int(profitable),
            performance=float(data.get("performance", 0.0)),
        )


@dataclass
class MarketQuote:
    symbol: str
    price: float
    change: float  # percent
    volume: float
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MarketQuote":
        _require_object(data, "quote")
        return cls(
            symbol=str(data["symbol"]),
            price=float(data["price"]),
            change=float(data["change"]),
            volume=float(data["volume"]),
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


@dataclass
class TradeRecord:
    id: int
    bot_id: int
    bot_name: str
    symbol: str
    side: TradeSide
    amount: float
    profit: float
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def success(self) -> bool:
        return self.profit > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "botId": self.bot_id,
            "botName": self.bot_name,
            "symbol": self.symbol,
            "type": self.side.value,
            "amount": self.amount,
            "profit": self.profit,
            "success": self.success,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TradeRecord":
        _require_object(data, "trade")
        return cls(
            id=int(data["id"]),
            bot_id=int(data["botId"]),
            bot_name=data.get("botName", ""),
            symbol=str(data["symbol"]),
            side=TradeSide(data["type"]),
            amount=float(data.get("amount", 0.0)),
            profit=float(data["profit"]),
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


@dataclass
class DecisionRecord:
    id: int
    category: DecisionCategory
    message: str
    confidence: float
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.category.value,
            "message": self.message,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DecisionRecord":
        _require_object(data, "decision")
        return cls(
            id=int(data["id"]),
            category=DecisionCategory(data["type"]),
            message=str(data["message"]),
            confidence=float(data.get("confidence", 0)),
            timestamp=data.get("timestamp") or utc_now_iso(),
        )


@dataclass
class Settings:
    """Policy switches persisted with the fleet; no algorithm reads them yet."""
    risk_management: bool = True
    auto_rebalance: bool = True
    max_drawdown: float = 0.1
    daily_target: float = 0.05

    def to_dict(self) -> dict:
        return {
            "riskManagement": self.risk_management,
            "autoRebalance": self.auto_rebalance,
            "maxDrawdown": self.max_drawdown,
            "dailyTarget": self.daily_target,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        _require_object(data, "settings")
        return cls(
            risk_management=bool(data.get("riskManagement", True)),
            auto_rebalance=bool(data.get("autoRebalance", True)),
            max_drawdown=float(data.get("maxDrawdown", 0.1)),
            daily_target=float(data.get("dailyTarget", 0.05)),
        )


@dataclass
class BotPerformance:
    total_trades: int
    profitable_trades: int
    success_rate: float
    total_profit: float


@dataclass
class OverallStats:
    total_profit: float
    active_bots: int
    total_bots: int
    success_rate: float
    total_trades: int


DEFAULT_FLEET = (
    (1, "Alpha Arbitrage", StrategyKind.ARBITRAGE, "Multi-Exchange Arbitrage", 0.3),
    (2, "Beta Momentum", StrategyKind.MOMENTUM, "Trend Following", 0.5),
    (3, "Gamma Market Maker", StrategyKind.MARKET_MAKING, "Liquidity Provision", 0.4),
    (4, "Delta Scalper", StrategyKind.SCALPING, "High-Frequency Trading", 0.6),
    (5, "Epsilon AI", StrategyKind.AI_ADAPTIVE, "Neural Network Adaptive", 0.7),
)


def default_bots() -> list[Bot]:
    return [
        Bot(id=bot_id, name=name, kind=kind, strategy=strategy, risk_level=risk)
        for bot_id, name, kind, strategy, risk in DEFAULT_FLEET
    ]
