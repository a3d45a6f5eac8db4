"""In-memory fleet state with write-through persistence.

Every mutating command applies its change synchronously and then awaits a
full snapshot save, so other tasks on the event loop never observe a
half-applied update and the stored document always matches memory.
"""

import logging
import time
from collections import deque
from datetime import datetime, timezone

from db import store as db
from fleet.models import (
    Bot,
    BotPerformance,
    BotStatus,
    DecisionCategory,
    DecisionRecord,
    MarketQuote,
    OverallStats,
    Settings,
    TradeRecord,
    TradeSide,
    clamp_risk,
    default_bots,
    success_rate_of,
)

logger = logging.getLogger(__name__)

MAX_TRADE_HISTORY = 1000
MAX_DECISIONS = 100
REQUIRED_IMPORT_KEYS = ("bots", "tradingHistory", "aiDecisions")

# Bot attributes that update_bot() accepts. success_rate is derived, never written.
BOT_FIELDS = frozenset({
    "name", "strategy", "status", "risk_level", "profit", "trades",
    "profitable_trades", "performance",
})


class FleetStore:
    def __init__(self, storage_key: str = "fleetAI_data"):
        self.storage_key = storage_key
        self.bots: list[Bot] = []
        self.trading_history: deque[TradeRecord] = deque(maxlen=MAX_TRADE_HISTORY)
        self.ai_decisions: deque[DecisionRecord] = deque(maxlen=MAX_DECISIONS)
        self.market_data: dict[str, MarketQuote] = {}
        self.settings = Settings()
        self._last_id = 0
        self.save_count = 0

    # ═══════════════════════════════════════════════════════════════════
    # LOAD / SAVE
    # ═══════════════════════════════════════════════════════════════════

    async def load(self):
        """Load the persisted snapshot, falling back to the default dataset."""
        try:
            data = await db.load_snapshot(self.storage_key)
        except db.SnapshotDecodeError as e:
            logger.warning(f"Stored snapshot unreadable, restoring defaults: {e}")
            data = None
            corrupt = True
        else:
            corrupt = False

        if data is not None:
            try:
                self._apply_snapshot(data)
                logger.info(
                    f"Loaded fleet snapshot: {len(self.bots)} bots, "
                    f"{len(self.trading_history)} trades, {len(self.ai_decisions)} decisions"
                )
                return
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Stored snapshot malformed, restoring defaults: {e}")
                corrupt = True

        if not corrupt:
            logger.info("No stored snapshot, initializing default fleet")
        self._install_defaults()
        await self._persist()

    def _install_defaults(self):
        self.bots = default_bots()
        self.trading_history = deque(maxlen=MAX_TRADE_HISTORY)
        self.ai_decisions = deque(maxlen=MAX_DECISIONS)
        self.market_data = {}
        self.settings = Settings()

    def _apply_snapshot(self, data: dict):
        # Parse everything before touching state so a bad document changes nothing.
        bots = [Bot.from_dict(b) for b in data["bots"]]
        history = [TradeRecord.from_dict(t) for t in data.get("tradingHistory", [])]
        decisions = [DecisionRecord.from_dict(d) for d in data.get("aiDecisions", [])]
        market_data = data.get("marketData") or {}
        if not isinstance(market_data, dict):
            raise TypeError("marketData must be an object keyed by symbol")
        market = {symbol: MarketQuote.from_dict(q) for symbol, q in market_data.items()}
        settings = Settings.from_dict(data.get("settings") or {})

        self.bots = bots
        self.trading_history = deque(history, maxlen=MAX_TRADE_HISTORY)
        self.ai_decisions = deque(decisions, maxlen=MAX_DECISIONS)
        self.market_data = market
        self.settings = settings
        self._sync_last_id()

    def _sync_last_id(self):
        ids = [t.id for t in self.trading_history] + [d.id for d in self.ai_decisions]
        self._last_id = max(ids, default=0)

    def to_snapshot(self) -> dict:
        return {
            "bots": [b.to_dict() for b in self.bots],
            "tradingHistory": [t.to_dict() for t in self.trading_history],
            "aiDecisions": [d.to_dict() for d in self.ai_decisions],
            "marketData": {s: q.to_dict() for s, q in self.market_data.items()},
            "settings": self.settings.to_dict(),
        }

    async def _persist(self):
        self.save_count += 1
        await db.save_snapshot(self.storage_key, self.to_snapshot())

    def _next_id(self) -> int:
        # Millisecond timestamps, bumped when several records share a millisecond.
        self._last_id = max(self._last_id + 1, int(time.time() * 1000))
        return self._last_id

    # ═══════════════════════════════════════════════════════════════════
    # BOTS
    # ═══════════════════════════════════════════════════════════════════

    def bot(self, bot_id: int) -> Bot | None:
        for b in self.bots:
            if b.id == bot_id:
                return b
        return None

    def active_bots(self) -> list[Bot]:
        return [b for b in self.bots if b.is_active]

    async def update_bot(self, bot_id: int, **updates) -> bool:
        """Apply field updates to one bot and persist. False if the id is unknown."""
        unknown = set(updates) - BOT_FIELDS
        if unknown:
            raise ValueError(f"Unknown bot fields: {sorted(unknown)}")
        b = self.bot(bot_id)
        if b is None:
            logger.debug(f"update_bot: no bot with id {bot_id}")
            return False
        for key, value in updates.items():
            if key == "risk_level":
                value = clamp_risk(value)
            elif key == "status":
                value = BotStatus(value)
            setattr(b, key, value)
        if "trades" in updates or "profitable_trades" in updates:
            b.success_rate = success_rate_of(b.profitable_trades, b.trades)
        await self._persist()
        return True

    async def set_all_statuses(self, status: BotStatus):
        for b in self.bots:
            await self.update_bot(b.id, status=status)

    async def record_trade_outcome(
        self, bot_id: int, profit: float, performance: float | None = None,
    ) -> bool:
        """Fold one trade into a bot's aggregates, recomputing its success rate."""
        b = self.bot(bot_id)
        if b is None:
            return False
        trades = b.trades + 1
        profitable = b.profitable_trades + (1 if profit > 0 else 0)
        updates = {
            "profit": b.profit + profit,
            "trades": trades,
            "profitable_trades": profitable,
        }
        if performance is not None:
            updates["performance"] = performance
        return await self.update_bot(bot_id, **updates)

    def bot_performance(self, bot_id: int) -> BotPerformance | None:
        b = self.bot(bot_id)
        if b is None:
            return None
        return BotPerformance(
            total_trades=b.trades,
            profitable_trades=b.profitable_trades,
            success_rate=(b.profitable_trades / b.trades * 100) if b.trades else 0.0,
            total_profit=b.profit,
        )

    # ═══════════════════════════════════════════════════════════════════
    # MARKET / LOGS
    # ═══════════════════════════════════════════════════════════════════

    async def replace_market_data(self, quotes: dict[str, MarketQuote]):
        self.market_data = dict(quotes)
        await self._persist()

    async def add_trade(
        self, bot: Bot, symbol: str, side: TradeSide, amount: float, profit: float,
    ) -> TradeRecord:
        trade = TradeRecord(
            id=self._next_id(),
            bot_id=bot.id,
            bot_name=bot.name,
            symbol=symbol,
            side=side,
            amount=amount,
            profit=profit,
        )
        self.trading_history.appendleft(trade)
        await self._persist()
        return trade

    async def add_decision(
        self, category: DecisionCategory, message: str, confidence: float,
    ) -> DecisionRecord:
        decision = DecisionRecord(
            id=self._next_id(),
            category=category,
            message=message,
            confidence=confidence,
        )
        self.ai_decisions.appendleft(decision)
        logger.info(f"[{category.value}] {message} (confidence {confidence})")
        await self._persist()
        return decision

    def overall_stats(self) -> OverallStats:
        total = len(self.trading_history)
        profitable = sum(1 for t in self.trading_history if t.profit > 0)
        return OverallStats(
            total_profit=sum(t.profit for t in self.trading_history),
            active_bots=len(self.active_bots()),
            total_bots=len(self.bots),
            success_rate=(profitable / total * 100) if total else 0.0,
            total_trades=total,
        )

    # ═══════════════════════════════════════════════════════════════════
    # IMPORT / EXPORT / RESET
    # ═══════════════════════════════════════════════════════════════════

    def export_snapshot(self) -> dict:
        data = self.to_snapshot()
        data["exportDate"] = datetime.now(timezone.utc).isoformat()
        return data

    async def import_snapshot(self, data) -> tuple[bool, str | None]:
        """Replace bots and logs from an exported snapshot.

        Returns (False, reason) and leaves state untouched when the document
        lacks a required section or any record fails to parse.
        """
        if not isinstance(data, dict):
            return False, "Invalid data format: expected a JSON object"
        missing = [k for k in REQUIRED_IMPORT_KEYS if data.get(k) is None]
        if missing:
            return False, f"Invalid data format: missing {', '.join(missing)}"
        if not all(isinstance(data[k], list) for k in REQUIRED_IMPORT_KEYS):
            return False, "Invalid data format: bots, tradingHistory and aiDecisions must be lists"

        try:
            bots = [Bot.from_dict(b) for b in data["bots"]]
            history = [TradeRecord.from_dict(t) for t in data["tradingHistory"]]
            decisions = [DecisionRecord.from_dict(d) for d in data["aiDecisions"]]
            settings = Settings.from_dict(data["settings"]) if data.get("settings") else None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Snapshot import rejected: {e}")
            return False, f"Error importing data: {e}"

        self.bots = bots
        self.trading_history = deque(history, maxlen=MAX_TRADE_HISTORY)
        self.ai_decisions = deque(decisions, maxlen=MAX_DECISIONS)
        if settings is not None:
            self.settings = settings
        self._sync_last_id()
        await self._persist()
        logger.info(f"Imported snapshot: {len(bots)} bots, {len(history)} trades")
        return True, None

    async def reset(self):
        self._install_defaults()
        await self._persist()
        logger.info("Fleet data reset to defaults")
