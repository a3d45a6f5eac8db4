"""Periodic task runner and the fleet control surface.

Three tasks share one event loop: market refresh, trading cycle and the
adaptive monitor. Each runs on its own period; a tick that fires while the
previous run of the same task is still in flight is dropped.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from config import SchedulerConfig
from fleet.models import BotStatus, DecisionCategory
from fleet.strategies import (
    calculate_performance_score,
    calculate_trade_profit,
    generate_trade_decision,
    sample_market_conditions,
)

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Fires ``callback`` every ``period`` seconds, never overlapping itself."""

    def __init__(self, name: str, period: float, callback: Callable[[], Awaitable[None]]):
        self.name = name
        self.period = period
        self._callback = callback
        self._ticker: asyncio.Task | None = None
        self._runs: set[asyncio.Task] = set()
        self._in_flight = False
        self.completed = 0
        self.skipped = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self):
        if self.is_running:
            return
        self._ticker = asyncio.create_task(self._tick_loop(), name=f"{self.name}-ticker")
        logger.info(f"{self.name} task started (every {self.period}s)")

    def stop(self):
        """Cancel the timer. A run already in flight is left to finish."""
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
            logger.info(f"{self.name} task stopped")

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.period)
            self.fire()

    def fire(self) -> asyncio.Task | None:
        """Start one run now unless a run is still in flight."""
        if self._in_flight:
            self.skipped += 1
            logger.debug(f"{self.name} tick skipped, previous run still in flight")
            return None
        self._in_flight = True
        run = asyncio.create_task(self._run(), name=f"{self.name}-run")
        self._runs.add(run)
        run.add_done_callback(self._runs.discard)
        return run

    async def _run(self):
        try:
            await self._callback()
            self.completed += 1
        except asyncio.CancelledError:
            logger.info(f"{self.name} run cancelled")
            raise
        except Exception as e:
            self.failed += 1
            logger.error(f"{self.name} run failed: {e}", exc_info=True)
        finally:
            self._in_flight = False

    async def drain(self):
        """Wait for any in-flight run to finish."""
        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)


class FleetScheduler:
    def __init__(self, store, simulator, agent, config: SchedulerConfig, rng: random.Random | None = None):
        self.store = store
        self.simulator = simulator
        self.agent = agent
        self.config = config
        self.rng = rng or random.Random()
        self.running = False
        self.cycle = 0

        self.market_task = PeriodicTask(
            "market-refresh", config.market_refresh_seconds, self.refresh_market,
        )
        self.trading_task = PeriodicTask(
            "trading-cycle", config.trading_cycle_seconds, self.run_trading_cycle,
        )
        self.monitor_task = PeriodicTask(
            "adaptive-monitor", config.monitor_seconds, self.agent.monitor_tick,
        )

    async def initialize(self):
        """Publish a first market snapshot and start the market-refresh task."""
        await self.refresh_market()
        self.market_task.start()

    async def refresh_market(self):
        await self.simulator.refresh(self.store)

    # ═══════════════════════════════════════════════════════════════════
    # CONTROL
    # ═══════════════════════════════════════════════════════════════════

    async def start(self):
        if self.running:
            return
        self.running = True
        await self.store.set_all_statuses(BotStatus.ACTIVE)
        await self.store.add_decision(DecisionCategory.SYSTEM, "All trading bots activated", 95)
        self.trading_task.start()
        self.monitor_task.start()
        logger.info(f"Fleet started with {len(self.store.bots)} bots")

    async def stop(self):
        self.running = False
        self.trading_task.stop()
        await self.store.set_all_statuses(BotStatus.INACTIVE)
        await self.store.add_decision(
            DecisionCategory.EMERGENCY, "EMERGENCY STOP: All trading bots deactivated", 100,
        )
        self.monitor_task.stop()
        logger.warning("Fleet stopped: all bots deactivated")

    async def toggle_bot(self, bot_id: int) -> bool:
        bot = self.store.bot(bot_id)
        if bot is None:
            logger.warning(f"toggle_bot: unknown bot id {bot_id}")
            return False
        new_status = BotStatus.INACTIVE if bot.is_active else BotStatus.ACTIVE
        await self.store.update_bot(bot_id, status=new_status)
        verb = "activated" if new_status == BotStatus.ACTIVE else "deactivated"
        await self.store.add_decision(DecisionCategory.BOT_CONTROL, f"{bot.name} {verb}", 90)
        return True

    async def optimize_bot(self, bot_id: int):
        result = await self.agent.optimize_bot(bot_id)
        if not result.success:
            logger.warning(f"optimize_bot: {result.message} (id {bot_id})")
            return result
        await self.store.add_decision(
            DecisionCategory.OPTIMIZATION,
            f"AI optimized {result.bot_name}: {result.message}",
            result.confidence,
        )
        return result

    async def reset(self):
        await self.store.reset()
        self.agent.sync_models(rebuild=True)
        await self.stop()

    async def import_snapshot(self, data) -> tuple[bool, str | None]:
        """Import an exported snapshot and restart learning for the imported bots."""
        ok, error = await self.store.import_snapshot(data)
        if ok:
            self.agent.sync_models(rebuild=True)
        return ok, error

    async def shutdown(self):
        """Stop every task, market refresh included, and wait for in-flight runs."""
        self.running = False
        for task in (self.trading_task, self.monitor_task, self.market_task):
            task.stop()
        for task in (self.trading_task, self.monitor_task, self.market_task):
            await task.drain()

    # ═══════════════════════════════════════════════════════════════════
    # TRADING CYCLE
    # ═══════════════════════════════════════════════════════════════════

    async def run_trading_cycle(self):
        self.cycle += 1
        executed = 0
        for bot in self.store.active_bots():
            # A bot may be switched off by another task mid-cycle.
            if not bot.is_active:
                continue
            if await self.execute_bot_trade(bot):
                executed += 1

        stats = self.store.overall_stats()
        logger.debug(
            f"Cycle {self.cycle}: {executed} trades, total P&L {stats.total_profit:.2f}, "
            f"success {stats.success_rate:.1f}%, active {stats.active_bots}/{stats.total_bots}"
        )
        await self.agent.make_strategic_decisions()

    async def execute_bot_trade(self, bot) -> bool:
        conditions = sample_market_conditions(self.rng)
        decision = generate_trade_decision(
            bot, conditions, list(self.store.market_data), self.rng, agent=self.agent,
        )
        if not decision.execute:
            return False

        profit = calculate_trade_profit(bot, decision, self.rng)
        trades = bot.trades + 1
        profitable = bot.profitable_trades + (1 if profit > 0 else 0)
        score = calculate_performance_score(profitable / trades * 100, profit)
        await self.store.record_trade_outcome(bot.id, profit, performance=score)
        await self.store.add_trade(bot, decision.symbol, decision.side, decision.amount, profit)
        self.agent.learn_from_trade(bot.id, decision, profit)
        logger.debug(
            f"{bot.name} {decision.side.value} {decision.symbol} "
            f"${decision.amount:.2f} -> {profit:+.2f} (conf {decision.confidence})"
        )
        return True
