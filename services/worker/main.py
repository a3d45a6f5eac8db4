"""Trading-bot fleet simulator: main entry point.

3 periodic tasks owned by the scheduler:
1. Market refresh (5s): new synthetic quote for every tracked symbol
2. Trading cycle (3s): every active bot decides, trades, and feeds the agent
3. Adaptive monitor (10s): market analysis, portfolio health, risk tuning

Plus a status loop (30s) that writes runtime status for operators.
"""

import asyncio
import logging
import os
import random
import signal
from datetime import datetime, timezone

from config import AppConfig
from db.store import init_db, close_db, update_runtime_status
from fleet.store import FleetStore
from fleet.market import MarketSimulator
from fleet.scheduler import FleetScheduler
from learning.adaptive_agent import AdaptiveAgent

os.makedirs("logs", exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler("logs/fleet.log", mode="a"),
    ],
)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)
logger = logging.getLogger("main")

STATUS_INTERVAL_SECONDS = 30


class FleetApp:
    def __init__(self, config: AppConfig | None = None):
        self.config = config or AppConfig.load()
        self.rng = random.Random(self.config.simulation.random_seed)
        self.store = FleetStore(self.config.storage.storage_key)
        self.simulator = MarketSimulator(self.rng)
        self.agent: AdaptiveAgent | None = None
        self.scheduler: FleetScheduler | None = None
        self._stopped = asyncio.Event()

    async def start(self):
        logger.info("=" * 60)
        logger.info("Fleet simulator starting...")
        logger.info(
            f"  Periods: market={self.config.scheduler.market_refresh_seconds}s "
            f"trading={self.config.scheduler.trading_cycle_seconds}s "
            f"monitor={self.config.scheduler.monitor_seconds}s"
        )
        logger.info(f"  Autostart: {'ON' if self.config.scheduler.autostart else 'OFF'}")
        logger.info(f"  Seed: {self.config.simulation.random_seed}")
        logger.info("=" * 60)

        await init_db()
        await self.store.load()

        self.agent = AdaptiveAgent(self.store, self.rng)
        self.scheduler = FleetScheduler(
            self.store, self.simulator, self.agent, self.config.scheduler, self.rng,
        )
        await self.scheduler.initialize()

        if self.config.scheduler.autostart:
            await self.scheduler.start()

        await update_runtime_status({
            "status": "running",
            "started_at": datetime.now(timezone.utc).isoformat(),
            "fleet_running": self.scheduler.running,
        })

        status_task = asyncio.create_task(self._safe_loop("status", self._status_loop()))
        try:
            await self._stopped.wait()
        finally:
            status_task.cancel()

    async def _safe_loop(self, name: str, coro):
        """Wrapper that catches and logs errors without crashing other loops."""
        try:
            await coro
        except asyncio.CancelledError:
            logger.info(f"{name} loop cancelled")
        except Exception as e:
            logger.error(f"FATAL: {name} loop crashed: {e}", exc_info=True)

    async def _status_loop(self):
        while not self._stopped.is_set():
            await asyncio.sleep(STATUS_INTERVAL_SECONDS)
            try:
                stats = self.store.overall_stats()
                logger.info(
                    f"Status: P&L=${stats.total_profit:.2f} "
                    f"bots={stats.active_bots}/{stats.total_bots} "
                    f"success={stats.success_rate:.1f}% "
                    f"AI confidence={self.agent.overall_confidence_pct()}% "
                    f"risk={self.agent.risk_assessment():.0f}"
                )
                await update_runtime_status({
                    "fleet_running": self.scheduler.running,
                    "total_profit": round(stats.total_profit, 2),
                    "active_bots": stats.active_bots,
                    "success_rate": round(stats.success_rate, 1),
                    "total_trades": stats.total_trades,
                    "skipped_ticks": {
                        t.name: t.skipped for t in (
                            self.scheduler.market_task,
                            self.scheduler.trading_task,
                            self.scheduler.monitor_task,
                        )
                    },
                    "status_last": datetime.now(timezone.utc).isoformat(),
                })
            except Exception as e:
                logger.error(f"Status loop error: {e}", exc_info=True)

    async def stop(self):
        """Graceful shutdown."""
        if self._stopped.is_set():
            return
        logger.info("Stopping fleet simulator...")
        if self.scheduler:
            if self.scheduler.running:
                await self.scheduler.stop()
            await self.scheduler.shutdown()
        try:
            await update_runtime_status({"status": "stopped"})
        except Exception as e:
            logger.error(f"Could not record stopped status: {e}")
        await close_db()
        self._stopped.set()
        logger.info("Fleet simulator stopped cleanly")


async def main():
    app = FleetApp()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(app.stop()))

    try:
        await app.start()
    except KeyboardInterrupt:
        await app.stop()
    except Exception as e:
        logger.critical(f"Fleet crashed: {e}", exc_info=True)
        await app.stop()
        raise


def run():
    """Console entry point (`fleet-simulator`)."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
