"""Shared fixtures for the fleet simulator test suite."""

import os
import random
import sys
from pathlib import Path

import pytest

# Ensure worker package is on sys.path
WORKER_DIR = Path(__file__).resolve().parents[1]
if str(WORKER_DIR) not in sys.path:
    sys.path.insert(0, str(WORKER_DIR))

# Set env vars BEFORE importing config so __post_init__ sees test values
os.environ.setdefault("FLEET_MARKET_REFRESH_SECONDS", "0.05")
os.environ.setdefault("FLEET_TRADING_CYCLE_SECONDS", "0.03")
os.environ.setdefault("FLEET_MONITOR_SECONDS", "0.1")
os.environ.setdefault("FLEET_STORAGE_KEY", "fleet_test")


class ScriptedRandom(random.Random):
    """Random source that replays a fixed list of draws, then a default."""

    def __init__(self, values=(), default: float = 0.5):
        super().__init__(0)
        self.values = list(values)
        self.default = default
        self.draws = 0

    def push(self, *values: float):
        self.values.extend(values)

    def random(self) -> float:
        self.draws += 1
        if self.values:
            return self.values.pop(0)
        return self.default


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def scheduler_config():
    from config import SchedulerConfig
    cfg = SchedulerConfig()
    cfg.market_refresh_seconds = 0.05
    cfg.trading_cycle_seconds = 0.03
    cfg.monitor_seconds = 0.1
    return cfg


@pytest.fixture
def app_config(scheduler_config):
    from config import AppConfig, StorageConfig, SimulationConfig
    return AppConfig(
        scheduler=scheduler_config,
        storage=StorageConfig(),
        simulation=SimulationConfig(),
    )


# ---------------------------------------------------------------------------
# Random sources
# ---------------------------------------------------------------------------

@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def scripted_rng():
    return ScriptedRandom()


@pytest.fixture
def scripted_factory():
    return ScriptedRandom


# ---------------------------------------------------------------------------
# Database fixtures (each test gets its own fresh SQLite DB)
# ---------------------------------------------------------------------------

@pytest.fixture
async def test_db(tmp_path):
    """Provide a fresh SQLite database for each test."""
    import db.store as store

    db_file = tmp_path / "test.db"
    # Override the module-level DB_PATH and reset singleton
    store.DB_PATH = db_file
    store._db = None

    await store.init_db()
    yield store
    await store.close_db()


@pytest.fixture
async def fleet_store(test_db):
    """A FleetStore loaded with the default fleet."""
    from fleet.store import FleetStore
    s = FleetStore("fleet_test")
    await s.load()
    return s


@pytest.fixture
def agent_factory(fleet_store):
    from learning.adaptive_agent import AdaptiveAgent

    def make(rng=None):
        return AdaptiveAgent(fleet_store, rng or ScriptedRandom())
    return make


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_quote():
    from fleet.models import MarketQuote

    def make(symbol: str, change: float, volume: float = 500_000.0, price: float = 100.0):
        return MarketQuote(symbol=symbol, price=price, change=change, volume=volume)
    return make


@pytest.fixture
def sample_snapshot():
    return {
        "bots": [
            {
                "id": 7, "name": "Imported Momentum", "type": "momentum",
                "strategy": "Trend Following", "status": "inactive",
                "riskLevel": 0.4, "profit": 12.5, "trades": 4,
                "profitableTrades": 3, "successRate": 75.0, "performance": 48.0,
            },
        ],
        "tradingHistory": [
            {
                "id": 1700000000001, "botId": 7, "botName": "Imported Momentum",
                "symbol": "ETH/USD", "type": "buy", "amount": 250.0, "profit": 3.1,
                "success": True, "timestamp": "2026-01-01T00:00:00+00:00",
            },
        ],
        "aiDecisions": [
            {
                "id": 1700000000002, "type": "system", "message": "All trading bots activated",
                "confidence": 95, "timestamp": "2026-01-01T00:00:00+00:00",
            },
        ],
        "settings": {
            "riskManagement": False, "autoRebalance": True,
            "maxDrawdown": 0.2, "dailyTarget": 0.03,
        },
    }
