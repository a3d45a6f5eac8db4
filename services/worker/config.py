import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass
class SchedulerConfig:
    """Periods of the three periodic tasks, in seconds."""
    market_refresh_seconds: float = 5.0
    trading_cycle_seconds: float = 3.0
    monitor_seconds: float = 10.0
    autostart: bool = False

    def __post_init__(self):
        self.market_refresh_seconds = float(os.getenv("FLEET_MARKET_REFRESH_SECONDS", 5.0))
        self.trading_cycle_seconds = float(os.getenv("FLEET_TRADING_CYCLE_SECONDS", 3.0))
        self.monitor_seconds = float(os.getenv("FLEET_MONITOR_SECONDS", 10.0))
        self.autostart = os.getenv("FLEET_AUTOSTART", "false").lower() in ("true", "1", "yes")


@dataclass
class StorageConfig:
    storage_key: str = "fleetAI_data"

    def __post_init__(self):
        self.storage_key = os.getenv("FLEET_STORAGE_KEY", "fleetAI_data")


@dataclass
class SimulationConfig:
    """Random source settings. No seed means a fresh, non-reproducible run."""
    random_seed: int | None = None

    def __post_init__(self):
        seed = os.getenv("FLEET_RANDOM_SEED", "").strip()
        self.random_seed = int(seed) if seed else None


@dataclass
class AppConfig:
    scheduler: SchedulerConfig
    storage: StorageConfig
    simulation: SimulationConfig

    @classmethod
    def load(cls) -> "AppConfig":
        return cls(
            scheduler=SchedulerConfig(),
            storage=StorageConfig(),
            simulation=SimulationConfig(),
        )
