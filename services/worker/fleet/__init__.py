"""Simulated trading-bot fleet: state, market feed, strategies and scheduler."""

from fleet.store import FleetStore
from fleet.market import MarketSimulator
from fleet.scheduler import FleetScheduler, PeriodicTask

__all__ = ["FleetStore", "MarketSimulator", "FleetScheduler", "PeriodicTask"]
