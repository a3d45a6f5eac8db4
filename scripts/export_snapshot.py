#!/usr/bin/env python3
"""Export the persisted fleet snapshot to a JSON file."""
import argparse
import asyncio
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

WORKER_DIR = Path(__file__).resolve().parents[1] / "services" / "worker"
sys.path.insert(0, str(WORKER_DIR))

from config import AppConfig
from db.store import init_db, close_db
from fleet.store import FleetStore


def parse_args() -> argparse.Namespace:
    default_name = f"fleet-ai-export-{datetime.now(timezone.utc).date().isoformat()}.json"
    parser = argparse.ArgumentParser(description="Export fleet snapshot to JSON")
    parser.add_argument("--output", default=default_name)
    return parser.parse_args()


async def export(output: Path) -> None:
    config = AppConfig.load()
    await init_db()
    try:
        store = FleetStore(config.storage.storage_key)
        await store.load()
        output.write_text(json.dumps(store.export_snapshot(), indent=2), encoding="utf-8")
    finally:
        await close_db()
    print(f"Exported {len(store.bots)} bots, {len(store.trading_history)} trades to {output}")


def main() -> None:
    args = parse_args()
    asyncio.run(export(Path(args.output)))


if __name__ == "__main__":
    main()
