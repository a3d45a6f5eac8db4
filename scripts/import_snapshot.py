#!/usr/bin/env python3
"""Import a fleet snapshot JSON file into the persisted store."""
import argparse
import asyncio
import json
import sys
from pathlib import Path

WORKER_DIR = Path(__file__).resolve().parents[1] / "services" / "worker"
sys.path.insert(0, str(WORKER_DIR))

from config import AppConfig
from db.store import init_db, close_db
from fleet.store import FleetStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import fleet snapshot from JSON")
    parser.add_argument("path")
    return parser.parse_args()


async def import_file(path: Path) -> bool:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error importing data: {e}")
        return False

    config = AppConfig.load()
    await init_db()
    try:
        store = FleetStore(config.storage.storage_key)
        await store.load()
        ok, error = await store.import_snapshot(data)
    finally:
        await close_db()

    if ok:
        print(f"Imported {len(store.bots)} bots, {len(store.trading_history)} trades")
    else:
        print(error)
    return ok


def main() -> None:
    args = parse_args()
    ok = asyncio.run(import_file(Path(args.path)))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
