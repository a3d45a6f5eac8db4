import aiosqlite
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DB_PATH = Path(os.getenv("FLEET_SQLITE_PATH", str(PROJECT_ROOT / "db" / "fleet.db")))

# Singleton connection
_db: aiosqlite.Connection | None = None


class SnapshotDecodeError(ValueError):
    """Stored snapshot text is not a JSON object."""


async def _get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _db = await aiosqlite.connect(DB_PATH)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA busy_timeout=5000")
    return _db


async def close_db():
    global _db
    if _db:
        await _db.close()
        _db = None


async def init_db():
    db = await _get_db()
    await db.executescript("""
        CREATE TABLE IF NOT EXISTS snapshots (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS runtime_status (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
    """)
    await db.commit()


# ═══════════════════════════════════════════════════════════════════════
# SNAPSHOTS (whole simulation state under a single key)
# ═══════════════════════════════════════════════════════════════════════

async def save_snapshot(key: str, snapshot: dict):
    """Replace the stored snapshot for ``key`` with ``snapshot``.

    The document is serialized before the first await so the caller's
    state is captured exactly as it was at call time.
    """
    value = json.dumps(snapshot)
    now = datetime.now(timezone.utc).isoformat()
    db = await _get_db()
    await db.execute(
        """INSERT INTO snapshots (key, value, updated_at)
           VALUES (?, ?, ?)
           ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
        (key, value, now)
    )
    await db.commit()


async def load_snapshot(key: str) -> dict | None:
    """Return the stored snapshot, or None if nothing was saved under ``key``.

    Raises SnapshotDecodeError if the stored text is not a JSON object.
    """
    db = await _get_db()
    cursor = await db.execute("SELECT value FROM snapshots WHERE key=?", (key,))
    row = await cursor.fetchone()
    if row is None:
        return None
    try:
        data = json.loads(row["value"])
    except (json.JSONDecodeError, TypeError) as e:
        raise SnapshotDecodeError(f"Snapshot {key!r} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotDecodeError(f"Snapshot {key!r} is not a JSON object")
    return data


async def delete_snapshot(key: str):
    db = await _get_db()
    await db.execute("DELETE FROM snapshots WHERE key=?", (key,))
    await db.commit()


async def write_raw_snapshot(key: str, value: str):
    """Store ``value`` verbatim. Used by tooling and tests to plant documents."""
    db = await _get_db()
    await db.execute(
        """INSERT INTO snapshots (key, value, updated_at)
           VALUES (?, ?, ?)
           ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
        (key, value, datetime.now(timezone.utc).isoformat())
    )
    await db.commit()


# ═══════════════════════════════════════════════════════════════════════
# RUNTIME STATUS (process-level key/value status for operators)
# ═══════════════════════════════════════════════════════════════════════

async def update_runtime_status(status: dict):
    """Write multiple key-value pairs to runtime_status table."""
    db = await _get_db()
    now = datetime.now(timezone.utc).isoformat()
    for key, value in status.items():
        await db.execute(
            """INSERT INTO runtime_status (key, value, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
            (key, json.dumps(value) if not isinstance(value, str) else value, now)
        )
    await db.commit()


async def get_runtime_status() -> dict:
    """Read all runtime_status entries as a dict."""
    db = await _get_db()
    rows = await db.execute_fetchall("SELECT key, value FROM runtime_status")
    result = {}
    for row in rows:
        k, v = row["key"], row["value"]
        try:
            result[k] = json.loads(v)
        except (json.JSONDecodeError, TypeError):
            result[k] = v
    return result
