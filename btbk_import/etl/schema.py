"""
Schema definitions for the summary store.

The store is a SQLite database holding one row per calendar date plus the
import ledger that makes repeated imports idempotent.

Design Decisions:
    1. daily_summaries is keyed by the ISO date string; there is exactly
       one summary per date
    2. Nested summary parts that are never queried (meals, activities) are
       JSON text columns; counters get real columns
    3. A version column supports optimistic concurrency on saves
    4. import_ledger has a UNIQUE (source, source_id) constraint, which is
       what enforces at-most-once acceptance of a source record
"""

import logging
import sqlite3
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

# Schema version for migration tracking
SCHEMA_VERSION = "1.0.0"

MOOD_VALUES = ("joyeux", "calme", "excité", "fatigué", "grognon")

SCHEMA_DDL = """
-- =============================================================================
-- daily_summaries: One editable summary per calendar date
-- =============================================================================
-- Imports only add to counters and append to hygiene_medications. Mood,
-- meals, activities and notes belong to whoever edits the day by hand.
--
CREATE TABLE IF NOT EXISTS daily_summaries (
    date TEXT PRIMARY KEY,
    mood TEXT NOT NULL CHECK (mood IN ({moods})),
    energy_level INTEGER NOT NULL CHECK (energy_level BETWEEN 1 AND 10),
    meals TEXT NOT NULL,
    sleep_naps INTEGER NOT NULL DEFAULT 0,
    sleep_total_hours REAL NOT NULL DEFAULT 0,
    sleep_night_hours REAL NOT NULL DEFAULT 0,
    sleep_nap_hours REAL NOT NULL DEFAULT 0,
    sleep_night_wakings INTEGER NOT NULL DEFAULT 0,
    hygiene_diapers INTEGER NOT NULL DEFAULT 0,
    hygiene_baths INTEGER NOT NULL DEFAULT 0,
    hygiene_medications TEXT NOT NULL DEFAULT '',
    activities TEXT NOT NULL DEFAULT '[]',
    notes TEXT NOT NULL DEFAULT '',
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- =============================================================================
-- import_ledger: Source records already merged into a summary
-- =============================================================================
-- Insert-only. source is the record kind (btbk_sleep, btbk_diaper,
-- btbk_medicine), source_id the record ID inside the archive.
--
CREATE TABLE IF NOT EXISTS import_ledger (
    ledger_id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    source_id TEXT NOT NULL,
    date TEXT NOT NULL,
    summary_date TEXT REFERENCES daily_summaries(date),
    created_at TEXT NOT NULL,
    UNIQUE (source, source_id)
);

CREATE INDEX IF NOT EXISTS idx_ledger_date
    ON import_ledger(date);

-- =============================================================================
-- import_state: Key-value metadata about imports
-- =============================================================================
-- Common keys:
--   - 'schema_version': Current schema version
--   - 'last_import': Timestamp of the last successful import
--   - 'last_archive_generated_at': generatedAt of the last imported dump
--
CREATE TABLE IF NOT EXISTS import_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

INSERT OR REPLACE INTO import_state (key, value, updated_at)
VALUES ('schema_version', '{schema_version}', datetime('now'));
""".format(
    moods=", ".join(f"'{mood}'" for mood in MOOD_VALUES),
    schema_version=SCHEMA_VERSION,
)

REQUIRED_TABLES = {"daily_summaries", "import_ledger", "import_state"}


def create_schema(db_path: Path) -> None:
    """
    Create the store schema if it doesn't exist.

    Idempotent: every statement uses IF NOT EXISTS.

    Args:
        db_path: Path to the store file. Parent directories are created.

    Raises:
        sqlite3.Error: If schema creation fails.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Creating/verifying schema at: {db_path}")

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.executescript(SCHEMA_DDL)
        conn.commit()
        logger.info(f"Schema created/verified successfully (version {SCHEMA_VERSION})")
    except sqlite3.Error as e:
        logger.error(f"Schema creation failed: {e}")
        raise
    finally:
        conn.close()


def get_table_names(db_path: Path) -> List[str]:
    """
    Get all table names in the store.

    Args:
        db_path: Path to the store file.

    Returns:
        Sorted list of table names.
    """
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;")
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def verify_schema(db_path: Path) -> bool:
    """
    Check that the store exists and has every required table.

    Args:
        db_path: Path to the store file.

    Returns:
        True if the schema is complete.
    """
    if not db_path.exists():
        return False

    return REQUIRED_TABLES.issubset(get_table_names(db_path))
