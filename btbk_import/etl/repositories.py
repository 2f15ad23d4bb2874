"""
Repositories over the summary store.

SummaryRepository and LedgerRepository wrap a sqlite3 connection and never
commit on their own: the reconciliation engine commits a summary save and
its ledger rows together, so either both are stored or neither is.

Design Decisions:
    1. create_with_defaults uses INSERT OR IGNORE, so two importers meeting
       the same new date both end up with the single stored row
    2. save() only writes the columns an import owns (sleep stats, diaper
       count, medication log), only if the version is unchanged since the
       row was read, and bumps the version
    3. Ledger bulk inserts are unordered: each row is inserted on its own and
       a uniqueness violation skips that row only
"""

import json
import logging
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from btbk_import.errors import LedgerConflict, SummaryVersionConflictError
from btbk_import.etl.summary import (
    Activity,
    DailySummary,
    HygieneStats,
    MealPlan,
    SleepStats,
    default_summary,
)
from btbk_import.utils import now_iso

logger = logging.getLogger(__name__)

_SUMMARY_COLUMNS = """
    date, mood, energy_level, meals,
    sleep_naps, sleep_total_hours, sleep_night_hours, sleep_nap_hours, sleep_night_wakings,
    hygiene_diapers, hygiene_baths, hygiene_medications,
    activities, notes, version, created_at, updated_at
"""


def _row_to_summary(row: tuple) -> DailySummary:
    (
        date,
        mood,
        energy_level,
        meals_json,
        naps,
        total_hours,
        night_hours,
        nap_hours,
        night_wakings,
        diapers,
        baths,
        medications,
        activities_json,
        notes,
        version,
        created_at,
        updated_at,
    ) = row

    meals = json.loads(meals_json)
    return DailySummary(
        date=date,
        mood=mood,
        energy_level=energy_level,
        meals=MealPlan(
            breakfast=meals.get("breakfast", ""),
            lunch=meals.get("lunch", ""),
            snack=meals.get("snack", ""),
            dinner=meals.get("dinner", ""),
        ),
        sleep=SleepStats(
            naps=naps,
            total_hours=total_hours,
            night_hours=night_hours,
            nap_hours=nap_hours,
            night_wakings=night_wakings,
        ),
        hygiene=HygieneStats(diapers=diapers, baths=baths, medications=medications),
        activities=[Activity(**item) for item in json.loads(activities_json)],
        notes=notes,
        version=version,
        created_at=created_at,
        updated_at=updated_at,
    )


def _meals_json(summary: DailySummary) -> str:
    meals = summary.meals
    return json.dumps(
        {
            "breakfast": meals.breakfast,
            "lunch": meals.lunch,
            "snack": meals.snack,
            "dinner": meals.dinner,
        },
        ensure_ascii=False,
    )


def _activities_json(summary: DailySummary) -> str:
    return json.dumps(
        [{"time": a.time, "description": a.description} for a in summary.activities],
        ensure_ascii=False,
    )


class SummaryRepository:
    """Daily summaries keyed by ISO date."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find_by_date(self, date: str) -> Optional[DailySummary]:
        """
        Fetch the summary of a date.

        Args:
            date: ISO date (YYYY-MM-DD).

        Returns:
            DailySummary, or None if the date has no summary yet.
        """
        query = f"SELECT {_SUMMARY_COLUMNS} FROM daily_summaries WHERE date = ?;"
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, (date,))
            row = cursor.fetchone()
        return _row_to_summary(row) if row else None

    def create_with_defaults(self, date: str) -> DailySummary:
        """
        Store a default summary for a date unless one already exists.

        Args:
            date: ISO date (YYYY-MM-DD).

        Returns:
            The stored summary for the date (the existing one if another
            writer created it first).
        """
        summary = default_summary(date)
        now = now_iso()

        query = f"""
            INSERT OR IGNORE INTO daily_summaries ({_SUMMARY_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?);
        """
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(
                query,
                (
                    summary.date,
                    summary.mood,
                    summary.energy_level,
                    _meals_json(summary),
                    summary.sleep.naps,
                    summary.sleep.total_hours,
                    summary.sleep.night_hours,
                    summary.sleep.nap_hours,
                    summary.sleep.night_wakings,
                    summary.hygiene.diapers,
                    summary.hygiene.baths,
                    summary.hygiene.medications,
                    _activities_json(summary),
                    summary.notes,
                    now,
                    now,
                ),
            )
            if cursor.rowcount > 0:
                logger.info(f"Created daily summary for {date}")

        stored = self.find_by_date(date)
        if stored is None:
            raise RuntimeError(f"Daily summary for {date} vanished right after creation")
        return stored

    def get_or_create(self, date: str) -> Tuple[DailySummary, bool]:
        """
        Fetch the summary of a date, creating it with defaults if absent.

        Returns:
            Tuple of (summary, created).
        """
        existing = self.find_by_date(date)
        if existing is not None:
            return existing, False
        return self.create_with_defaults(date), True

    def save(self, summary: DailySummary) -> DailySummary:
        """
        Store the import-owned fields of a summary if nobody saved it since it
        was read.

        Only sleep stats, the diaper count and the medication log are written.
        Mood, energy, meals, baths, activities and notes are left as stored.

        Args:
            summary: Summary carrying the version it was read at.

        Returns:
            The stored summary after the update.

        Raises:
            SummaryVersionConflictError: If the stored version differs.
        """
        now = now_iso()
        query = """
            UPDATE daily_summaries SET
                sleep_naps = ?, sleep_total_hours = ?, sleep_night_hours = ?,
                sleep_nap_hours = ?, sleep_night_wakings = ?,
                hygiene_diapers = ?, hygiene_medications = ?,
                version = version + 1, updated_at = ?
            WHERE date = ? AND version = ?;
        """
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(
                query,
                (
                    summary.sleep.naps,
                    summary.sleep.total_hours,
                    summary.sleep.night_hours,
                    summary.sleep.nap_hours,
                    summary.sleep.night_wakings,
                    summary.hygiene.diapers,
                    summary.hygiene.medications,
                    now,
                    summary.date,
                    summary.version,
                ),
            )
            if cursor.rowcount == 0:
                raise SummaryVersionConflictError(summary.date, summary.version)

        stored = self.find_by_date(summary.date)
        if stored is None:
            raise RuntimeError(f"Daily summary for {summary.date} vanished during save")
        return stored

    def list_dates(self) -> List[str]:
        """All dates with a summary, ascending."""
        with closing(self.conn.cursor()) as cursor:
            cursor.execute("SELECT date FROM daily_summaries ORDER BY date;")
            return [row[0] for row in cursor.fetchall()]


@dataclass(frozen=True)
class LedgerEntry:
    """A source record already merged into a summary."""

    source: str
    source_id: str
    date: str
    summary_date: Optional[str] = None


class LedgerRepository:
    """Insert-only set of (source, source_id) pairs."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def exists(self, source: str, source_id: str) -> bool:
        query = "SELECT 1 FROM import_ledger WHERE source = ? AND source_id = ? LIMIT 1;"
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, (source, source_id))
            return cursor.fetchone() is not None

    def _insert_one(self, cursor: sqlite3.Cursor, entry: LedgerEntry, now: str) -> None:
        try:
            cursor.execute(
                """
                INSERT INTO import_ledger (source, source_id, date, summary_date, created_at)
                VALUES (?, ?, ?, ?, ?);
                """,
                (entry.source, entry.source_id, entry.date, entry.summary_date, now),
            )
        except sqlite3.IntegrityError as e:
            raise LedgerConflict(entry.source, entry.source_id) from e

    def bulk_insert(self, entries: Iterable[LedgerEntry]) -> int:
        """
        Insert ledger rows, skipping the ones that already exist.

        A conflicting row does not stop the rows after it.

        Args:
            entries: Rows to insert.

        Returns:
            Number of rows inserted.
        """
        now = now_iso()
        inserted = 0
        conflicts = 0

        with closing(self.conn.cursor()) as cursor:
            for entry in entries:
                try:
                    self._insert_one(cursor, entry, now)
                except LedgerConflict as conflict:
                    conflicts += 1
                    logger.warning(str(conflict))
                    continue
                inserted += 1

        if conflicts:
            logger.warning(f"Skipped {conflicts} ledger rows inserted concurrently")
        logger.debug(f"Inserted {inserted} ledger rows")
        return inserted

    def entries_for_date(self, date: str) -> List[LedgerEntry]:
        query = """
            SELECT source, source_id, date, summary_date
            FROM import_ledger
            WHERE date = ?
            ORDER BY ledger_id;
        """
        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, (date,))
            return [LedgerEntry(*row) for row in cursor.fetchall()]

    def count(self) -> int:
        with closing(self.conn.cursor()) as cursor:
            cursor.execute("SELECT COUNT(*) FROM import_ledger;")
            result = cursor.fetchone()
            return result[0] if result else 0


def update_import_state(conn: sqlite3.Connection, key: str, value: str) -> None:
    """
    Update or insert an import state value and commit.

    Args:
        conn: Connection to the store.
        key: State key (e.g., 'last_import').
        value: State value.
    """
    query = """
        INSERT OR REPLACE INTO import_state (key, value, updated_at)
        VALUES (?, ?, ?);
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, (key, value, now_iso()))
        conn.commit()

    logger.debug(f"Updated import state: {key} = {value}")


def get_import_state(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """Get an import state value, or None if unset."""
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT value FROM import_state WHERE key = ?;", (key,))
        result = cursor.fetchone()
        return result[0] if result else None
