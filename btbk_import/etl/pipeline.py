"""
Import pipeline orchestration.

Runs a Baby Tracker archive through extraction, mapping, daily aggregation
and reconciliation into the summary store.

Pipeline Steps:
    1. Parse the archive (zip → EasyLog.db → table dump)
    2. Map rows to entries and bucket them by local date
    3. Ensure the store schema exists
    4. Reconcile each date, in ascending order
    5. Update import state

Steps 1 and 2 finish before anything is written, so a broken archive never
leaves a partial import behind. A failure in step 4 keeps the dates already
reconciled and reports them.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from btbk_import.config import Config
from btbk_import.etl.aggregator import build_aggregates
from btbk_import.etl.archive import parse_archive
from btbk_import.etl.reconcile import ImportReport, reconcile_aggregate, reconcile_aggregates
from btbk_import.etl.repositories import (
    LedgerRepository,
    SummaryRepository,
    get_import_state,
    update_import_state,
)
from btbk_import.etl.schema import create_schema, verify_schema
from btbk_import.utils import now_iso

logger = logging.getLogger(__name__)

# Seconds a writer waits for another process's transaction before failing
STORE_BUSY_TIMEOUT = 30.0


@dataclass
class ImportResult:
    """Result of an import run."""

    success: bool
    tables_found: int = 0
    entries_mapped: int = 0
    dates_processed: int = 0
    new_entries: int = 0
    skipped: int = 0
    reports: List[ImportReport] = field(default_factory=list)
    archive_generated_at: Optional[str] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"summary": [report.to_dict() for report in self.reports]}

    def __str__(self) -> str:
        status = "SUCCESS" if self.success else f"FAILED: {self.error}"
        lines = [
            f"Import {status}",
            f"  Archive: {self.tables_found} tables, {self.entries_mapped} entries mapped",
            f"  Dates: {self.dates_processed} processed",
            f"  Entries: {self.new_entries} new, {self.skipped} skipped",
        ]
        for report in self.reports:
            lines.append(
                f"    {report.date}: {report.new_entries} new, {report.skipped} skipped"
            )
        lines.append(f"  Duration: {self.duration_seconds:.2f}s")
        return "\n".join(lines)


def open_store(path: Path) -> sqlite3.Connection:
    """Open the summary store in read-write mode."""
    conn = sqlite3.connect(str(path), timeout=STORE_BUSY_TIMEOUT)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _resolve_zone(timezone: Union[str, tzinfo, None]) -> tzinfo:
    if timezone is None:
        return ZoneInfo(Config.DEFAULT_TIMEZONE)
    if isinstance(timezone, str):
        return ZoneInfo(timezone)
    return timezone


def _record_import(conn: sqlite3.Connection, generated_at: str) -> None:
    update_import_state(conn, "last_import", now_iso())
    update_import_state(conn, "last_archive_generated_at", generated_at)


def import_archive(
    conn: sqlite3.Connection,
    data: bytes,
    tz: tzinfo,
    max_attempts: int = Config.DEFAULT_MAX_SAVE_ATTEMPTS,
) -> List[ImportReport]:
    """
    Import an archive into an open store and record the import state.

    Args:
        conn: Connection to a store whose schema exists.
        data: Raw .btbk archive bytes.
        tz: Zone for timestamps and dates.
        max_attempts: Save attempts per date on concurrent modification.

    Returns:
        One report per date, in ascending date order.

    Raises:
        ArchiveFormatError: If EasyLog.db is missing.
        CorruptArchiveError: If the archive cannot be read.
        SummaryVersionConflictError: If a date kept changing under us.
    """
    dump = parse_archive(data)
    aggregates = build_aggregates(dump, tz)
    reports = reconcile_aggregates(conn, aggregates, max_attempts)
    _record_import(conn, dump.generated_at)
    return reports


def run_import(
    data: bytes,
    store_db_path: Path,
    timezone: Union[str, tzinfo, None] = None,
    max_attempts: int = Config.DEFAULT_MAX_SAVE_ATTEMPTS,
) -> ImportResult:
    """
    Run the full import pipeline and report what happened.

    Errors are caught and returned in the result. Reports of dates that were
    committed before the error are kept.

    Args:
        data: Raw .btbk archive bytes.
        store_db_path: Path to the summary store (created if missing).
        timezone: IANA zone name or tzinfo; defaults to Europe/Paris.
        max_attempts: Save attempts per date on concurrent modification.

    Returns:
        ImportResult with per-date reports and success status.
    """
    start_time = datetime.now()
    result = ImportResult(success=False)

    try:
        tz = _resolve_zone(timezone)

        logger.info("Step 1: Parsing archive...")
        dump = parse_archive(data)
        result.tables_found = len(dump.tables)
        result.archive_generated_at = dump.generated_at

        logger.info("Step 2: Building daily aggregates...")
        aggregates = build_aggregates(dump, tz)
        result.entries_mapped = sum(aggregate.entry_count for aggregate in aggregates)

        logger.info("Step 3: Ensuring schema exists...")
        create_schema(store_db_path)

        conn = open_store(store_db_path)
        try:
            logger.info(f"Step 4: Reconciling {len(aggregates)} dates...")
            for aggregate in aggregates:
                report = reconcile_aggregate(conn, aggregate, max_attempts)
                result.reports.append(report)
                result.dates_processed += 1
                result.new_entries += report.new_entries
                result.skipped += report.skipped

            logger.info("Step 5: Updating import state...")
            _record_import(conn, dump.generated_at)
        finally:
            conn.close()

        result.success = True
    except Exception as e:
        logger.error(f"Import failed: {e}")
        result.error = str(e)

    result.duration_seconds = (datetime.now() - start_time).total_seconds()
    if result.success:
        logger.info(f"Import completed successfully in {result.duration_seconds:.2f}s")
    return result


def run_import_file(
    archive_path: Path,
    store_db_path: Path,
    timezone: Union[str, tzinfo, None] = None,
    max_attempts: int = Config.DEFAULT_MAX_SAVE_ATTEMPTS,
) -> ImportResult:
    """
    Run the import pipeline on an archive file.

    Args:
        archive_path: Path to a .btbk file.
        store_db_path: Path to the summary store.
        timezone: IANA zone name or tzinfo.
        max_attempts: Save attempts per date on concurrent modification.

    Returns:
        ImportResult; a missing or unreadable file is reported as a failure.
    """
    try:
        data = archive_path.read_bytes()
    except OSError as e:
        logger.error(f"Cannot read archive {archive_path}: {e}")
        return ImportResult(success=False, error=f"Cannot read archive: {e}")

    logger.info(f"Importing archive: {archive_path}")
    return run_import(data, store_db_path, timezone=timezone, max_attempts=max_attempts)


def get_import_status(store_db_path: Path) -> Dict[str, Any]:
    """
    Get current import status from the store.

    Args:
        store_db_path: Path to the summary store.

    Returns:
        Dictionary with status information.
    """
    if not store_db_path.exists():
        return {"exists": False}

    if not verify_schema(store_db_path):
        return {"exists": True, "schema_valid": False}

    conn = open_store(store_db_path)
    try:
        dates = SummaryRepository(conn).list_dates()
        return {
            "exists": True,
            "schema_valid": True,
            "summary_count": len(dates),
            "first_date": dates[0] if dates else None,
            "last_date": dates[-1] if dates else None,
            "ledger_count": LedgerRepository(conn).count(),
            "last_import": get_import_state(conn, "last_import"),
            "last_archive_generated_at": get_import_state(conn, "last_archive_generated_at"),
            "schema_version": get_import_state(conn, "schema_version"),
        }
    finally:
        conn.close()
