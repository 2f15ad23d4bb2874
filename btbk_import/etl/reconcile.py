"""
Reconciliation of daily aggregates into stored daily summaries.

For every date the engine checks each entry against the import ledger,
accumulates the accepted ones into an ImportDelta, applies the delta to the
stored summary and records the accepted entries in the ledger. Re-importing
an archive (or an overlapping one) therefore changes nothing for records
that were already accepted.

Design Decisions:
    1. Staging (ledger lookups) and applying (arithmetic on the summary) are
       separate; apply_delta is a pure function
    2. Sleep minutes are summed per type for the whole date, then rounded
       to whole hours once. Rounding per entry would give different totals
    3. The summary save and the ledger rows are committed in one
       transaction, with an optimistic version check on the summary. A
       concurrent writer makes the save fail and the date is re-staged
       from fresh reads
    4. Dates are processed one after another; a persistence error stops
       the remaining dates
"""

import logging
import math
import sqlite3
from dataclasses import dataclass, replace
from typing import Iterable, List, Set, Tuple

from btbk_import.config import Config
from btbk_import.errors import SummaryVersionConflictError
from btbk_import.etl.aggregator import DailyAggregate
from btbk_import.etl.mappers import MedicineEntry
from btbk_import.etl.repositories import LedgerEntry, LedgerRepository, SummaryRepository
from btbk_import.etl.summary import DailySummary, HygieneStats, SleepStats

logger = logging.getLogger(__name__)

# Ledger source types
SLEEP_SOURCE = "btbk_sleep"
DIAPER_SOURCE = "btbk_diaper"
MEDICINE_SOURCE = "btbk_medicine"

LedgerKey = Tuple[str, str]


@dataclass(frozen=True)
class ImportDelta:
    """Changes one import brings to one date's summary."""

    night_minutes: float = 0
    nap_minutes: float = 0
    night_count: int = 0
    nap_count: int = 0
    diaper_count: int = 0
    medication_lines: Tuple[str, ...] = ()
    ledger_keys: Tuple[LedgerKey, ...] = ()

    @property
    def accepted(self) -> int:
        return len(self.ledger_keys)


@dataclass(frozen=True)
class ImportReport:
    """Outcome of reconciling one date."""

    date: str
    new_entries: int
    skipped: int

    def to_dict(self) -> dict:
        return {"date": self.date, "newEntries": self.new_entries, "skipped": self.skipped}


def minutes_to_hours(minutes: float) -> int:
    """
    Round minutes to the nearest whole hour, halves rounding up.

    Examples:
        >>> minutes_to_hours(130)
        2
        >>> minutes_to_hours(90)
        2
        >>> minutes_to_hours(29)
        0
    """
    return math.floor(minutes / 60 + 0.5)


def format_amount(amount: float) -> str:
    """
    Render a dose amount, dropping the fraction of whole numbers.

    Examples:
        >>> format_amount(5.0)
        '5'
        >>> format_amount(2.5)
        '2.5'
    """
    if float(amount).is_integer():
        return str(int(amount))
    return repr(float(amount))


def medication_line(entry: MedicineEntry) -> str:
    """
    Render a medicine entry as one line of the medication log.

    Format: "HH:mm · name[ (amount)][ · note]". Zero amounts are omitted.
    """
    line = f"{entry.time:%H:%M} · {entry.name}"
    if entry.amount:
        line += f" ({format_amount(entry.amount)})"
    if entry.note:
        line += f" · {entry.note}"
    return line


def append_medication_lines(current: str, lines: Iterable[str]) -> str:
    """Append lines to a medication log, one per line."""
    new_lines = list(lines)
    if not new_lines:
        return current

    existing = (current or "").strip()
    prefix = f"{existing}\n" if existing else ""
    return prefix + "\n".join(new_lines)


def stage_aggregate(aggregate: DailyAggregate, ledger: LedgerRepository) -> ImportDelta:
    """
    Work out which entries of a date are new and what they add up to.

    An entry is accepted when neither the ledger nor an earlier entry of the
    same aggregate holds its (source, id) pair.

    Args:
        aggregate: Entries of one date.
        ledger: Ledger used to detect already imported records.

    Returns:
        ImportDelta describing the accepted entries.
    """
    seen: Set[LedgerKey] = set()

    def accept(source: str, source_id: str) -> bool:
        key = (source, source_id)
        if key in seen or ledger.exists(source, source_id):
            return False
        seen.add(key)
        return True

    night_minutes = 0.0
    nap_minutes = 0.0
    night_count = 0
    nap_count = 0
    keys: List[LedgerKey] = []

    for sleep in aggregate.sleep_entries:
        if not accept(SLEEP_SOURCE, sleep.id):
            continue
        if sleep.type == "night":
            night_minutes += sleep.duration_minutes
            night_count += 1
        else:
            nap_minutes += sleep.duration_minutes
            nap_count += 1
        keys.append((SLEEP_SOURCE, sleep.id))

    diaper_count = 0
    for diaper in aggregate.diaper_entries:
        if not accept(DIAPER_SOURCE, diaper.id):
            continue
        diaper_count += 1
        keys.append((DIAPER_SOURCE, diaper.id))

    lines: List[str] = []
    for medicine in aggregate.medicine_entries:
        if not accept(MEDICINE_SOURCE, medicine.id):
            continue
        lines.append(medication_line(medicine))
        keys.append((MEDICINE_SOURCE, medicine.id))

    return ImportDelta(
        night_minutes=night_minutes,
        nap_minutes=nap_minutes,
        night_count=night_count,
        nap_count=nap_count,
        diaper_count=diaper_count,
        medication_lines=tuple(lines),
        ledger_keys=tuple(keys),
    )


def apply_delta(summary: DailySummary, delta: ImportDelta) -> DailySummary:
    """
    Return a copy of summary with delta added to it.

    Only sleep counters, the diaper count and the medication log change;
    every other field is carried over untouched.
    """
    night_hours = summary.sleep.night_hours + minutes_to_hours(delta.night_minutes)
    nap_hours = summary.sleep.nap_hours + minutes_to_hours(delta.nap_minutes)

    sleep = SleepStats(
        naps=summary.sleep.naps + delta.nap_count,
        total_hours=night_hours + nap_hours,
        night_hours=night_hours,
        nap_hours=nap_hours,
        night_wakings=summary.sleep.night_wakings + delta.night_count,
    )
    hygiene = HygieneStats(
        diapers=summary.hygiene.diapers + delta.diaper_count,
        baths=summary.hygiene.baths,
        medications=append_medication_lines(summary.hygiene.medications, delta.medication_lines),
    )
    return replace(summary, sleep=sleep, hygiene=hygiene)


def reconcile_aggregate(
    conn: sqlite3.Connection,
    aggregate: DailyAggregate,
    max_attempts: int = Config.DEFAULT_MAX_SAVE_ATTEMPTS,
) -> ImportReport:
    """
    Merge one date's entries into its stored summary.

    Args:
        conn: Connection to the summary store.
        aggregate: Entries of the date.
        max_attempts: Attempts before a version conflict is given up on.

    Returns:
        ImportReport for the date.

    Raises:
        SummaryVersionConflictError: If every attempt hit a concurrent write.
        sqlite3.Error: On any other persistence failure.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    summaries = SummaryRepository(conn)
    ledger = LedgerRepository(conn)

    for attempt in range(1, max_attempts + 1):
        try:
            with conn:
                summary, _ = summaries.get_or_create(aggregate.date)
                delta = stage_aggregate(aggregate, ledger)
                if delta.accepted:
                    saved = summaries.save(apply_delta(summary, delta))
                    ledger.bulk_insert(
                        LedgerEntry(
                            source=source,
                            source_id=source_id,
                            date=aggregate.date,
                            summary_date=saved.date,
                        )
                        for source, source_id in delta.ledger_keys
                    )
        except SummaryVersionConflictError:
            if attempt == max_attempts:
                raise
            logger.warning(
                f"Summary {aggregate.date} changed during import, retrying "
                f"({attempt}/{max_attempts})"
            )
            continue

        report = ImportReport(
            date=aggregate.date,
            new_entries=delta.accepted,
            skipped=aggregate.entry_count - delta.accepted,
        )
        logger.info(f"{report.date}: {report.new_entries} new, {report.skipped} skipped")
        return report

    raise RuntimeError(f"No save attempt made for {aggregate.date}")


def reconcile_aggregates(
    conn: sqlite3.Connection,
    aggregates: Iterable[DailyAggregate],
    max_attempts: int = Config.DEFAULT_MAX_SAVE_ATTEMPTS,
) -> List[ImportReport]:
    """
    Reconcile dates in order.

    Args:
        conn: Connection to the summary store.
        aggregates: Aggregates sorted by date.
        max_attempts: Save attempts per date.

    Returns:
        Reports in the order the dates were processed.
    """
    return [reconcile_aggregate(conn, aggregate, max_attempts) for aggregate in aggregates]
