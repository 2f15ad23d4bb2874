"""
Daily aggregation of mapped archive entries.

Entries are bucketed by the calendar date of their start (sleep) or time
(diaper, medicine) in the configured zone. Aggregates come back sorted by
date so reconciliation always walks dates in the same order.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Dict, List

from btbk_import.etl.archive import ArchiveDump
from btbk_import.etl.mappers import (
    DiaperEntry,
    MedicineEntry,
    SleepEntry,
    build_medicine_lookup,
    map_diaper,
    map_medicine,
    map_sleep,
)

logger = logging.getLogger(__name__)

# Archive table names
SLEEP_TABLE = "Sleep"
DIAPER_TABLE = "Diaper"
MEDICINE_TABLE = "Medicine"
MEDICINE_SELECTION_TABLE = "MedicineSelection"


@dataclass
class DailyAggregate:
    """Entries of one zone-local calendar date."""

    date: str  # YYYY-MM-DD
    sleep_entries: List[SleepEntry] = field(default_factory=list)
    diaper_entries: List[DiaperEntry] = field(default_factory=list)
    medicine_entries: List[MedicineEntry] = field(default_factory=list)

    @property
    def entry_count(self) -> int:
        return len(self.sleep_entries) + len(self.diaper_entries) + len(self.medicine_entries)


def local_date(moment: datetime) -> str:
    """ISO date of an aware datetime in its own zone."""
    return moment.date().isoformat()


def _bucket(buckets: Dict[str, DailyAggregate], day: str) -> DailyAggregate:
    if day not in buckets:
        buckets[day] = DailyAggregate(date=day)
    return buckets[day]


def build_aggregates(dump: ArchiveDump, tz: tzinfo) -> List[DailyAggregate]:
    """
    Map every sleep, diaper and medicine row and bucket it by local date.

    Missing tables are treated as empty. Rows the mappers reject are dropped
    and only counted in a debug log line.

    Args:
        dump: Parsed archive.
        tz: Zone used for timestamps and dates.

    Returns:
        One DailyAggregate per distinct date, sorted by ascending date.
    """
    medicines = build_medicine_lookup(dump.table_rows(MEDICINE_SELECTION_TABLE))
    buckets: Dict[str, DailyAggregate] = {}
    dropped = 0

    for row in dump.table_rows(SLEEP_TABLE):
        sleep = map_sleep(row, tz)
        if sleep is None:
            dropped += 1
            continue
        _bucket(buckets, local_date(sleep.start)).sleep_entries.append(sleep)

    for row in dump.table_rows(DIAPER_TABLE):
        diaper = map_diaper(row, tz)
        if diaper is None:
            dropped += 1
            continue
        _bucket(buckets, local_date(diaper.time)).diaper_entries.append(diaper)

    for row in dump.table_rows(MEDICINE_TABLE):
        medicine = map_medicine(row, medicines, tz)
        if medicine is None:
            dropped += 1
            continue
        _bucket(buckets, local_date(medicine.time)).medicine_entries.append(medicine)

    aggregates = [buckets[day] for day in sorted(buckets)]

    if dropped:
        logger.debug(f"Dropped {dropped} rows missing an ID or a usable Time")
    logger.info(
        f"Built {len(aggregates)} daily aggregates from "
        f"{sum(a.entry_count for a in aggregates)} entries"
    )
    return aggregates
