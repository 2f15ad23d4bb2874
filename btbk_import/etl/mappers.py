"""
Row mappers: archive rows → typed sleep, diaper and medicine entries.

Archive rows are plain dictionaries whose values may be text, numbers or
NULL depending on the app version that wrote them. Each entity has one
explicit mapping function that either returns an entry or None.

Design Decisions:
    1. A row without a truthy ID or Time is dropped, never raised on
    2. Time is Unix epoch seconds, converted into the configured zone
    3. Sleep type is decided by the local start hour: [19, 24) and [0, 8)
       are night, anything else is a nap
    4. Medicine names come from the MedicineSelection table; unknown ids
       get a placeholder name
"""

import math
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Dict, Iterable, Literal, Optional

from btbk_import.etl.archive import Row

SleepType = Literal["night", "nap"]

NIGHT_START_HOUR = 19
NIGHT_END_HOUR = 8

DIAPER_STATUS_LABELS = {
    2: "Pee + poo",
    1: "Poo",
}
DEFAULT_DIAPER_STATUS = "Pee"

UNKNOWN_MEDICINE_NAME = "Médicament"


@dataclass(frozen=True)
class SleepEntry:
    """A sleep record from the Sleep table."""

    id: str
    start: datetime  # zone-aware
    duration_minutes: float
    type: SleepType
    note: Optional[str] = None


@dataclass(frozen=True)
class DiaperEntry:
    """A diaper change from the Diaper table."""

    id: str
    time: datetime  # zone-aware
    status: str
    note: Optional[str] = None


@dataclass(frozen=True)
class MedicineEntry:
    """A medicine dose from the Medicine table."""

    id: str
    time: datetime  # zone-aware
    name: str
    amount: Optional[float] = None
    note: Optional[str] = None


def _to_number(value: Any) -> Optional[float]:
    """
    Parse a loosely-typed cell as a finite number.

    Returns None for NULL, booleans, non-numeric text, NaN and infinities.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        else:
            number = float(str(value).strip())
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _source_id(value: Any) -> str:
    """Stringify a row ID; whole floats lose their trailing .0."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _note(row: Row) -> Optional[str]:
    note = row.get("Note")
    return str(note) if note else None


def parse_epoch_seconds(value: Any, tz: tzinfo) -> Optional[datetime]:
    """
    Convert epoch seconds into an aware datetime in the given zone.

    Args:
        value: Epoch seconds as int, float or numeric text.
        tz: Target zone.

    Returns:
        Aware datetime, or None if the value is not a usable timestamp.

    Examples:
        >>> from zoneinfo import ZoneInfo
        >>> parse_epoch_seconds(0, ZoneInfo("UTC")).isoformat()
        '1970-01-01T00:00:00+00:00'
        >>> parse_epoch_seconds("not a date", ZoneInfo("UTC")) is None
        True
    """
    seconds = _to_number(value)
    if seconds is None:
        return None

    try:
        return datetime.fromtimestamp(seconds, tz=tz)
    except (OverflowError, OSError, ValueError):
        return None


def classify_sleep(start: datetime) -> SleepType:
    """
    Classify a sleep by its local start hour.

    Examples:
        >>> classify_sleep(datetime(2024, 1, 15, 18, 59))
        'nap'
        >>> classify_sleep(datetime(2024, 1, 15, 19, 0))
        'night'
        >>> classify_sleep(datetime(2024, 1, 15, 7, 59))
        'night'
        >>> classify_sleep(datetime(2024, 1, 15, 8, 0))
        'nap'
    """
    hour = start.hour
    if hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR:
        return "night"
    return "nap"


def diaper_status_label(status: Any) -> str:
    """
    Map a Diaper.Status code to its label.

    Examples:
        >>> diaper_status_label(2)
        'Pee + poo'
        >>> diaper_status_label(1)
        'Poo'
        >>> diaper_status_label(None)
        'Pee'
    """
    number = _to_number(status)
    if number is None or not number.is_integer():
        return DEFAULT_DIAPER_STATUS
    return DIAPER_STATUS_LABELS.get(int(number), DEFAULT_DIAPER_STATUS)


def build_medicine_lookup(rows: Iterable[Row]) -> Dict[str, str]:
    """
    Build a medicine id → display name lookup from MedicineSelection rows.

    Rows without an ID are skipped. The name is Name, else Description,
    else an empty string.

    Args:
        rows: MedicineSelection rows.

    Returns:
        Mapping of medicine id to display name.
    """
    lookup: Dict[str, str] = {}
    for row in rows:
        if not row.get("ID"):
            continue
        name = row.get("Name")
        if name is None:
            name = row.get("Description")
        lookup[_source_id(row["ID"])] = "" if name is None else str(name)
    return lookup


def map_sleep(row: Row, tz: tzinfo) -> Optional[SleepEntry]:
    """
    Map a Sleep row.

    Args:
        row: Archive row with ID, Time, Duration (minutes) and Note columns.
        tz: Zone used to read the start time.

    Returns:
        SleepEntry, or None if ID or Time is missing or Time is unusable.
    """
    if not row.get("ID") or not row.get("Time"):
        return None

    start = parse_epoch_seconds(row["Time"], tz)
    if start is None:
        return None

    duration = _to_number(row.get("Duration"))
    if duration is None or duration < 0:
        duration = 0.0

    return SleepEntry(
        id=_source_id(row["ID"]),
        start=start,
        duration_minutes=duration,
        type=classify_sleep(start),
        note=_note(row),
    )


def map_diaper(row: Row, tz: tzinfo) -> Optional[DiaperEntry]:
    """Map a Diaper row, or return None when ID or Time is unusable."""
    if not row.get("ID") or not row.get("Time"):
        return None

    time = parse_epoch_seconds(row["Time"], tz)
    if time is None:
        return None

    return DiaperEntry(
        id=_source_id(row["ID"]),
        time=time,
        status=diaper_status_label(row.get("Status")),
        note=_note(row),
    )


def map_medicine(row: Row, medicines: Dict[str, str], tz: tzinfo) -> Optional[MedicineEntry]:
    """
    Map a Medicine row.

    Args:
        row: Archive row with ID, Time, MedID, Amount and Note columns.
        medicines: Lookup built by build_medicine_lookup().
        tz: Zone used to read the dose time.

    Returns:
        MedicineEntry, or None if ID or Time is unusable.
    """
    if not row.get("ID") or not row.get("Time"):
        return None

    time = parse_epoch_seconds(row["Time"], tz)
    if time is None:
        return None

    med_id = _source_id(row["MedID"]) if row.get("MedID") else ""
    amount = _to_number(row["Amount"]) if row.get("Amount") else None

    return MedicineEntry(
        id=_source_id(row["ID"]),
        time=time,
        name=medicines.get(med_id, UNKNOWN_MEDICINE_NAME),
        amount=amount,
        note=_note(row),
    )
