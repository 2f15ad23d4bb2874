"""
Pytest fixtures for BTBK Import tests.

This module provides shared fixtures for testing the import pipeline,
including sample Baby Tracker archives built on the fly.

Fixture Categories:
    1. Archive fixtures (EasyLog.db builders, zipped .btbk bytes)
    2. Store fixtures (empty summary store, open connection)
    3. Scenario fixtures (one day with sleep, diaper and medicine records)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - Sample EasyLog.db mimics the Baby Tracker table layout
    - Times are epoch seconds computed in Europe/Paris
"""

import io
import sqlite3
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Sequence, Tuple
from zoneinfo import ZoneInfo

import pytest

PARIS = ZoneInfo("Europe/Paris")

# Calendar date used by the scenario fixtures
SCENARIO_DATE = "2024-01-15"

EASYLOG_SCHEMA = """
    CREATE TABLE Baby (
        ID TEXT PRIMARY KEY,
        Name TEXT,
        DOB INTEGER,
        Picture BLOB
    );

    CREATE TABLE Sleep (
        ID TEXT PRIMARY KEY,
        Time INTEGER,
        Duration INTEGER,
        Note TEXT,
        BabyID TEXT
    );

    CREATE TABLE Diaper (
        ID TEXT PRIMARY KEY,
        Time INTEGER,
        Status INTEGER,
        Note TEXT,
        BabyID TEXT
    );

    CREATE TABLE Medicine (
        ID TEXT PRIMARY KEY,
        Time INTEGER,
        MedID TEXT,
        Amount REAL,
        Note TEXT,
        BabyID TEXT
    );

    CREATE TABLE MedicineSelection (
        ID TEXT PRIMARY KEY,
        Name TEXT,
        Description TEXT
    );
"""


def paris_epoch(year: int, month: int, day: int, hour: int, minute: int = 0) -> int:
    """Epoch seconds of a Europe/Paris wall-clock time."""
    return int(datetime(year, month, day, hour, minute, tzinfo=PARIS).timestamp())


def write_easylog_db(
    db_path: Path,
    sleeps: Iterable[Tuple] = (),
    diapers: Iterable[Tuple] = (),
    medicines: Iterable[Tuple] = (),
    selections: Iterable[Tuple] = (),
    babies: Iterable[Tuple] = (),
) -> Path:
    """
    Create an EasyLog.db file.

    Row tuples follow the column order of EASYLOG_SCHEMA without BabyID:
        sleeps: (ID, Time, Duration, Note)
        diapers: (ID, Time, Status, Note)
        medicines: (ID, Time, MedID, Amount, Note)
        selections: (ID, Name, Description)
        babies: (ID, Name, DOB, Picture)
    """
    conn = sqlite3.connect(str(db_path))
    try:
        conn.executescript(EASYLOG_SCHEMA)
        conn.executemany(
            "INSERT INTO Sleep (ID, Time, Duration, Note) VALUES (?, ?, ?, ?)", list(sleeps)
        )
        conn.executemany(
            "INSERT INTO Diaper (ID, Time, Status, Note) VALUES (?, ?, ?, ?)", list(diapers)
        )
        conn.executemany(
            "INSERT INTO Medicine (ID, Time, MedID, Amount, Note) VALUES (?, ?, ?, ?, ?)",
            list(medicines),
        )
        conn.executemany(
            "INSERT INTO MedicineSelection (ID, Name, Description) VALUES (?, ?, ?)",
            list(selections),
        )
        conn.executemany(
            "INSERT INTO Baby (ID, Name, DOB, Picture) VALUES (?, ?, ?, ?)", list(babies)
        )
        conn.commit()
    finally:
        conn.close()
    return db_path


def zip_database(db_bytes: bytes, entry_name: str = "EasyLog.db") -> bytes:
    """Wrap database bytes in a zip container the way the app does."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(entry_name, db_bytes)
    return buffer.getvalue()


# =============================================================================
# Archive fixtures
# =============================================================================


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., bytes]:
    """
    Factory building .btbk archive bytes from row tuples.

    Accepts the same keyword arguments as write_easylog_db().
    """
    counter = {"n": 0}

    def _make(**tables: Sequence[Tuple]) -> bytes:
        counter["n"] += 1
        db_path = write_easylog_db(tmp_path / f"EasyLog_{counter['n']}.db", **tables)
        return zip_database(db_path.read_bytes())

    return _make


@pytest.fixture
def scenario_tables() -> dict:
    """
    One day of records on 2024-01-15 (Europe/Paris).

    - night sleep at 20:30 for 90 minutes
    - nap at 13:00 for 40 minutes
    - diaper at 09:15 with status 1 (Poo)
    - Paracetamol (5) at 10:00 with note "fever"
    """
    return {
        "sleeps": [
            ("sleep-night", paris_epoch(2024, 1, 15, 20, 30), 90, None),
            ("sleep-nap", paris_epoch(2024, 1, 15, 13, 0), 40, None),
        ],
        "diapers": [
            ("diaper-1", paris_epoch(2024, 1, 15, 9, 15), 1, None),
        ],
        "medicines": [
            ("med-dose-1", paris_epoch(2024, 1, 15, 10, 0), "med-1", 5, "fever"),
        ],
        "selections": [
            ("med-1", "Paracetamol", "Fever and pain"),
        ],
        "babies": [
            ("baby-1", "Lea", paris_epoch(2023, 10, 1, 8, 0), b"\x89PNG\r\n\x1a\n"),
        ],
    }


@pytest.fixture
def scenario_archive(make_archive, scenario_tables: dict) -> bytes:
    """Archive bytes for the scenario_tables records."""
    return make_archive(**scenario_tables)


@pytest.fixture
def scenario_archive_path(tmp_path: Path, scenario_archive: bytes) -> Path:
    """Scenario archive written to disk as backup.btbk."""
    path = tmp_path / "backup.btbk"
    path.write_bytes(scenario_archive)
    return path


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture
def empty_store(tmp_path: Path) -> Path:
    """
    Create an empty summary store with schema.

    Returns:
        Path to the store file.
    """
    from btbk_import.etl.schema import create_schema

    db_path = tmp_path / "summaries.db"
    create_schema(db_path)
    return db_path


@pytest.fixture
def store_conn(empty_store: Path):
    """Open connection to an empty store, closed after the test."""
    conn = sqlite3.connect(str(empty_store))
    conn.execute("PRAGMA foreign_keys = ON;")
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def paris() -> ZoneInfo:
    return PARIS
