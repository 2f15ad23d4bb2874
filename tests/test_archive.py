"""
Tests for the archive extractor.

Covers zip handling, in-memory database loading and value normalization.
"""

import base64
import json
import sqlite3
import struct
from datetime import date, datetime, time
from pathlib import Path

import pytest

from btbk_import.errors import ArchiveFormatError, CorruptArchiveError
from btbk_import.etl import archive as archive_module
from btbk_import.etl.archive import (
    ARCHIVE_DB_ENTRY,
    dump_to_json,
    list_tables,
    normalize_value,
    open_database,
    parse_archive,
    read_database_entry,
)

from conftest import write_easylog_db, zip_database

# Offsets of the flag and compression fields in the local and central headers
LOCAL_HEADER = b"PK\x03\x04"
CENTRAL_HEADER = b"PK\x01\x02"
FLAG_OFFSETS = {LOCAL_HEADER: 6, CENTRAL_HEADER: 8}
METHOD_OFFSETS = {LOCAL_HEADER: 8, CENTRAL_HEADER: 10}


def rewrite_entry_field(data: bytes, offsets: dict, update) -> bytes:
    """Rewrite a 2-byte field of the first entry in both zip headers."""
    buffer = bytearray(data)
    for signature, offset in offsets.items():
        position = buffer.index(signature) + offset
        (value,) = struct.unpack_from("<H", buffer, position)
        struct.pack_into("<H", buffer, position, update(value))
    return bytes(buffer)


class TestNormalizeValue:
    """Tests for normalize_value function."""

    def test_bytes_become_base64(self):
        assert normalize_value(b"\x00\x01\xff") == base64.b64encode(b"\x00\x01\xff").decode()

    def test_memoryview_becomes_base64(self):
        assert normalize_value(memoryview(b"abc")) == "YWJj"

    def test_datetime_becomes_iso(self):
        assert normalize_value(datetime(2024, 1, 15, 10, 30)) == "2024-01-15T10:30:00"

    def test_date_and_time_become_iso(self):
        assert normalize_value(date(2024, 1, 15)) == "2024-01-15"
        assert normalize_value(time(8, 5)) == "08:05:00"

    def test_scalars_pass_through(self):
        assert normalize_value(42) == 42
        assert normalize_value(1.5) == 1.5
        assert normalize_value("text") == "text"
        assert normalize_value(None) is None


class TestReadDatabaseEntry:
    """Tests for the zip container layer."""

    def test_returns_entry_bytes(self):
        data = zip_database(b"payload")
        assert read_database_entry(data) == b"payload"

    def test_missing_entry_raises_format_error(self):
        data = zip_database(b"payload", entry_name="Other.db")
        with pytest.raises(ArchiveFormatError, match=ARCHIVE_DB_ENTRY):
            read_database_entry(data)

    def test_not_a_zip_raises_corrupt(self):
        with pytest.raises(CorruptArchiveError):
            read_database_entry(b"definitely not a zip file")

    def test_truncated_zip_raises_corrupt(self):
        data = zip_database(b"x" * 4096)
        with pytest.raises(CorruptArchiveError):
            read_database_entry(data[: len(data) // 2])

    def test_encrypted_entry_raises_corrupt(self):
        data = rewrite_entry_field(zip_database(b"payload"), FLAG_OFFSETS, lambda flags: flags | 0x1)
        with pytest.raises(CorruptArchiveError, match="encrypted"):
            read_database_entry(data)

    def test_unsupported_compression_raises_corrupt(self):
        data = rewrite_entry_field(zip_database(b"payload"), METHOD_OFFSETS, lambda _: 99)
        with pytest.raises(CorruptArchiveError):
            read_database_entry(data)


class TestOpenDatabase:
    """Tests for loading database bytes in memory."""

    def test_empty_bytes_give_empty_database(self):
        conn = open_database(b"")
        try:
            assert list_tables(conn) == []
        finally:
            conn.close()

    def test_non_sqlite_bytes_raise(self):
        with pytest.raises(CorruptArchiveError):
            open_database(b"this is not sqlite at all, just text")

    def test_garbage_after_header_raises(self):
        with pytest.raises(CorruptArchiveError):
            open_database(b"SQLite format 3\x00" + b"\xff" * 200)

    def test_wal_mode_database_is_readable(self, tmp_path: Path):
        """A database saved in WAL mode should load without its -wal file."""
        db_path = tmp_path / "wal.db"
        conn = sqlite3.connect(str(db_path))
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("CREATE TABLE Sleep (ID TEXT, Time INTEGER);")
            conn.execute("INSERT INTO Sleep VALUES ('a', 1);")
            conn.commit()
        finally:
            conn.close()

        raw = db_path.read_bytes()
        assert raw[18] == 2 and raw[19] == 2

        dump = parse_archive(zip_database(raw))

        assert dump.table_rows("Sleep") == [{"ID": "a", "Time": 1}]


class TestParseArchive:
    """Tests for the full archive dump."""

    def test_dumps_every_table_sorted(self, scenario_archive: bytes):
        dump = parse_archive(scenario_archive)

        assert list(dump.tables) == sorted(dump.tables)
        assert set(dump.tables) == {"Baby", "Diaper", "Medicine", "MedicineSelection", "Sleep"}

    def test_row_counts_match_rows(self, scenario_archive: bytes):
        dump = parse_archive(scenario_archive)

        for table in dump.tables.values():
            assert table.row_count == len(table.rows)
        assert dump.tables["Sleep"].row_count == 2

    def test_columns_follow_table_definition(self, scenario_archive: bytes):
        dump = parse_archive(scenario_archive)

        row = dump.table_rows("Sleep")[0]
        assert list(row) == ["ID", "Time", "Duration", "Note", "BabyID"]

    def test_blob_columns_are_base64(self, scenario_archive: bytes):
        dump = parse_archive(scenario_archive)

        picture = dump.table_rows("Baby")[0]["Picture"]
        assert base64.b64decode(picture) == b"\x89PNG\r\n\x1a\n"

    def test_internal_tables_excluded(self, tmp_path: Path):
        db_path = tmp_path / "auto.db"
        conn = sqlite3.connect(str(db_path))
        try:
            conn.execute("CREATE TABLE Diaper (n INTEGER PRIMARY KEY AUTOINCREMENT, ID TEXT);")
            conn.execute("INSERT INTO Diaper (ID) VALUES ('d');")
            conn.commit()
        finally:
            conn.close()

        dump = parse_archive(zip_database(db_path.read_bytes()))

        assert list(dump.tables) == ["Diaper"]

    def test_empty_database_entry(self):
        dump = parse_archive(zip_database(b""))
        assert dump.tables == {}

    def test_missing_table_gives_empty_rows(self, make_archive):
        dump = parse_archive(make_archive())
        assert dump.table_rows("DoesNotExist") == []

    def test_invalid_utf8_text_is_replaced(self, tmp_path: Path):
        db_path = tmp_path / "latin.db"
        conn = sqlite3.connect(str(db_path))
        try:
            conn.execute("CREATE TABLE Sleep (ID TEXT, Note TEXT);")
            conn.execute("INSERT INTO Sleep VALUES ('t', CAST(X'E9' AS TEXT));")
            conn.commit()
        finally:
            conn.close()

        dump = parse_archive(zip_database(db_path.read_bytes()))

        assert dump.table_rows("Sleep")[0]["Note"] == "\ufffd"

    def test_generated_at_is_utc_millis(self, make_archive):
        dump = parse_archive(make_archive())

        assert dump.generated_at.endswith("Z")
        parsed = datetime.fromisoformat(dump.generated_at.replace("Z", "+00:00"))
        assert parsed.tzinfo is not None

    def test_read_failure_is_corrupt_and_closes(self, scenario_archive: bytes, monkeypatch):
        """A database error mid-dump should raise CorruptArchiveError."""
        opened = []
        real_open = archive_module.open_database

        def tracking_open(db_bytes):
            conn = real_open(db_bytes)
            opened.append(conn)
            return conn

        def failing_fetch(conn, table_name):
            raise sqlite3.DatabaseError("database disk image is malformed")

        monkeypatch.setattr(archive_module, "open_database", tracking_open)
        monkeypatch.setattr(archive_module, "fetch_rows", failing_fetch)

        with pytest.raises(CorruptArchiveError):
            parse_archive(scenario_archive)

        assert len(opened) == 1
        with pytest.raises(sqlite3.ProgrammingError):
            opened[0].execute("SELECT 1;")


class TestDumpToJson:
    """Tests for JSON serialization."""

    def test_document_shape(self, scenario_archive: bytes):
        document = json.loads(dump_to_json(parse_archive(scenario_archive)))

        assert set(document) == {"generatedAt", "tables"}
        sleep = document["tables"]["Sleep"]
        assert sleep["name"] == "Sleep"
        assert sleep["rowCount"] == 2
        assert len(sleep["rows"]) == 2

    def test_non_ascii_kept(self, tmp_path: Path):
        db_path = write_easylog_db(
            tmp_path / "EasyLog.db", selections=[("m", "Doliprane é", None)]
        )
        text = dump_to_json(parse_archive(zip_database(db_path.read_bytes())))
        assert "Doliprane é" in text
