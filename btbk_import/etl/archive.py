"""
Archive extractor for Baby Tracker backups (.btbk).

A .btbk file is a zip container holding the app's SQLite database under a
fixed entry name. This module opens the container, loads the database into
an in-memory SQLite connection and dumps every user table.

Design Decisions:
    1. The archive is never written to disk; the database is deserialized
       straight into a :memory: connection
    2. Tables are dumped in name order so repeated runs are reproducible
    3. Cell values are normalized to JSON-friendly scalars (blobs → base64,
       temporal values → ISO-8601)
    4. The in-memory connection is closed on every exit path
"""

import base64
import io
import json
import logging
import sqlite3
import zipfile
import zlib
from contextlib import closing
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List

from btbk_import.errors import ArchiveFormatError, CorruptArchiveError

logger = logging.getLogger(__name__)

# Name of the database entry inside every Baby Tracker backup
ARCHIVE_DB_ENTRY = "EasyLog.db"

SQLITE_HEADER = b"SQLite format 3\x00"

# Header offsets of the file format read/write versions; 2 means WAL
_WAL_VERSION_OFFSETS = (18, 19)

Row = Dict[str, Any]


@dataclass
class TableDump:
    """All rows of one table, in storage order."""

    name: str
    row_count: int
    rows: List[Row] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "rowCount": self.row_count, "rows": self.rows}


@dataclass
class ArchiveDump:
    """Every user table of an archive's database."""

    generated_at: str
    tables: Dict[str, TableDump] = field(default_factory=dict)

    def table_rows(self, name: str) -> List[Row]:
        """Rows of a table, or an empty list when the table is absent."""
        table = self.tables.get(name)
        return table.rows if table else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "tables": {name: table.to_dict() for name, table in self.tables.items()},
        }


def normalize_value(value: Any) -> Any:
    """
    Normalize a SQLite cell value into a JSON-friendly scalar.

    Args:
        value: Raw value returned by the sqlite3 cursor.

    Returns:
        Base64 text for binary blobs, ISO-8601 text for temporal values,
        the value itself otherwise.

    Examples:
        >>> normalize_value(b"\\x00\\x01")
        'AAE='
        >>> normalize_value(datetime(2024, 1, 15, 10, 0))
        '2024-01-15T10:00:00'
        >>> normalize_value(42)
        42
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")

    # datetime is a subclass of date, both have isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()

    return value


def _generated_at() -> str:
    """UTC timestamp with millisecond precision, e.g. 2024-01-15T10:00:00.000Z."""
    now = datetime.now(tz=timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def read_database_entry(data: bytes) -> bytes:
    """
    Read the embedded database bytes out of the zip container.

    Args:
        data: Raw archive bytes.

    Returns:
        Bytes of the EasyLog.db entry.

    Raises:
        ArchiveFormatError: If the container has no EasyLog.db entry.
        CorruptArchiveError: If the bytes are not a readable zip file, or the
            entry is encrypted or uses an unsupported compression method.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            try:
                return archive.read(ARCHIVE_DB_ENTRY)
            except KeyError as e:
                raise ArchiveFormatError(
                    f"Invalid BTBK archive: {ARCHIVE_DB_ENTRY} not found"
                ) from e
    except (
        zipfile.BadZipFile,
        zlib.error,
        EOFError,
        RuntimeError,
        NotImplementedError,
    ) as e:
        raise CorruptArchiveError(f"Cannot open BTBK archive: {e}") from e


def _disable_wal_header(db_bytes: bytes) -> bytes:
    """
    Rewrite a WAL-mode header to rollback-journal mode.

    SQLite refuses to read a deserialized database whose header still
    announces WAL mode, since there is no -wal file next to it.
    """
    if len(db_bytes) < 100 or not any(db_bytes[i] == 2 for i in _WAL_VERSION_OFFSETS):
        return db_bytes

    patched = bytearray(db_bytes)
    for offset in _WAL_VERSION_OFFSETS:
        patched[offset] = 1
    return bytes(patched)


def open_database(db_bytes: bytes) -> sqlite3.Connection:
    """
    Load database bytes into an in-memory SQLite connection.

    Args:
        db_bytes: Contents of a SQLite database file. Empty bytes yield an
                  empty database.

    Returns:
        Open in-memory connection. The caller owns it and must close it.

    Raises:
        CorruptArchiveError: If the bytes are not a readable SQLite database.
    """
    if db_bytes and not db_bytes.startswith(SQLITE_HEADER):
        raise CorruptArchiveError(f"{ARCHIVE_DB_ENTRY} is not a SQLite database")

    conn = sqlite3.connect(":memory:")
    # Backups from older app versions occasionally hold invalid UTF-8 in notes
    conn.text_factory = lambda raw: raw.decode("utf-8", errors="replace")
    try:
        if db_bytes:
            conn.deserialize(_disable_wal_header(db_bytes))
        # Forces SQLite to parse the schema now rather than mid-dump
        conn.execute("SELECT COUNT(*) FROM sqlite_master;").fetchone()
    except sqlite3.DatabaseError as e:
        conn.close()
        raise CorruptArchiveError(f"Cannot open {ARCHIVE_DB_ENTRY}: {e}") from e

    return conn


def list_tables(conn: sqlite3.Connection) -> List[str]:
    """
    List user tables, excluding SQLite internal ones, sorted by name.

    Args:
        conn: Connection to the archive database.

    Returns:
        Table names.
    """
    query = """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
        ORDER BY name;
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(query)
        return [row[0] for row in cursor.fetchall() if isinstance(row[0], str)]


def fetch_rows(conn: sqlite3.Connection, table_name: str) -> List[Row]:
    """
    Select every row of a table as a column → normalized value mapping.

    Column order follows the table definition.

    Args:
        conn: Connection to the archive database.
        table_name: Table to dump. Must come from list_tables().

    Returns:
        List of rows.
    """
    quoted = '"' + table_name.replace('"', '""') + '"'

    rows: List[Row] = []
    with closing(conn.cursor()) as cursor:
        cursor.execute(f"SELECT * FROM {quoted};")
        columns = [description[0] for description in cursor.description]
        for values in cursor.fetchall():
            rows.append({column: normalize_value(value) for column, value in zip(columns, values)})

    return rows


def parse_archive(data: bytes) -> ArchiveDump:
    """
    Dump every table of a Baby Tracker archive.

    Args:
        data: Raw .btbk archive bytes.

    Returns:
        ArchiveDump with one TableDump per user table.

    Raises:
        ArchiveFormatError: If EasyLog.db is missing from the archive.
        CorruptArchiveError: If the archive or its database cannot be read.
    """
    db_bytes = read_database_entry(data)

    with closing(open_database(db_bytes)) as conn:
        try:
            tables: Dict[str, TableDump] = {}
            for table_name in list_tables(conn):
                rows = fetch_rows(conn, table_name)
                tables[table_name] = TableDump(name=table_name, row_count=len(rows), rows=rows)
        except sqlite3.DatabaseError as e:
            raise CorruptArchiveError(f"Failed reading {ARCHIVE_DB_ENTRY}: {e}") from e

    logger.info(
        f"Extracted {len(tables)} tables ({sum(t.row_count for t in tables.values())} rows) "
        f"from {ARCHIVE_DB_ENTRY}"
    )
    return ArchiveDump(generated_at=_generated_at(), tables=tables)


def dump_to_json(dump: ArchiveDump, indent: int = 2) -> str:
    """
    Serialize a dump to JSON text.

    Args:
        dump: Dump produced by parse_archive().
        indent: Indentation width.

    Returns:
        JSON document {generatedAt, tables: {name: {name, rowCount, rows}}}.
    """
    return json.dumps(dump.to_dict(), indent=indent, ensure_ascii=False)
