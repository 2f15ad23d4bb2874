"""
Exception hierarchy for BTBK imports.

Archive-level errors abort an import before anything is written to the
summary store. Row-level problems are not errors at all: mappers return
None for rows they cannot use and the import carries on.
"""


class BtbkImportError(Exception):
    """Base class for all import errors."""


class ArchiveFormatError(BtbkImportError):
    """The archive opened fine but does not contain the expected database."""


class CorruptArchiveError(BtbkImportError):
    """The zip container or the embedded SQLite database cannot be read."""


class LedgerConflict(BtbkImportError):
    """
    A ledger row already exists for this (source, source_id).

    Raised per row inside the ledger repository and tolerated there; it never
    fails a batch insert.
    """

    def __init__(self, source: str, source_id: str):
        super().__init__(f"Ledger entry already exists: {source}/{source_id}")
        self.source = source
        self.source_id = source_id


class SummaryVersionConflictError(BtbkImportError):
    """The daily summary changed between read and write."""

    def __init__(self, date: str, expected_version: int):
        super().__init__(
            f"Daily summary {date} was modified concurrently (expected version {expected_version})"
        )
        self.date = date
        self.expected_version = expected_version
