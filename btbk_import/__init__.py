"""
BTBK Import - merge Baby Tracker backups into daily summaries.

This package provides functionality to:
- Extract the tables of a Baby Tracker (.btbk) backup archive
- Map sleep, diaper and medicine records into typed entries
- Merge them into per-day summaries without ever counting a record twice
"""

__version__ = "0.1.0"

from btbk_import.config import get_config, Config
from btbk_import.errors import ArchiveFormatError, CorruptArchiveError

__all__ = [
    "get_config",
    "Config",
    "ArchiveFormatError",
    "CorruptArchiveError",
]
