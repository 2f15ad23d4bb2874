"""
ETL (Extract, Transform, Load) module for BTBK Import.

Turns Baby Tracker backup archives into per-day summaries.

Architecture Overview:
    .btbk archive (read-only)        summaries.db (read-write)
    └── EasyLog.db               →   ├── daily_summaries
        ├── Sleep                    ├── import_ledger
        ├── Diaper                   └── import_state
        ├── Medicine
        └── MedicineSelection

Key Design Decisions:
    1. Archives are parsed fully in memory before anything is written
    2. Rows are mapped by explicit per-entity functions; bad rows are dropped
    3. Entries are bucketed by calendar date in a configured time zone
    4. The import ledger makes every source record count at most once
"""

from btbk_import.etl.schema import create_schema, verify_schema, SCHEMA_VERSION
from btbk_import.etl.archive import (
    ARCHIVE_DB_ENTRY,
    ArchiveDump,
    TableDump,
    normalize_value,
    parse_archive,
    dump_to_json,
)
from btbk_import.etl.mappers import (
    SleepEntry,
    DiaperEntry,
    MedicineEntry,
    build_medicine_lookup,
    classify_sleep,
    map_sleep,
    map_diaper,
    map_medicine,
)
from btbk_import.etl.aggregator import DailyAggregate, build_aggregates
from btbk_import.etl.summary import DailySummary, default_summary
from btbk_import.etl.repositories import (
    SummaryRepository,
    LedgerRepository,
    LedgerEntry,
)
from btbk_import.etl.reconcile import (
    ImportDelta,
    ImportReport,
    stage_aggregate,
    apply_delta,
    reconcile_aggregate,
    reconcile_aggregates,
)
from btbk_import.etl.pipeline import (
    ImportResult,
    import_archive,
    run_import,
    run_import_file,
    get_import_status,
)

__all__ = [
    # Schema
    "create_schema",
    "verify_schema",
    "SCHEMA_VERSION",
    # Extraction
    "ARCHIVE_DB_ENTRY",
    "ArchiveDump",
    "TableDump",
    "normalize_value",
    "parse_archive",
    "dump_to_json",
    # Mapping
    "SleepEntry",
    "DiaperEntry",
    "MedicineEntry",
    "build_medicine_lookup",
    "classify_sleep",
    "map_sleep",
    "map_diaper",
    "map_medicine",
    # Aggregation
    "DailyAggregate",
    "build_aggregates",
    # Store
    "DailySummary",
    "default_summary",
    "SummaryRepository",
    "LedgerRepository",
    "LedgerEntry",
    # Reconciliation
    "ImportDelta",
    "ImportReport",
    "stage_aggregate",
    "apply_delta",
    "reconcile_aggregate",
    "reconcile_aggregates",
    # Pipeline
    "ImportResult",
    "import_archive",
    "run_import",
    "run_import_file",
    "get_import_status",
]
