"""
FastAPI backend for BTBK Import.

Accepts Baby Tracker archives, merges them into the summary store and
serves the resulting daily summaries.

Configuration comes from the environment on every request (see
btbk_import.config): BTBK_IMPORT_DB_PATH, BTBK_IMPORT_TIMEZONE and
BTBK_IMPORT_ARCHIVES_DIR.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Path, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from btbk_import.config import Config
from btbk_import.errors import ArchiveFormatError, CorruptArchiveError
from btbk_import.etl.archive import parse_archive
from btbk_import.etl.pipeline import get_import_status, import_archive, open_store
from btbk_import.etl.repositories import SummaryRepository
from btbk_import.etl.schema import create_schema
from btbk_import.sources import LocalArchiveSource

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _get_config() -> Config:
    """Build configuration from the current environment."""
    return Config()


def _import_bytes(config: Config, data: bytes) -> List[Dict[str, Any]]:
    """Import an archive into the configured store. Runs in a worker thread."""
    create_schema(config.store_db_path)
    conn = open_store(config.store_db_path)
    try:
        reports = import_archive(conn, data, config.tzinfo, config.max_save_attempts)
    finally:
        conn.close()

    return [report.to_dict() for report in reports]


async def _import_or_400(config: Config, data: bytes) -> Dict[str, Any]:
    if not data:
        raise HTTPException(status_code=400, detail="Empty request body, expected a .btbk archive")
    try:
        summary = await run_in_threadpool(_import_bytes, config, data)
    except (ArchiveFormatError, CorruptArchiveError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"summary": summary}


app = FastAPI(
    title="BTBK Import API",
    version="0.1.0",
    description="Imports Baby Tracker backups into daily summaries.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        os.getenv("BTBK_IMPORT_ALLOWED_ORIGIN", "http://localhost:5173"),
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, Any]:
    """Health check - also reports whether the store exists."""
    path = _get_config().store_db_path
    return {
        "status": "ok",
        "store_exists": path.exists(),
        "store_path": str(path),
    }


@app.get("/status")
def status() -> Dict[str, Any]:
    """Import status of the store."""
    return get_import_status(_get_config().store_db_path)


@app.post("/imports")
async def import_archive_upload(request: Request) -> Dict[str, Any]:
    """Import the archive sent as the raw request body."""
    data = await request.body()
    return await _import_or_400(_get_config(), data)


@app.post("/convert")
async def convert_archive(request: Request) -> Dict[str, Any]:
    """Dump the tables of the archive sent as the raw request body."""
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty request body, expected a .btbk archive")
    try:
        dump = await run_in_threadpool(parse_archive, data)
    except (ArchiveFormatError, CorruptArchiveError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return dump.to_dict()


@app.get("/archives")
def list_archives() -> List[Dict[str, Any]]:
    """Archives available in the configured directory."""
    source = LocalArchiveSource(_get_config().archives_dir)
    return [
        {
            "fileName": info.file_name,
            "path": info.path,
            "sizeInBytes": info.size_in_bytes,
            "sizeLabel": info.size_label,
            "lastModified": info.last_modified,
        }
        for info in source.list_archives()
    ]


@app.post("/archives/{file_name}/import")
async def import_stored_archive(file_name: str) -> Dict[str, Any]:
    """Import an archive from the configured directory."""
    config = _get_config()
    source = LocalArchiveSource(config.archives_dir)
    try:
        data = await run_in_threadpool(source.fetch, file_name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"Archive not found: {file_name}")
    return await _import_or_400(config, data)


@app.get("/summaries")
def list_summaries() -> Dict[str, Any]:
    """Dates that have a daily summary."""
    path = _get_config().store_db_path
    if not path.exists():
        return {"dates": []}

    conn = open_store(path)
    try:
        return {"dates": SummaryRepository(conn).list_dates()}
    finally:
        conn.close()


@app.get("/summaries/{date}")
def get_summary(date: str = Path(..., pattern=DATE_PATTERN)) -> Dict[str, Any]:
    """Daily summary of a date."""
    path = _get_config().store_db_path
    if not path.exists():
        raise HTTPException(status_code=404, detail=f"No summary for {date}")

    conn = open_store(path)
    try:
        summary = SummaryRepository(conn).find_by_date(date)
    finally:
        conn.close()

    if summary is None:
        raise HTTPException(status_code=404, detail=f"No summary for {date}")
    return summary.to_dict()
