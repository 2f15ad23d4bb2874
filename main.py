#!/usr/bin/env python3
"""
Main entry point for BTBK Import.

Provides a command-line interface to convert Baby Tracker archives to JSON
and to import them into the summary store.
"""
from typing import List, Optional
import argparse
import os
import sys
from pathlib import Path

import uvicorn

from btbk_import.config import Config, get_config
from btbk_import.errors import BtbkImportError
from btbk_import.etl.archive import dump_to_json, parse_archive
from btbk_import.etl.pipeline import get_import_status, run_import_file
from btbk_import.logger_config import setup_logging
from btbk_import.sources import LocalArchiveSource
from btbk_import.utils import Colors


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert and import Baby Tracker (.btbk) backups.")
    parser.add_argument(
        "--store",
        default=None,
        help="Path to the summary store (defaults to ~/.btbk_import/summaries.db).",
    )
    parser.add_argument(
        "--timezone",
        default=None,
        help="IANA time zone for local dates (default: Europe/Paris).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="Dump an archive's tables as JSON.")
    convert.add_argument("archive", help="Path to the .btbk file.")
    convert.add_argument(
        "output",
        nargs="?",
        default=None,
        help="Output JSON path (default: <archive name>.json in the current directory).",
    )

    import_cmd = subparsers.add_parser("import", help="Merge an archive into the summary store.")
    import_cmd.add_argument("archive", help="Path to the .btbk file.")

    list_cmd = subparsers.add_parser("list", help="List archives in a directory.")
    list_cmd.add_argument(
        "directory",
        nargs="?",
        default=None,
        help="Directory to scan (default: ./backups or BTBK_IMPORT_ARCHIVES_DIR).",
    )

    subparsers.add_parser("status", help="Show summary store status.")

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000).")
    return parser.parse_args(argv)


def _convert(archive: str, output: Optional[str]) -> int:
    archive_path = Path(archive).resolve()
    output_path = Path(output).resolve() if output else Path.cwd() / f"{archive_path.stem}.json"

    print(f"Reading BTBK archive: {archive_path}")
    try:
        dump = parse_archive(archive_path.read_bytes())
    except (OSError, BtbkImportError) as e:
        print(f"{Colors.FAIL}Cannot convert BTBK file: {e}{Colors.ENDC}", file=sys.stderr)
        return 1

    try:
        output_path.write_text(dump_to_json(dump, indent=2), encoding="utf-8")
    except OSError as e:
        print(f"{Colors.FAIL}Cannot write JSON export: {e}{Colors.ENDC}", file=sys.stderr)
        return 1
    print(f"{Colors.OKGREEN}JSON export written to {output_path}{Colors.ENDC}")
    return 0


def _import(config: Config, archive: str) -> int:
    config.ensure_store_dir()
    result = run_import_file(
        Path(archive),
        config.store_db_path,
        timezone=config.tzinfo,
        max_attempts=config.max_save_attempts,
    )

    print_section("Import Result")
    color = Colors.OKGREEN if result.success else Colors.FAIL
    print(f"{color}{result}{Colors.ENDC}")
    return 0 if result.success else 1


def _list(config: Config, directory: Optional[str]) -> int:
    root = Path(directory) if directory else config.archives_dir
    archives = LocalArchiveSource(root).list_archives()

    print_section(f"Archives in {root}")
    if not archives:
        print(f"{Colors.WARNING}No .btbk files found.{Colors.ENDC}")
        return 0

    for info in archives:
        print(f"  {info.file_name:40s} {info.size_label:>10s}  {info.last_modified}")
    return 0


def _status(config: Config) -> int:
    status = get_import_status(config.store_db_path)

    print_section("Summary Store Status")
    print(f"Store: {config.store_db_path}")
    if not status.get("exists"):
        print(f"{Colors.WARNING}Store does not exist yet. Run an import first.{Colors.ENDC}")
        return 0

    for key, value in status.items():
        print(f"  {key:28s}: {value}")
    return 0


def _serve(config: Config, host: str, port: int) -> int:
    # The API reads its settings from the environment on every request
    os.environ["BTBK_IMPORT_DB_PATH"] = config.store_db_path_str
    os.environ["BTBK_IMPORT_TIMEZONE"] = config.timezone
    uvicorn.run("btbk_import.api:app", host=host, port=port, log_config=None)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)

    setup_logging()

    if args.command == "convert":
        return _convert(args.archive, args.output)

    try:
        config = get_config(timezone=args.timezone, store_db_path=args.store)
    except ValueError as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}", file=sys.stderr)
        return 1

    if args.command == "import":
        return _import(config, args.archive)
    if args.command == "list":
        return _list(config, args.directory)
    if args.command == "serve":
        return _serve(config, args.host, args.port)
    return _status(config)


if __name__ == '__main__':
    sys.exit(main())
