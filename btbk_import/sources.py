"""
Byte sources for Baby Tracker archives.

The import pipeline only needs "give me the bytes of this archive". A
source also lists the archives it can serve so a user can pick one.
Only local directories are supported; remote providers would need an
authenticated session.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Protocol

from btbk_import.utils import format_file_size

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".btbk"


@dataclass(frozen=True)
class ArchiveInfo:
    """An archive available from a source."""

    file_name: str
    path: str
    size_in_bytes: int
    size_label: str
    last_modified: str  # ISO-8601, UTC


class ByteSource(Protocol):
    def fetch(self, path: str) -> bytes: ...

    def list_archives(self) -> List[ArchiveInfo]: ...


class LocalArchiveSource:
    """
    Archives stored in a local directory.

    Paths handed to fetch() are resolved relative to the root and must stay
    inside it.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        candidate = (root / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(root):
            raise ValueError(f"Path escapes archive directory: {path!r}")
        return candidate

    def fetch(self, path: str) -> bytes:
        """
        Read an archive.

        Args:
            path: File path relative to the root.

        Returns:
            File contents.

        Raises:
            ValueError: If the path points outside the root.
            FileNotFoundError: If the path is not an existing file.
        """
        target = self._resolve(path)
        if not target.is_file():
            raise FileNotFoundError(f"Archive not found: {path}")
        data = target.read_bytes()
        logger.info(f"Read {format_file_size(len(data))} from {target}")
        return data

    def list_archives(self) -> List[ArchiveInfo]:
        """
        List .btbk files directly under the root, newest first.

        Returns:
            ArchiveInfo per file; empty if the root does not exist.
        """
        if not self.root.is_dir():
            logger.warning(f"Archive directory not found: {self.root}")
            return []

        archives = []
        for entry in self.root.iterdir():
            if not entry.is_file() or entry.suffix.lower() != ARCHIVE_SUFFIX:
                continue
            stat = entry.stat()
            modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            archives.append(
                ArchiveInfo(
                    file_name=entry.name,
                    path=entry.name,
                    size_in_bytes=stat.st_size,
                    size_label=format_file_size(stat.st_size),
                    last_modified=modified.strftime("%Y-%m-%dT%H:%M:%SZ"),
                )
            )

        archives.sort(key=lambda info: (info.last_modified, info.file_name), reverse=True)
        return archives
