"""
Configuration module for BTBK Import.

Handles configuration settings including the summary store location and the
time zone used to turn archive timestamps into calendar dates.

Settings:
    - timezone: IANA zone name used for local dates and sleep classification
    - store_db_path: SQLite file holding daily summaries and the import ledger
    - archives_dir: Directory scanned for .btbk backups

Environment Variables:
    BTBK_IMPORT_TIMEZONE: Overrides the default zone (Europe/Paris).
    BTBK_IMPORT_DB_PATH: Overrides the default store path.
    BTBK_IMPORT_ARCHIVES_DIR: Overrides the default archives directory.
"""

import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Config:
    """Configuration class for BTBK Import."""

    # Baby Tracker backups are produced on devices set to this zone by default
    DEFAULT_TIMEZONE = "Europe/Paris"

    # Default path for the summary store
    DEFAULT_STORE_PATH = Path.home() / ".btbk_import"
    DEFAULT_STORE_DB_NAME = "summaries.db"

    DEFAULT_ARCHIVES_DIR = Path("backups")

    # Attempts at saving a daily summary before giving up on version conflicts
    DEFAULT_MAX_SAVE_ATTEMPTS = 3

    def __init__(
        self,
        timezone: Optional[str] = None,
        store_db_path: Optional[str] = None,
        archives_dir: Optional[str] = None,
        max_save_attempts: int = DEFAULT_MAX_SAVE_ATTEMPTS,
    ):
        """
        Initialize configuration.

        Args:
            timezone: Optional IANA zone name. Falls back to BTBK_IMPORT_TIMEZONE,
                    then to Europe/Paris.
            store_db_path: Optional path to the summary store. Falls back to
                    BTBK_IMPORT_DB_PATH, then to ~/.btbk_import/summaries.db
            archives_dir: Optional directory holding .btbk files.
            max_save_attempts: How many times a daily summary save is retried
                    after a concurrent modification.

        Raises:
            ValueError: If the time zone is unknown or max_save_attempts < 1.
        """
        self._timezone = timezone or os.getenv("BTBK_IMPORT_TIMEZONE") or self.DEFAULT_TIMEZONE
        try:
            self._tzinfo = ZoneInfo(self._timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {self._timezone!r}") from e

        env_store = os.getenv("BTBK_IMPORT_DB_PATH")
        if store_db_path:
            self._store_db_path = Path(store_db_path)
        elif env_store:
            self._store_db_path = Path(env_store)
        else:
            self._store_db_path = self.DEFAULT_STORE_PATH / self.DEFAULT_STORE_DB_NAME

        env_archives = os.getenv("BTBK_IMPORT_ARCHIVES_DIR")
        if archives_dir:
            self._archives_dir = Path(archives_dir)
        elif env_archives:
            self._archives_dir = Path(env_archives)
        else:
            self._archives_dir = Path.cwd() / self.DEFAULT_ARCHIVES_DIR

        if max_save_attempts < 1:
            raise ValueError("max_save_attempts must be at least 1")
        self._max_save_attempts = max_save_attempts

    @property
    def timezone(self) -> str:
        """Get the configured IANA zone name."""
        return self._timezone

    @property
    def tzinfo(self) -> ZoneInfo:
        """Get the configured zone as a tzinfo object."""
        return self._tzinfo

    @property
    def store_db_path(self) -> Path:
        """Get the summary store path."""
        return self._store_db_path

    @property
    def store_db_path_str(self) -> str:
        """Get the summary store path as a string."""
        return str(self._store_db_path)

    @property
    def archives_dir(self) -> Path:
        """Get the directory scanned for archives."""
        return self._archives_dir

    @property
    def max_save_attempts(self) -> int:
        return self._max_save_attempts

    def ensure_store_dir(self) -> None:
        """
        Ensure the summary store parent directory exists.

        Creates the directory if it doesn't exist.
        """
        self._store_db_path.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(timezone: Optional[str] = None, store_db_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Passing any argument rebuilds the instance.

    Args:
        timezone: Optional IANA zone name.
        store_db_path: Optional path to the summary store.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or timezone is not None or store_db_path is not None:
        _config = Config(timezone=timezone, store_db_path=store_db_path)
    return _config


def set_config(config: Optional[Config]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use, or None to reset.
    """
    global _config
    _config = config
