"""
Utility functions and classes for BTBK Import.
"""

from datetime import datetime, timezone


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


_SIZE_UNITS = ["bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size: int) -> str:
    """
    Format a byte count with a binary unit.

    Args:
        size: Size in bytes.

    Returns:
        Formatted string (e.g., "0 bytes", "512 bytes", "1.5 MB").
    """
    if size <= 0:
        return "0 bytes"

    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        value /= 1024
        exponent += 1

    if exponent == 0:
        return f"{size} bytes"
    return f"{value:.1f} {_SIZE_UNITS[exponent]}"


def now_iso() -> str:
    """Get current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
