"""Formatting helpers shared by the store, the hooks and the CLI."""

from datetime import UTC, datetime

# Stands in for the prompt when a hook payload carries no usable text.
PLACEHOLDER_PROMPT = "User prompt submitted"

_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_file_size(num_bytes: int) -> str:
    """Format a byte count with binary units and one decimal place.

    Example: 1536 -> "1.5 KB"
    """
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {_SIZE_UNITS[unit_index]}"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat(timespec="microseconds")
