"""Utility helpers."""

from .formatting import PLACEHOLDER_PROMPT, format_file_size, utc_now_iso

__all__ = ["PLACEHOLDER_PROMPT", "format_file_size", "utc_now_iso"]
