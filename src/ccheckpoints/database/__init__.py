"""Persistence for sessions, checkpoints and file snapshots."""

from .connection import Database
from .models import Base, Checkpoint, FileSnapshot, Session

__all__ = [
    "Base",
    "Checkpoint",
    "Database",
    "FileSnapshot",
    "Session",
]
