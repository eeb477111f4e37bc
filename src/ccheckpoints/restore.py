"""Writing checkpoint snapshots back to disk."""

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import structlog

from .database import FileSnapshot
from .diff import CheckpointRef

logger = structlog.get_logger()


@dataclass
class RestoreError:
    """A file that could not be restored and why."""

    path: str
    reason: str


@dataclass
class RestoreResult:
    checkpoint: CheckpointRef
    files_restored: int = 0
    total_files: int = 0
    errors: list[RestoreError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["success"] = self.success
        return data


def restore_file(snapshot: FileSnapshot) -> bool:
    """Overwrite one file with its snapshot content.

    Returns False when the snapshot carries no content. Raises OSError on
    write failures.
    """
    if snapshot.content is None:
        return False
    target = Path(snapshot.file_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    # newline="" keeps the captured line endings byte-for-byte
    target.write_text(snapshot.content, encoding="utf-8", newline="")
    return True


def restore_snapshots(
    checkpoint: CheckpointRef, snapshots: Iterable[FileSnapshot]
) -> RestoreResult:
    """Best-effort restore: per-file failures are collected, never raised."""
    result = RestoreResult(checkpoint=checkpoint)
    for snapshot in snapshots:
        if snapshot.is_directory:
            continue
        result.total_files += 1
        try:
            if restore_file(snapshot):
                result.files_restored += 1
                logger.debug("Restored file", path=snapshot.file_path)
        except (OSError, UnicodeEncodeError) as e:
            logger.error("Failed to restore file", path=snapshot.file_path, error=str(e))
            result.errors.append(RestoreError(path=snapshot.file_path, reason=str(e)))

    logger.info(
        "Restored checkpoint",
        checkpoint_id=checkpoint.id,
        files_restored=result.files_restored,
        total_files=result.total_files,
        errors=len(result.errors),
    )
    return result
