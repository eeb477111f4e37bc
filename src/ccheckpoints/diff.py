"""Checkpoint comparison with a positional, line-by-line diff."""

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from .database import Checkpoint, FileSnapshot

ChangeType = Literal["added", "modified", "deleted"]

NO_CHANGES_TEXT = "No content changes detected"


@dataclass
class FileChange:
    """A single file difference between two checkpoints."""

    type: ChangeType
    file: str  # relative path, falls back to the absolute path
    path: str  # absolute path
    diff: str | None = None
    size_before: int | None = None
    size_after: int | None = None


@dataclass
class DiffSummary:
    added: int = 0
    modified: int = 0
    deleted: int = 0


@dataclass
class CheckpointRef:
    """Identifying fields of a checkpoint inside a diff result."""

    id: str
    message: str
    timestamp: str

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> "CheckpointRef":
        return cls(id=checkpoint.id, message=checkpoint.message, timestamp=checkpoint.timestamp)


@dataclass
class DiffResult:
    current: CheckpointRef
    previous: CheckpointRef
    changes: list[FileChange] = field(default_factory=list)
    summary: DiffSummary = field(default_factory=DiffSummary)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def generate_positional_diff(old_content: str, new_content: str) -> str:
    """Build a unified-style diff by comparing lines at the same index.

    There is a single synthetic hunk header with the old and new line counts.
    Lines are not realigned after an insertion or deletion, so one inserted
    line near the top shows every later line as modified.
    """
    old_lines = old_content.split("\n")
    new_lines = new_content.split("\n")

    out = [f"@@ -1,{len(old_lines)} +1,{len(new_lines)} @@"]
    for i in range(max(len(old_lines), len(new_lines))):
        if i >= len(old_lines):
            out.append(f"+{new_lines[i]}")
        elif i >= len(new_lines):
            out.append(f"-{old_lines[i]}")
        elif old_lines[i] != new_lines[i]:
            out.append(f"-{old_lines[i]}")
            out.append(f"+{new_lines[i]}")
        else:
            out.append(f" {old_lines[i]}")

    text = ("\n".join(out) + "\n").strip()
    return text or NO_CHANGES_TEXT


def diff_snapshots(
    current_files: Iterable[FileSnapshot],
    previous_files: Iterable[FileSnapshot],
) -> list[FileChange]:
    """Classify every path as added, deleted or modified; unchanged paths are omitted."""
    current_map = {f.file_path: f for f in current_files if not f.is_directory}
    previous_map = {f.file_path: f for f in previous_files if not f.is_directory}

    # Current paths first, then paths only present before
    all_paths = list(current_map)
    all_paths.extend(p for p in previous_map if p not in current_map)

    changes: list[FileChange] = []
    for path in all_paths:
        current = current_map.get(path)
        previous = previous_map.get(path)

        if current is not None and previous is None:
            changes.append(
                FileChange(
                    type="added",
                    file=current.relative_path or path,
                    path=path,
                    size_after=current.size,
                )
            )
        elif current is None and previous is not None:
            changes.append(
                FileChange(
                    type="deleted",
                    file=previous.relative_path or path,
                    path=path,
                    size_before=previous.size,
                )
            )
        elif current is not None and previous is not None:
            if current.content == previous.content:
                continue
            changes.append(
                FileChange(
                    type="modified",
                    file=current.relative_path or path,
                    path=path,
                    diff=generate_positional_diff(previous.content or "", current.content or ""),
                    size_before=previous.size,
                    size_after=current.size,
                )
            )
    return changes


def summarize(changes: Iterable[FileChange]) -> DiffSummary:
    summary = DiffSummary()
    for change in changes:
        setattr(summary, change.type, getattr(summary, change.type) + 1)
    return summary


def build_diff(current: Checkpoint, previous: Checkpoint) -> DiffResult:
    """Diff two checkpoints whose ``files`` are loaded."""
    changes = diff_snapshots(current.files, previous.files)
    return DiffResult(
        current=CheckpointRef.from_checkpoint(current),
        previous=CheckpointRef.from_checkpoint(previous),
        changes=changes,
        summary=summarize(changes),
    )
