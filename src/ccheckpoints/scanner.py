"""Project file scanning with gitignore-aware filtering.

The scanner walks a project directory top-down and captures every eligible
text file in memory:

1. Ignore rules:
   - DEFAULT_IGNORE_PATTERNS (version control, dependency, build and cache
     output, log files) plus any configured extra patterns, matched relative
     to the project root.
   - Every .gitignore found while walking, matched relative to the directory
     that contains it. Negation lines (!pattern) are not supported and are
     dropped.
   - Hidden files and directories (dot-prefixed) are never scanned.

2. Eligibility:
   - Regular files only; symbolic links are not followed.
   - Files above the size cap are skipped with a warning.
   - Files that do not decode as UTF-8 are treated as binary and skipped.

3. Limits:
   - At most ``max_files`` candidates are processed, in traversal order.
   - Files are read in sequential batches; reads within a batch share a
     thread pool.
"""

import hashlib
import os
import stat
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pathspec
import structlog

from .config import DEFAULT_MAX_FILE_SIZE, DEFAULT_MAX_FILES
from .utils import format_file_size

logger = structlog.get_logger()

DEFAULT_IGNORE_PATTERNS = [
    ".git/",
    "node_modules/",
    ".DS_Store",
    "*.log",
    "dist/",
    "build/",
    ".next/",
    "coverage/",
    ".nyc_output/",
    ".cache/",
    "tmp/",
    "temp/",
    "__pycache__/",
    ".venv/",
    ".pytest_cache/",
]


@dataclass
class FileRecord:
    """One scanned file, held in memory."""

    absolute_path: str
    relative_path: str
    content: str
    content_hash: str
    size: int
    modified_time: str
    extension: str


@dataclass
class ScanSkip:
    """A file left out of a scan and why."""

    path: str
    reason: str


@dataclass
class ScanResult:
    """Result of scanning a project."""

    files: list[FileRecord] = field(default_factory=list)
    skipped: list[ScanSkip] = field(default_factory=list)
    truncated: bool = False

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)


def load_gitignore_patterns(gitignore_path: Path) -> list[str]:
    """Read the usable patterns of one .gitignore file.

    Comments, blank lines and negation patterns are dropped.
    """
    patterns: list[str] = []
    for raw_line in gitignore_path.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            # Negation is unsupported
            continue
        patterns.append(line)
    return patterns


def compute_content_hash(data: bytes) -> str:
    """Stable SHA-256 fingerprint of file content."""
    return hashlib.sha256(data).hexdigest()


class IgnoreRules:
    """Built-in deny patterns plus .gitignore files, each scoped to its directory."""

    def __init__(self, project_root: Path, extra_patterns: list[str] | None = None) -> None:
        self.project_root = project_root
        patterns = [*DEFAULT_IGNORE_PATTERNS, *(extra_patterns or [])]
        defaults = pathspec.GitIgnoreSpec.from_lines(patterns)
        self._specs: list[tuple[str, pathspec.GitIgnoreSpec]] = [("", defaults)]

    def add_gitignore(self, directory: Path) -> None:
        """Load the .gitignore in ``directory`` if there is one."""
        gitignore = directory / ".gitignore"
        if not gitignore.is_file():
            return
        try:
            patterns = load_gitignore_patterns(gitignore)
        except OSError as e:
            logger.warning("Failed to read .gitignore", path=str(gitignore), error=str(e))
            return
        if not patterns:
            return

        rel_dir = directory.relative_to(self.project_root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir
        self._specs.append((prefix, pathspec.GitIgnoreSpec.from_lines(patterns)))
        logger.debug(
            "Loaded .gitignore",
            directory=prefix or "root",
            pattern_count=len(patterns),
        )

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check a root-relative POSIX path against every applicable rule set."""
        for prefix, spec in self._specs:
            if prefix:
                if not relative_path.startswith(prefix + "/"):
                    continue
                candidate = relative_path[len(prefix) + 1 :]
            else:
                candidate = relative_path
            if is_dir:
                candidate += "/"
            if spec.match_file(candidate):
                return True
        return False


class ContentScanner:
    """Reads every eligible file of a project into memory."""

    def __init__(
        self,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_files: int = DEFAULT_MAX_FILES,
        batch_size: int = 50,
        workers: int = 8,
        extra_ignore_patterns: list[str] | None = None,
    ) -> None:
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.batch_size = batch_size
        self.workers = workers
        self.extra_ignore_patterns = list(extra_ignore_patterns or [])

    def scan(self, project_root: str | Path) -> ScanResult:
        """Scan a project directory.

        Per-file problems are collected in ``ScanResult.skipped`` and never
        abort the scan.
        """
        root = Path(project_root).resolve()
        result = ScanResult()
        if not root.is_dir():
            logger.warning("Project path is not a directory", path=str(root))
            return result

        logger.info("Scanning project files", path=str(root))
        started = datetime.now(UTC)

        candidates: list[Path] = []
        for path in self._walk(root, result):
            if len(candidates) >= self.max_files:
                result.truncated = True
                break
            candidates.append(path)

        if result.truncated:
            logger.warning(
                "Too many files found, check your .gitignore",
                path=str(root),
                max_files=self.max_files,
            )

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            for start in range(0, len(candidates), self.batch_size):
                batch = candidates[start : start + self.batch_size]
                for outcome in executor.map(lambda p: self._read_file(root, p), batch):
                    if isinstance(outcome, FileRecord):
                        result.files.append(outcome)
                    else:
                        result.skipped.append(outcome)
                if len(candidates) > 100:
                    logger.debug(
                        "Scan progress",
                        processed=start + len(batch),
                        total=len(candidates),
                    )

        elapsed_ms = int((datetime.now(UTC) - started).total_seconds() * 1000)
        logger.info(
            "Scanned project files",
            path=str(root),
            file_count=len(result.files),
            skipped=len(result.skipped),
            elapsed_ms=elapsed_ms,
        )
        return result

    def _walk(self, root: Path, result: ScanResult) -> Iterator[Path]:
        """Yield candidate files in deterministic top-down order."""
        rules = IgnoreRules(root, self.extra_ignore_patterns)

        def on_error(error: OSError) -> None:
            logger.warning("Failed to list directory", path=error.filename, error=str(error))
            result.skipped.append(ScanSkip(path=str(error.filename), reason=str(error)))

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=False):
            directory = Path(dirpath)
            rules.add_gitignore(directory)
            rel_dir = directory.relative_to(root).as_posix()

            def rel(name: str, base: str = rel_dir) -> str:
                return name if base == "." else f"{base}/{name}"

            dirnames[:] = sorted(
                d
                for d in dirnames
                if not d.startswith(".") and not rules.is_ignored(rel(d), is_dir=True)
            )
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                if rules.is_ignored(rel(name)):
                    continue
                yield directory / name

    def _read_file(self, root: Path, path: Path) -> FileRecord | ScanSkip:
        relative_path = path.relative_to(root).as_posix()
        try:
            st = path.lstat()
            if not stat.S_ISREG(st.st_mode):
                return ScanSkip(path=str(path), reason="not a regular file")

            if st.st_size > self.max_file_size:
                logger.warning(
                    "Skipping large file",
                    path=relative_path,
                    size=format_file_size(st.st_size),
                )
                return ScanSkip(path=str(path), reason="too large")

            data = path.read_bytes()
            modified_time = datetime.fromtimestamp(st.st_mtime, UTC).isoformat()
        except (OSError, OverflowError, ValueError) as e:
            logger.warning("Skipping unreadable file", path=relative_path, error=str(e))
            return ScanSkip(path=str(path), reason=str(e))

        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            return ScanSkip(path=str(path), reason="binary")

        return FileRecord(
            absolute_path=str(path),
            relative_path=relative_path,
            content=content,
            content_hash=compute_content_hash(data),
            size=len(data),
            modified_time=modified_time,
            extension=path.suffix,
        )


def scan_project(project_root: str | Path, **options: Any) -> ScanResult:
    """Scan a project with a one-off scanner; ``options`` go to ContentScanner."""
    return ContentScanner(**options).scan(project_root)
