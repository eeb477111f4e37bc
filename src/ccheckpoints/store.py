"""Checkpoint store: persistence, queries and lifecycle operations."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession
from sqlalchemy.orm import selectinload

from .database import Checkpoint, Database, FileSnapshot, Session
from .diff import CheckpointRef, DiffResult, build_diff
from .exceptions import CheckpointNotFoundError, NoPriorCheckpointError, PersistenceError
from .restore import RestoreResult, restore_snapshots
from .scanner import ContentScanner, ScanSkip
from .utils import PLACEHOLDER_PROMPT, format_file_size, utc_now_iso

logger = structlog.get_logger()

_BULK_DELETE = {"synchronize_session": False}


class CreationStatus(str, Enum):
    CREATED = "created"
    EMPTY = "empty"  # scan produced no files, nothing persisted
    FAILED = "failed"


@dataclass
class CheckpointCreation:
    """Outcome of creating a checkpoint for a closing session."""

    status: CreationStatus
    checkpoint: Checkpoint | None = None
    skipped: list[ScanSkip] = field(default_factory=list)
    error: str | None = None


@dataclass
class ProjectStats:
    project_name: str
    project_path: str
    session_count: int
    checkpoint_count: int
    total_file_changes: int
    first_session_time: str | None
    last_session_time: str | None


@dataclass
class StatsSummary:
    projects: list[ProjectStats] = field(default_factory=list)
    total_sessions: int = 0
    total_checkpoints: int = 0
    has_active_session: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_checkpoint_message(prompt: str | None, file_count: int, total_size: int) -> str:
    """Display title of a checkpoint: the prompt when one was captured."""
    suffix = f"({file_count} files, {format_file_size(total_size)})"
    if prompt and prompt != PLACEHOLDER_PROMPT:
        return f"{prompt} {suffix}"
    return f"{PLACEHOLDER_PROMPT} {suffix}"


class CheckpointStore:
    """Persists checkpoints and answers queries about them."""

    def __init__(self, database: Database, scanner: ContentScanner) -> None:
        self._db = database
        self.scanner = scanner

    # ==================== Create ====================

    def create_checkpoint(self, session: Session) -> CheckpointCreation:
        """Scan the session's project and persist a checkpoint.

        Never raises: scan and write failures are logged and reported as
        ``CreationStatus.FAILED``.
        """
        try:
            scan = self.scanner.scan(session.project_path)
        except Exception as e:
            logger.exception("Failed to scan project", project=session.project_path)
            return CheckpointCreation(status=CreationStatus.FAILED, error=str(e))

        if not scan.files:
            logger.warning("No files found to checkpoint", project=session.project_path)
            return CheckpointCreation(status=CreationStatus.EMPTY, skipped=scan.skipped)

        file_count = len(scan.files)
        total_size = scan.total_size
        message = build_checkpoint_message(session.last_prompt, file_count, total_size)

        try:
            with self._db.transaction() as db:
                timestamp = self._next_timestamp(db, session.project_path)
                checkpoint = Checkpoint(
                    session_id=session.id,
                    project_path=session.project_path,
                    project_name=session.project_name,
                    message=message,
                    file_count=file_count,
                    total_size=total_size,
                    user_prompt=session.last_prompt,
                    timestamp=timestamp,
                    created_at=timestamp,
                )
                checkpoint.files = [
                    FileSnapshot(
                        file_path=record.absolute_path,
                        relative_path=record.relative_path,
                        content=record.content,
                        content_hash=record.content_hash,
                        size=record.size,
                        modified_time=record.modified_time,
                        extension=record.extension,
                        is_directory=False,
                    )
                    for record in scan.files
                ]
                db.add(checkpoint)

                owner = db.get(Session, session.id)
                if owner is None:
                    raise PersistenceError("create_checkpoint", f"session {session.id} not found")
                owner.total_file_changes += file_count
                owner.updated_at = timestamp
        except Exception as e:
            logger.exception("Failed to create checkpoint", project=session.project_path)
            return CheckpointCreation(
                status=CreationStatus.FAILED,
                skipped=scan.skipped,
                error=str(e),
            )

        logger.info(
            "Checkpoint created",
            checkpoint_id=checkpoint.id,
            message=message,
            file_count=file_count,
            size=format_file_size(total_size),
        )
        return CheckpointCreation(
            status=CreationStatus.CREATED,
            checkpoint=checkpoint,
            skipped=scan.skipped,
        )

    def _next_timestamp(self, db: DbSession, project_path: str) -> str:
        """Current time, nudged past the newest checkpoint so ordering stays total."""
        now = utc_now_iso()
        latest = db.execute(
            select(func.max(Checkpoint.timestamp)).where(Checkpoint.project_path == project_path)
        ).scalar_one_or_none()
        if latest is not None and now <= latest:
            now = (datetime.fromisoformat(latest) + timedelta(microseconds=1)).isoformat(
                timespec="microseconds"
            )
        return now

    # ==================== Queries ====================

    def list_checkpoints(self, project_path: str) -> list[Checkpoint]:
        """Checkpoints of a project, newest first."""
        with self._db.session() as db:
            result = db.execute(
                select(Checkpoint)
                .where(Checkpoint.project_path == project_path)
                .order_by(Checkpoint.timestamp.desc())
            )
            checkpoints = list(result.scalars().all())
        logger.debug("Loaded checkpoints", project=project_path, count=len(checkpoints))
        return checkpoints

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        """A checkpoint with its file snapshots loaded, or None."""
        with self._db.session() as db:
            return db.execute(
                select(Checkpoint)
                .where(Checkpoint.id == checkpoint_id)
                .options(selectinload(Checkpoint.files))
            ).scalar_one_or_none()

    def require_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        try:
            checkpoint = self.get_checkpoint(checkpoint_id)
        except SQLAlchemyError as e:
            raise PersistenceError("get_checkpoint", str(e)) from e
        if checkpoint is None:
            raise CheckpointNotFoundError(checkpoint_id)
        return checkpoint

    def previous_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        """The next-older checkpoint of the same project, or None for the oldest."""
        with self._db.session() as db:
            current = db.get(Checkpoint, checkpoint_id)
            if current is None:
                raise CheckpointNotFoundError(checkpoint_id)
            return db.execute(
                select(Checkpoint)
                .where(
                    Checkpoint.project_path == current.project_path,
                    Checkpoint.timestamp < current.timestamp,
                )
                .order_by(Checkpoint.timestamp.desc())
                .limit(1)
            ).scalar_one_or_none()

    def project_stats(self) -> StatsSummary:
        """Per-project aggregates plus global totals."""
        with self._db.session() as db:
            session_rows = db.execute(
                select(
                    Session.project_path,
                    func.max(Session.project_name),
                    func.count(Session.id),
                    func.coalesce(func.sum(Session.total_file_changes), 0),
                    func.min(Session.start_time),
                    func.max(Session.start_time),
                ).group_by(Session.project_path)
            ).all()
            checkpoint_counts = dict(
                db.execute(
                    select(Checkpoint.project_path, func.count(Checkpoint.id)).group_by(
                        Checkpoint.project_path
                    )
                ).all()
            )
            total_sessions = db.execute(select(func.count(Session.id))).scalar_one()
            total_checkpoints = db.execute(select(func.count(Checkpoint.id))).scalar_one()
            active_count = db.execute(
                select(func.count(Session.id)).where(Session.end_time.is_(None))
            ).scalar_one()

        projects = [
            ProjectStats(
                project_name=name,
                project_path=path,
                session_count=session_count,
                checkpoint_count=checkpoint_counts.get(path, 0),
                total_file_changes=file_changes,
                first_session_time=first,
                last_session_time=last,
            )
            for path, name, session_count, file_changes, first, last in session_rows
        ]
        projects.sort(key=lambda p: p.last_session_time or "", reverse=True)

        logger.debug("Project stats", projects=len(projects), sessions=total_sessions)
        return StatsSummary(
            projects=projects,
            total_sessions=total_sessions,
            total_checkpoints=total_checkpoints,
            has_active_session=active_count > 0,
        )

    # ==================== Diff & restore ====================

    def diff_checkpoints(self, current_id: str, previous_id: str) -> DiffResult:
        """Compare two checkpoints; raises CheckpointNotFoundError for unknown ids."""
        current = self.require_checkpoint(current_id)
        previous = current if previous_id == current_id else self.require_checkpoint(previous_id)
        result = build_diff(current, previous)
        logger.info(
            "Diffed checkpoints",
            current_id=current_id,
            previous_id=previous_id,
            added=result.summary.added,
            modified=result.summary.modified,
            deleted=result.summary.deleted,
        )
        return result

    def diff_with_previous(self, checkpoint_id: str) -> DiffResult:
        """Compare a checkpoint with its predecessor in the same project."""
        previous = self.previous_checkpoint(checkpoint_id)
        if previous is None:
            raise NoPriorCheckpointError(checkpoint_id)
        return self.diff_checkpoints(checkpoint_id, previous.id)

    def restore_checkpoint(self, checkpoint_id: str) -> RestoreResult:
        """Write every captured file back to its absolute path."""
        checkpoint = self.require_checkpoint(checkpoint_id)
        return restore_snapshots(CheckpointRef.from_checkpoint(checkpoint), checkpoint.files)

    # ==================== Deletion ====================

    def delete_checkpoint(self, checkpoint_id: str) -> bool:
        """Delete one checkpoint and its snapshots. Returns False if it did not exist."""
        with self._db.transaction() as db:
            checkpoint = db.get(Checkpoint, checkpoint_id)
            if checkpoint is None:
                return False
            db.delete(checkpoint)
        logger.info("Deleted checkpoint", checkpoint_id=checkpoint_id)
        return True

    def delete_project_checkpoints(self, project_path: str) -> dict[str, int]:
        """Delete every checkpoint, snapshot and session of one project."""
        with self._db.transaction() as db:
            project_session_ids = select(Session.id).where(Session.project_path == project_path)
            project_checkpoint_ids = select(Checkpoint.id).where(
                (Checkpoint.project_path == project_path)
                | Checkpoint.session_id.in_(project_session_ids)
            )
            snapshots = db.execute(
                delete(FileSnapshot).where(FileSnapshot.checkpoint_id.in_(project_checkpoint_ids)),
                execution_options=_BULK_DELETE,
            )
            checkpoints = db.execute(
                delete(Checkpoint).where(
                    (Checkpoint.project_path == project_path)
                    | Checkpoint.session_id.in_(project_session_ids)
                ),
                execution_options=_BULK_DELETE,
            )
            sessions = db.execute(
                delete(Session).where(Session.project_path == project_path),
                execution_options=_BULK_DELETE,
            )

        result = {
            "deleted_checkpoints": checkpoints.rowcount,
            "deleted_sessions": sessions.rowcount,
            "deleted_file_snapshots": snapshots.rowcount,
        }
        logger.info("Deleted project checkpoints", project=project_path, **result)
        return result

    def clear_all(self) -> dict[str, int]:
        """Delete all sessions, checkpoints and snapshots of every project."""
        with self._db.transaction() as db:
            project_count = db.execute(
                select(func.count(func.distinct(Session.project_path)))
            ).scalar_one()
            snapshots = db.execute(delete(FileSnapshot), execution_options=_BULK_DELETE)
            checkpoints = db.execute(delete(Checkpoint), execution_options=_BULK_DELETE)
            sessions = db.execute(delete(Session), execution_options=_BULK_DELETE)

        result = {
            "deleted_checkpoints": checkpoints.rowcount,
            "deleted_sessions": sessions.rowcount,
            "deleted_file_snapshots": snapshots.rowcount,
            "project_count": project_count,
        }
        logger.warning("Cleared all checkpoint data", **result)
        return result
