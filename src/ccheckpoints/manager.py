"""Checkpoint manager: the entry point for editor events and checkpoint operations."""

import threading
from typing import Any

import structlog

from .config import CheckpointsConfig
from .database import Checkpoint, Database, Session
from .diff import DiffResult
from .hooks import (
    EVENT_NOTIFICATION,
    EVENT_PROMPT_SUBMIT,
    EVENT_STOP,
    extract_project,
    extract_prompt,
)
from .restore import RestoreResult
from .scanner import ContentScanner
from .sessions import SessionTracker
from .store import CheckpointStore, CreationStatus, ProjectStats, StatsSummary

logger = structlog.get_logger()


class CheckpointManager:
    """Tracks work sessions and turns each finished session into a checkpoint.

    A prompt submission opens (or refreshes) the project's session; a stop
    event scans the project, stores a checkpoint and closes the session.
    All methods are synchronous and safe to call from worker threads.
    Lifecycle events are handled one at a time.
    """

    def __init__(self, config: CheckpointsConfig | None = None) -> None:
        """Initialize checkpoint manager.

        Args:
            config: Settings for storage and scanning. Defaults are loaded
                from the environment when omitted.
        """
        self.config = config or CheckpointsConfig()
        self.database = Database(self.config.database_path)
        self.database.init_schema()
        self.scanner = ContentScanner(
            max_file_size=self.config.max_file_size,
            max_files=self.config.max_files,
            batch_size=self.config.scan_batch_size,
            workers=self.config.scan_workers,
            extra_ignore_patterns=self.config.extra_ignore_patterns,
        )
        self.sessions = SessionTracker(self.database)
        self.store = CheckpointStore(self.database, self.scanner)
        self._lifecycle_lock = threading.RLock()

    def close(self) -> None:
        self.database.close()

    # ==================== Lifecycle ====================

    def open_or_refresh_session(self, project_path: str, project_name: str, prompt: str) -> Session:
        with self._lifecycle_lock:
            return self.sessions.open_or_refresh(project_path, project_name, prompt)

    def close_session_and_checkpoint(self, project_path: str) -> Checkpoint | None:
        """Checkpoint the project's open session, then close it.

        Returns None when there is no open session, when the project has no
        eligible files, or when the checkpoint could not be written. The
        session is closed in every case where one was open.
        """
        with self._lifecycle_lock:
            # A concurrent stop may have closed the session while we waited.
            session = self.sessions.active_session(project_path)
            if session is None:
                logger.warning("No active session found", project=project_path)
                return None

            creation = self.store.create_checkpoint(session)
            self.sessions.close(session)

        if creation.status is CreationStatus.EMPTY:
            logger.info("Session ended without checkpoint, no files", session_id=session.id)
        elif creation.status is CreationStatus.FAILED:
            logger.error(
                "Session ended without checkpoint, creation failed",
                session_id=session.id,
                error=creation.error,
            )
        if creation.skipped:
            logger.debug("Files skipped during scan", count=len(creation.skipped))
        return creation.checkpoint

    def handle_event(self, event_type: str, data: dict[str, Any] | None = None) -> Any:
        """Dispatch an editor lifecycle event.

        Returns the session for prompt submissions, the new checkpoint (or
        None) for stop events and None otherwise.
        """
        data = data or {}
        if event_type == EVENT_PROMPT_SUBMIT:
            project_path, project_name = extract_project(data)
            prompt = extract_prompt(data)
            logger.info("User prompt submitted, tracking session", project=project_path)
            return self.open_or_refresh_session(project_path, project_name, prompt)

        if event_type == EVENT_STOP:
            project_path, _ = extract_project(data)
            logger.info("Stop event received, creating checkpoint", project=project_path)
            return self.close_session_and_checkpoint(project_path)

        if event_type == EVENT_NOTIFICATION:
            logger.debug("Notification received", data=data)
            return None

        logger.warning("Unknown event type", event_type=event_type)
        return None

    def current_session(self, project_path: str | None = None) -> Session | None:
        return self.sessions.current_session(project_path)

    # ==================== Queries ====================

    def project_stats(self) -> StatsSummary:
        return self.store.project_stats()

    def list_project_stats(self) -> list[ProjectStats]:
        return self.store.project_stats().projects

    def list_checkpoints(self, project_path: str) -> list[Checkpoint]:
        return self.store.list_checkpoints(project_path)

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self.store.get_checkpoint(checkpoint_id)

    def previous_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self.store.previous_checkpoint(checkpoint_id)

    def diff_checkpoints(self, current_id: str, previous_id: str) -> DiffResult:
        return self.store.diff_checkpoints(current_id, previous_id)

    def diff_with_previous(self, checkpoint_id: str) -> DiffResult:
        return self.store.diff_with_previous(checkpoint_id)

    def restore_checkpoint(self, checkpoint_id: str) -> RestoreResult:
        return self.store.restore_checkpoint(checkpoint_id)

    # ==================== Deletion ====================

    def delete_checkpoint(self, checkpoint_id: str) -> bool:
        return self.store.delete_checkpoint(checkpoint_id)

    def delete_project_checkpoints(self, project_path: str) -> dict[str, int]:
        with self._lifecycle_lock:
            result = self.store.delete_project_checkpoints(project_path)
            self.sessions.invalidate(project_path)
        return result

    def clear_all(self) -> dict[str, int]:
        with self._lifecycle_lock:
            result = self.store.clear_all()
            self.sessions.invalidate()
        return result
