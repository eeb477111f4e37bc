"""Work session tracking, one active session per project path."""

import threading

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session as DbSession

from .database import Database, Session
from .utils import utc_now_iso

logger = structlog.get_logger()


class SessionTracker:
    """Opens, refreshes and closes work sessions.

    The tracker keeps a ``project_path -> session id`` cache over the
    persisted "active session per project" query. A cached entry is only
    trusted after the row is re-read and found still open; otherwise it is
    dropped and storage is queried again. Delete and clear operations call
    ``invalidate()``.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._active: dict[str, str] = {}
        self._cache_lock = threading.Lock()

    def _cached_id(self, project_path: str) -> str | None:
        with self._cache_lock:
            return self._active.get(project_path)

    def _remember(self, project_path: str, session_id: str) -> None:
        with self._cache_lock:
            self._active[project_path] = session_id

    def invalidate(self, project_path: str | None = None) -> None:
        """Drop one cached entry, or all of them."""
        with self._cache_lock:
            if project_path is None:
                self._active.clear()
            else:
                self._active.pop(project_path, None)

    def _find_active(self, db: DbSession, project_path: str) -> Session | None:
        cached_id = self._cached_id(project_path)
        if cached_id is not None:
            session = db.get(Session, cached_id)
            if session is not None and session.end_time is None:
                return session
            self.invalidate(project_path)

        session = db.execute(
            select(Session)
            .where(Session.project_path == project_path, Session.end_time.is_(None))
            .order_by(Session.start_time.desc())
            .limit(1)
        ).scalar_one_or_none()
        if session is not None:
            self._remember(project_path, session.id)
        return session

    def active_session(self, project_path: str) -> Session | None:
        """Get the open session for a project, if any."""
        with self._db.session() as db:
            return self._find_active(db, project_path)

    def current_session(self, project_path: str | None = None) -> Session | None:
        """Get the open session of one project, or the most recently started one."""
        if project_path is not None:
            return self.active_session(project_path)
        with self._db.session() as db:
            return db.execute(
                select(Session)
                .where(Session.end_time.is_(None))
                .order_by(Session.start_time.desc())
                .limit(1)
            ).scalar_one_or_none()

    def open_or_refresh(self, project_path: str, project_name: str, prompt: str) -> Session:
        """Create a session for the project, or refresh the prompt of the open one."""
        now = utc_now_iso()
        with self._db.transaction() as db:
            session = self._find_active(db, project_path)
            if session is None:
                session = Session(
                    project_path=project_path,
                    project_name=project_name,
                    total_file_changes=0,
                    start_time=now,
                    last_prompt=prompt,
                    last_prompt_time=now,
                    created_at=now,
                    updated_at=now,
                )
                db.add(session)
                db.flush()
                created = True
            else:
                session.last_prompt = prompt
                session.last_prompt_time = now
                session.updated_at = now
                created = False

        self._remember(project_path, session.id)
        if created:
            logger.info("Created new session", session_id=session.id, project=project_path)
        else:
            logger.debug("Refreshed session prompt", session_id=session.id, project=project_path)
        return session

    def close(self, session: Session) -> Session:
        """Mark a session as ended and drop it from the cache."""
        now = utc_now_iso()
        with self._db.transaction() as db:
            row = db.get(Session, session.id)
            if row is not None:
                row.end_time = now
                row.updated_at = now
                session = row

        self.invalidate(session.project_path)
        logger.info("Ended session", session_id=session.id, project=session.project_path)
        return session
