"""Database engine and session management for the checkpoint store."""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

logger = structlog.get_logger()


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Single embedded SQLite database with serialized writes.

    All writes go through ``transaction()``, which holds one process-wide lock
    so that a checkpoint and its snapshots are never partially visible. Reads
    use ``session()`` and rely on SQLite's own consistency. Several processes
    opening the same file at once is not supported.
    """

    def __init__(self, database_path: str | Path, echo: bool = False) -> None:
        self.database_path = Path(database_path)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine: Engine = create_engine(
            f"sqlite:///{self.database_path}",
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(
            self.engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
        self._write_lock = threading.RLock()

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        logger.info("Initializing checkpoint database", path=str(self.database_path))
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        """Dispose of the connection pool."""
        logger.debug("Closing checkpoint database", path=str(self.database_path))
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Context manager for a read session."""
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Context manager for an all-or-nothing write, serialized across threads."""
        with self._write_lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
