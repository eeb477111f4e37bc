"""Session, checkpoint and file snapshot models."""

from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""


class Session(Base):
    """One work session for a project, opened by a prompt and closed by a stop event."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    project_path: Mapped[str] = mapped_column(Text, nullable=False)
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    total_file_changes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    start_time: Mapped[str] = mapped_column(String(40), nullable=False)
    end_time: Mapped[str | None] = mapped_column(String(40))  # NULL while active
    last_prompt: Mapped[str | None] = mapped_column(Text)
    last_prompt_time: Mapped[str | None] = mapped_column(String(40))
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)
    updated_at: Mapped[str] = mapped_column(String(40), nullable=False)

    checkpoints: Mapped[list["Checkpoint"]] = relationship(
        "Checkpoint",
        back_populates="session",
    )

    __table_args__ = (Index("idx_sessions_project", "project_path"),)

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_path": self.project_path,
            "project_name": self.project_name,
            "total_file_changes": self.total_file_changes,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "last_prompt": self.last_prompt,
            "last_prompt_time": self.last_prompt_time,
            "is_active": self.is_active,
        }


class Checkpoint(Base):
    """Full snapshot of a project's tracked files taken when a session closes."""

    __tablename__ = "checkpoints"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    # Not cascading: sessions are only removed by project/global clear
    session_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sessions.id"),
        nullable=False,
    )
    project_path: Mapped[str] = mapped_column(Text, nullable=False)
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)  # display only
    file_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    user_prompt: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False)
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)

    session: Mapped["Session"] = relationship("Session", back_populates="checkpoints")
    files: Mapped[list["FileSnapshot"]] = relationship(
        "FileSnapshot",
        back_populates="checkpoint",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="FileSnapshot.relative_path",
    )

    __table_args__ = (
        Index("idx_checkpoints_project", "project_path"),
        Index("idx_checkpoints_session", "session_id"),
        Index("idx_checkpoints_timestamp", "timestamp"),
    )

    def to_dict(self, include_files: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "session_id": self.session_id,
            "project_path": self.project_path,
            "project_name": self.project_name,
            "message": self.message,
            "file_count": self.file_count,
            "total_size": self.total_size,
            "user_prompt": self.user_prompt,
            "timestamp": self.timestamp,
        }
        if include_files:
            data["files"] = [f.to_dict() for f in self.files]
        return data


class FileSnapshot(Base):
    """Captured content of one file within a checkpoint."""

    __tablename__ = "file_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    checkpoint_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("checkpoints.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_path: Mapped[str] = mapped_column(Text, nullable=False)  # absolute
    relative_path: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str | None] = mapped_column(String(64))  # sha256, not used for dedup
    size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    modified_time: Mapped[str | None] = mapped_column(String(40))
    extension: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    is_directory: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    checkpoint: Mapped["Checkpoint"] = relationship("Checkpoint", back_populates="files")

    __table_args__ = (Index("idx_file_snapshots_checkpoint", "checkpoint_id"),)

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_path": self.file_path,
            "relative_path": self.relative_path,
            "content": self.content,
            "content_hash": self.content_hash,
            "size": self.size,
            "modified_time": self.modified_time,
            "extension": self.extension,
            "is_directory": self.is_directory,
        }
