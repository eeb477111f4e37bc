"""Tests for checkpoint persistence and lifecycle."""

import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from ccheckpoints.config import CheckpointsConfig
from ccheckpoints.database import Checkpoint, FileSnapshot, Session
from ccheckpoints.exceptions import CheckpointNotFoundError
from ccheckpoints.manager import CheckpointManager
from ccheckpoints.store import CreationStatus, build_checkpoint_message
from ccheckpoints.utils import PLACEHOLDER_PROMPT


def _count(manager: CheckpointManager, model) -> int:
    with manager.database.session() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


class TestCheckpointMessage:
    def test_uses_prompt(self) -> None:
        message = build_checkpoint_message("Fix the parser", 3, 2048)
        assert message == "Fix the parser (3 files, 2.0 KB)"

    def test_placeholder_without_prompt(self) -> None:
        assert build_checkpoint_message(None, 1, 10) == f"{PLACEHOLDER_PROMPT} (1 files, 10.0 B)"
        assert build_checkpoint_message(PLACEHOLDER_PROMPT, 2, 0).startswith(PLACEHOLDER_PROMPT)


class TestCreateCheckpoint:
    def test_stop_creates_checkpoint(self, manager: CheckpointManager, project_dir: Path) -> None:
        manager.open_or_refresh_session(str(project_dir), project_dir.name, "Add greeting")
        checkpoint = manager.close_session_and_checkpoint(str(project_dir))

        assert checkpoint is not None
        assert checkpoint.project_path == str(project_dir)
        assert checkpoint.project_name == "my-project"
        assert checkpoint.user_prompt == "Add greeting"
        assert checkpoint.file_count == 2
        assert checkpoint.total_size == sum(f.size for f in checkpoint.files)
        assert checkpoint.message.startswith("Add greeting (2 files, ")

        stored = manager.get_checkpoint(checkpoint.id)
        assert [f.relative_path for f in stored.files] == ["README.md", "src/app.py"]
        assert stored.file_count == len(stored.files)

    def test_stop_closes_session_and_counts_changes(
        self, manager: CheckpointManager, project_dir: Path
    ) -> None:
        session = manager.open_or_refresh_session(str(project_dir), "my-project", "prompt")
        manager.close_session_and_checkpoint(str(project_dir))

        assert manager.current_session(str(project_dir)) is None
        with manager.database.session() as db:
            row = db.get(Session, session.id)
            assert row.end_time is not None
            assert row.total_file_changes == 2

    def test_stop_without_session_is_noop(
        self, manager: CheckpointManager, project_dir: Path
    ) -> None:
        assert manager.close_session_and_checkpoint(str(project_dir)) is None
        assert _count(manager, Checkpoint) == 0

    def test_empty_project_creates_nothing(self, manager: CheckpointManager, tmp_path: Path):
        empty = tmp_path / "empty"
        empty.mkdir()
        manager.open_or_refresh_session(str(empty), "empty", "prompt")

        assert manager.close_session_and_checkpoint(str(empty)) is None
        assert _count(manager, Checkpoint) == 0
        assert manager.current_session(str(empty)) is None

    def test_failed_write_leaves_no_partial_rows(
        self, manager: CheckpointManager, project_dir: Path
    ) -> None:
        session = manager.open_or_refresh_session(str(project_dir), "my-project", "prompt")

        with patch.object(
            manager.store, "_next_timestamp", side_effect=RuntimeError("disk full")
        ):
            creation = manager.store.create_checkpoint(session)

        assert creation.status is CreationStatus.FAILED
        assert creation.error == "disk full"
        assert _count(manager, Checkpoint) == 0
        assert _count(manager, FileSnapshot) == 0

    def test_scan_failure_reported(self, manager: CheckpointManager, project_dir: Path) -> None:
        session = manager.open_or_refresh_session(str(project_dir), "my-project", "prompt")

        with patch.object(manager.scanner, "scan", side_effect=OSError("permission denied")):
            creation = manager.store.create_checkpoint(session)

        assert creation.status is CreationStatus.FAILED
        assert creation.checkpoint is None

    def test_concurrent_stops_create_one_checkpoint(
        self, manager: CheckpointManager, project_dir: Path
    ) -> None:
        session = manager.open_or_refresh_session(str(project_dir), "my-project", "prompt")
        real_scan = manager.scanner.scan

        def slow_scan(root):
            time.sleep(0.2)
            return real_scan(root)

        results = []
        with patch.object(manager.scanner, "scan", side_effect=slow_scan):
            threads = [
                threading.Thread(
                    target=lambda: results.append(
                        manager.close_session_and_checkpoint(str(project_dir))
                    )
                )
                for _ in range(2)
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert len([r for r in results if r is not None]) == 1
        assert _count(manager, Checkpoint) == 1
        with manager.database.session() as db:
            assert db.get(Session, session.id).total_file_changes == 2

    def test_oversized_file_left_out_of_checkpoint(
        self, tmp_path: Path, project_dir: Path
    ) -> None:
        (project_dir / "big.log").write_text("x" * 500)
        config = CheckpointsConfig(
            database_path=tmp_path / "capped" / "checkpoints.db", max_file_size=100
        )
        capped = CheckpointManager(config)
        try:
            capped.open_or_refresh_session(str(project_dir), "my-project", "prompt")
            checkpoint = capped.close_session_and_checkpoint(str(project_dir))
        finally:
            capped.close()

        expected = [project_dir / "README.md", project_dir / "src" / "app.py"]
        assert checkpoint.file_count == 2
        assert checkpoint.total_size == sum(p.stat().st_size for p in expected)
        assert "big.log" not in [f.relative_path for f in checkpoint.files]

    def test_timestamps_strictly_increase(
        self, manager: CheckpointManager, project_dir: Path, make_checkpoint
    ) -> None:
        checkpoints = [make_checkpoint(project_dir, f"prompt {i}") for i in range(3)]
        timestamps = [c.timestamp for c in checkpoints]
        assert timestamps == sorted(timestamps)
        assert len(set(timestamps)) == 3


class TestQueries:
    def test_list_newest_first(
        self, manager: CheckpointManager, project_dir: Path, make_checkpoint
    ) -> None:
        first = make_checkpoint(project_dir, "first prompt")
        second = make_checkpoint(project_dir, "second prompt")

        listed = manager.list_checkpoints(str(project_dir))
        assert [c.id for c in listed] == [second.id, first.id]

    def test_list_unknown_project_is_empty(self, manager: CheckpointManager) -> None:
        assert manager.list_checkpoints("/nowhere") == []

    def test_get_unknown_checkpoint(self, manager: CheckpointManager) -> None:
        assert manager.get_checkpoint("missing") is None

    def test_previous_checkpoint(
        self, manager: CheckpointManager, project_dir: Path, make_checkpoint
    ) -> None:
        first = make_checkpoint(project_dir, "first prompt")
        second = make_checkpoint(project_dir, "second prompt")

        assert manager.previous_checkpoint(second.id).id == first.id
        assert manager.previous_checkpoint(first.id) is None
        with pytest.raises(CheckpointNotFoundError):
            manager.previous_checkpoint("missing")

    def test_project_stats(
        self, manager: CheckpointManager, project_dir: Path, tmp_path: Path, make_checkpoint
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        (other / "notes.txt").write_text("notes")

        make_checkpoint(project_dir, "one")
        make_checkpoint(project_dir, "two")
        make_checkpoint(other, "three")
        manager.open_or_refresh_session(str(other), "other", "still working")

        stats = manager.project_stats()

        assert stats.total_sessions == 4
        assert stats.total_checkpoints == 3
        assert stats.has_active_session
        by_path = {p.project_path: p for p in stats.projects}
        assert by_path[str(project_dir)].session_count == 2
        assert by_path[str(project_dir)].checkpoint_count == 2
        assert by_path[str(project_dir)].total_file_changes == 4
        assert by_path[str(other)].checkpoint_count == 1
        assert stats.projects[0].project_path == str(other)
        assert manager.list_project_stats() == stats.projects


class TestDeletion:
    def test_delete_checkpoint_cascades_snapshots(
        self, manager: CheckpointManager, project_dir: Path, make_checkpoint
    ) -> None:
        checkpoint = make_checkpoint(project_dir)

        assert manager.delete_checkpoint(checkpoint.id) is True
        assert manager.get_checkpoint(checkpoint.id) is None
        assert _count(manager, FileSnapshot) == 0
        assert _count(manager, Session) == 1
        assert manager.delete_checkpoint(checkpoint.id) is False

    def test_delete_project_is_isolated(
        self, manager: CheckpointManager, project_dir: Path, tmp_path: Path, make_checkpoint
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        (other / "notes.txt").write_text("notes")
        make_checkpoint(project_dir)
        make_checkpoint(project_dir)
        kept = make_checkpoint(other)

        result = manager.delete_project_checkpoints(str(project_dir))

        assert result == {
            "deleted_checkpoints": 2,
            "deleted_sessions": 2,
            "deleted_file_snapshots": 4,
        }
        assert manager.list_checkpoints(str(project_dir)) == []
        assert [c.id for c in manager.list_checkpoints(str(other))] == [kept.id]
        assert len(manager.get_checkpoint(kept.id).files) == 1

    def test_delete_project_drops_open_session(
        self, manager: CheckpointManager, project_dir: Path
    ) -> None:
        manager.open_or_refresh_session(str(project_dir), "my-project", "prompt")
        manager.delete_project_checkpoints(str(project_dir))

        assert manager.current_session(str(project_dir)) is None
        fresh = manager.open_or_refresh_session(str(project_dir), "my-project", "again")
        assert fresh.is_active

    def test_clear_all(
        self, manager: CheckpointManager, project_dir: Path, tmp_path: Path, make_checkpoint
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        (other / "notes.txt").write_text("notes")
        make_checkpoint(project_dir)
        make_checkpoint(other)

        result = manager.clear_all()

        assert result["deleted_checkpoints"] == 2
        assert result["deleted_sessions"] == 2
        assert result["deleted_file_snapshots"] == 3
        assert result["project_count"] == 2
        assert _count(manager, Checkpoint) == 0
        assert _count(manager, FileSnapshot) == 0
        stats = manager.project_stats()
        assert stats.projects == []
        assert not stats.has_active_session
