"""Pytest fixtures for ccheckpoints tests."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from ccheckpoints.config import CheckpointsConfig
from ccheckpoints.database import Checkpoint, Database
from ccheckpoints.manager import CheckpointManager


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user configuration and error reporting out of tests."""
    for name in ("SENTRY_DSN", "CLAUDE_PROMPT", "USER_INPUT"):
        monkeypatch.delenv(name, raising=False)
    for name in list(CheckpointsConfig.model_fields):
        monkeypatch.delenv(f"CCHECKPOINTS_{name.upper()}", raising=False)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A small project with a couple of text files."""
    project = tmp_path / "my-project"
    (project / "src").mkdir(parents=True)
    (project / "README.md").write_text("# My project\n")
    (project / "src" / "app.py").write_text("print('hello')\n")
    return project.resolve()


@pytest.fixture
def config(tmp_path: Path) -> CheckpointsConfig:
    return CheckpointsConfig(database_path=tmp_path / "data" / "checkpoints.db")


@pytest.fixture
def database(config: CheckpointsConfig) -> Iterator[Database]:
    db = Database(config.database_path)
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def manager(config: CheckpointsConfig) -> Iterator[CheckpointManager]:
    checkpoint_manager = CheckpointManager(config)
    yield checkpoint_manager
    checkpoint_manager.close()


@pytest.fixture
def make_checkpoint(manager: CheckpointManager) -> Callable[..., Checkpoint]:
    """Run one prompt/stop cycle and return the checkpoint it produced."""

    def _make(project: Path, prompt: str = "Implement the feature") -> Checkpoint:
        manager.open_or_refresh_session(str(project), project.name, prompt)
        checkpoint = manager.close_session_and_checkpoint(str(project))
        assert checkpoint is not None
        return checkpoint

    return _make


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()
