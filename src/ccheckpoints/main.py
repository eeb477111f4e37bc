"""Command-line interface for ccheckpoints."""

import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import httpx
import sentry_sdk
import structlog

from . import __version__
from .client import CheckpointsClient
from .config import CheckpointsConfig, load_config
from .exceptions import CheckpointsError
from .hooks import CLI_EVENTS, build_event_data, install_hooks
from .logging_config import configure_logging, init_sentry
from .manager import CheckpointManager
from .utils import format_file_size

logger = structlog.get_logger()


def _fail(message: str) -> NoReturn:
    click.echo(click.style("Error: ", fg="red", bold=True) + message, err=True)
    sys.exit(1)


def _config(ctx: click.Context) -> CheckpointsConfig:
    config: CheckpointsConfig = ctx.obj["config"]
    return config


def _manager(ctx: click.Context) -> CheckpointManager:
    manager = CheckpointManager(_config(ctx))
    ctx.call_on_close(manager.close)
    return manager


def _project_path(path: str) -> str:
    return str(Path(path).expanduser().resolve())


@click.group()
@click.version_option(version=__version__, prog_name="ccheckpoints")
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config file",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_file: Path | None, verbose: bool) -> None:
    """CCheckpoints - automatic project snapshots for editor sessions.

    Every prompt opens a session; when the agent stops, the project's files
    are captured as a checkpoint you can diff and restore.
    """
    try:
        config = load_config(config_file)
    except CheckpointsError as e:
        _fail(str(e))

    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["sentry_enabled"] = init_sentry()


# =============================================================================
# SERVER & HOOKS
# =============================================================================


@cli.command()
@click.option("--host", default=None, help="Address to bind (overrides config)")
@click.option("--port", type=int, default=None, help="Port to listen on (overrides config)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the checkpoint server."""
    import uvicorn

    from .server import create_app

    config = _config(ctx)
    if host:
        config = config.model_copy(update={"host": host})
    if port:
        config = config.model_copy(update={"port": port})

    if CheckpointsClient(config.server_url, timeout=config.request_timeout).is_running():
        _fail(f"A checkpoint server is already running at {config.server_url}")

    click.echo(
        click.style("CCheckpoints server ", fg="cyan", bold=True)
        + click.style(f"v{__version__}", fg="cyan")
    )
    click.echo(f"  URL: {config.server_url}")
    click.echo(f"  Database: {config.database_path}")
    click.echo()

    uvicorn.run(
        create_app(config=config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


@cli.command()
@click.option(
    "--event",
    "event",
    type=click.Choice(sorted(CLI_EVENTS)),
    required=True,
    help="Hook event to record",
)
@click.pass_context
def track(ctx: click.Context, event: str) -> None:
    """Record an editor hook event (reads the hook payload from stdin).

    Always exits successfully so a failure here never blocks the editor.
    """
    config = _config(ctx)
    event_type = CLI_EVENTS[event]

    stdin = click.get_text_stream("stdin")
    stdin_content = "" if stdin.isatty() else stdin.read().strip()
    data = build_event_data(stdin_content)

    try:
        CheckpointsClient(config.server_url, timeout=config.request_timeout).send_event(
            event_type, data
        )
        logger.debug("Event sent to server", event_type=event_type)
        return
    except httpx.HTTPStatusError as e:
        # The server owns the database while it is up.
        logger.error(
            "Server rejected event",
            event_type=event_type,
            status_code=e.response.status_code,
        )
        return
    except httpx.TransportError as e:
        logger.info("Server not reachable, handling event directly", error=str(e))

    try:
        manager = CheckpointManager(config)
        try:
            manager.handle_event(event_type, data)
        finally:
            manager.close()
    except Exception:
        logger.exception("Failed to track event", event_type=event_type)
        if ctx.obj.get("sentry_enabled"):
            sentry_sdk.flush(timeout=2.0)


@cli.command()
@click.option(
    "--settings-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Editor settings file (default: ~/.claude/settings.json)",
)
def setup(settings_path: Path | None) -> None:
    """Install the prompt and stop hooks into the editor settings."""
    try:
        path = install_hooks(settings_path)
    except CheckpointsError as e:
        _fail(str(e))

    click.echo(click.style("Hooks configured", fg="green", bold=True) + f" in {path}")
    click.echo("Checkpoints are created automatically when the agent stops.")


# =============================================================================
# CHECKPOINT COMMANDS
# =============================================================================


@cli.command()
@click.pass_context
def projects(ctx: click.Context) -> None:
    """List tracked projects."""
    stats = _manager(ctx).project_stats()
    if not stats.projects:
        click.echo(click.style("No projects tracked yet.", fg="yellow"))
        return

    click.echo(click.style("Projects", fg="cyan", bold=True))
    for project in stats.projects:
        click.echo(
            click.style(f"  {project.project_name}", bold=True)
            + f"  {project.checkpoint_count} checkpoints, {project.session_count} sessions"
        )
        click.echo(f"    {project.project_path}")
    click.echo()
    active = click.style("yes", fg="green") if stats.has_active_session else "no"
    click.echo(
        f"Total: {stats.total_checkpoints} checkpoints, "
        f"{stats.total_sessions} sessions, active session: {active}"
    )


@cli.command("list")
@click.argument("project_path")
@click.pass_context
def list_checkpoints(ctx: click.Context, project_path: str) -> None:
    """List checkpoints of a project, newest first."""
    checkpoints = _manager(ctx).list_checkpoints(_project_path(project_path))
    if not checkpoints:
        click.echo(click.style("No checkpoints found.", fg="yellow"))
        return

    for checkpoint in checkpoints:
        click.echo(click.style(checkpoint.id, fg="cyan") + f"  {checkpoint.timestamp}")
        click.echo(f"  {checkpoint.message}")


@cli.command()
@click.argument("checkpoint_id")
@click.pass_context
def show(ctx: click.Context, checkpoint_id: str) -> None:
    """Show a checkpoint and its files."""
    checkpoint = _manager(ctx).get_checkpoint(checkpoint_id)
    if checkpoint is None:
        _fail(f"Checkpoint not found: {checkpoint_id}")

    click.echo(click.style(checkpoint.message, fg="cyan", bold=True))
    click.echo(f"  ID: {checkpoint.id}")
    click.echo(f"  Project: {checkpoint.project_name} ({checkpoint.project_path})")
    click.echo(f"  Time: {checkpoint.timestamp}")
    click.echo(f"  Files: {checkpoint.file_count} ({format_file_size(checkpoint.total_size)})")
    click.echo()
    for snapshot in checkpoint.files:
        click.echo(f"  {snapshot.relative_path}  {format_file_size(snapshot.size)}")


_CHANGE_COLORS = {"added": "green", "modified": "yellow", "deleted": "red"}


def _echo_diff_text(diff_text: str) -> None:
    for line in diff_text.split("\n"):
        if line.startswith("@@"):
            click.echo(click.style(f"    {line}", fg="cyan"))
        elif line.startswith("+"):
            click.echo(click.style(f"    {line}", fg="green"))
        elif line.startswith("-"):
            click.echo(click.style(f"    {line}", fg="red"))
        else:
            click.echo(f"    {line}")


@cli.command()
@click.argument("current_id")
@click.argument("previous_id", required=False)
@click.pass_context
def diff(ctx: click.Context, current_id: str, previous_id: str | None) -> None:
    """Compare two checkpoints (default: with the previous one)."""
    manager = _manager(ctx)
    try:
        if previous_id is None:
            result = manager.diff_with_previous(current_id)
        else:
            result = manager.diff_checkpoints(current_id, previous_id)
    except CheckpointsError as e:
        _fail(str(e))

    click.echo(click.style(f"{result.previous.message}", fg="cyan") + "  ->")
    click.echo(click.style(f"{result.current.message}", fg="cyan"))
    summary = result.summary
    click.echo(
        f"  {summary.added} added, {summary.modified} modified, {summary.deleted} deleted"
    )
    click.echo()
    for change in result.changes:
        click.echo(click.style(f"  {change.type:<9}", fg=_CHANGE_COLORS[change.type]) + change.file)
        if change.diff:
            _echo_diff_text(change.diff)


@cli.command()
@click.argument("checkpoint_id")
@click.option("-y", "--yes", is_flag=True, help="Restore without prompting")
@click.pass_context
def restore(ctx: click.Context, checkpoint_id: str, yes: bool) -> None:
    """Overwrite project files with a checkpoint's contents."""
    manager = _manager(ctx)
    checkpoint = manager.get_checkpoint(checkpoint_id)
    if checkpoint is None:
        _fail(f"Checkpoint not found: {checkpoint_id}")

    if not yes:
        click.confirm(
            f"Restore {checkpoint.file_count} files from '{checkpoint.message}'?",
            abort=True,
        )

    try:
        result = manager.restore_checkpoint(checkpoint_id)
    except CheckpointsError as e:
        _fail(str(e))

    click.echo(
        click.style("Restored ", fg="green", bold=True)
        + f"{result.files_restored}/{result.total_files} files"
    )
    for error in result.errors:
        click.echo(click.style(f"  {error.path}: ", fg="red") + error.reason, err=True)
    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("checkpoint_id")
@click.pass_context
def delete(ctx: click.Context, checkpoint_id: str) -> None:
    """Delete one checkpoint."""
    if not _manager(ctx).delete_checkpoint(checkpoint_id):
        _fail(f"Checkpoint not found: {checkpoint_id}")
    click.echo(click.style("Checkpoint deleted.", fg="green"))


def _echo_deleted(result: dict[str, Any]) -> None:
    click.echo(f"  Checkpoints: {result['deleted_checkpoints']}")
    click.echo(f"  Sessions: {result['deleted_sessions']}")
    click.echo(f"  File snapshots: {result['deleted_file_snapshots']}")


@cli.command("delete-project")
@click.argument("project_path")
@click.pass_context
def delete_project(ctx: click.Context, project_path: str) -> None:
    """Delete all checkpoints and sessions of a project."""
    result = _manager(ctx).delete_project_checkpoints(_project_path(project_path))
    click.echo(click.style("Project data deleted", fg="green", bold=True))
    _echo_deleted(result)


@cli.command()
@click.option("-y", "--yes", is_flag=True, help="Clear without prompting")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Delete every checkpoint of every project."""
    if not yes:
        click.confirm("Delete all checkpoints of all projects?", abort=True)
    result = _manager(ctx).clear_all()
    click.echo(
        click.style("Cleared all data", fg="green", bold=True)
        + f" from {result['project_count']} projects"
    )
    _echo_deleted(result)


if __name__ == "__main__":
    cli()
