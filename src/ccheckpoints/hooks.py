"""Editor hook integration.

The editor runs ``ccheckpoints track --event=submit`` when the user submits a
prompt and ``ccheckpoints track --event=stop`` when the agent stops. Each hook
receives a JSON payload on stdin; this module turns that payload into the
event data the checkpoint manager understands and installs the hook commands
into the editor's settings file.
"""

import json
import os
import shutil
import sys
from pathlib import Path
from typing import Any

import structlog

from .exceptions import HookInstallError
from .utils import PLACEHOLDER_PROMPT

logger = structlog.get_logger()

EVENT_PROMPT_SUBMIT = "UserPromptSubmit"
EVENT_STOP = "Stop"
EVENT_NOTIFICATION = "Notification"

CLI_EVENTS = {
    "submit": EVENT_PROMPT_SUBMIT,
    "stop": EVENT_STOP,
}

MAX_PROMPT_LENGTH = 300
MIN_FALLBACK_PROMPT_LENGTH = 10

HOOK_COMMAND_MARKER = "ccheckpoints track"


def get_editor_settings_path() -> Path:
    """Path of the editor's user settings file."""
    return Path.home() / ".claude" / "settings.json"


def _get(data: dict[str, Any], *keys: str) -> Any:
    """First present value among snake_case / camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _usable_fallback(value: Any) -> str | None:
    if not isinstance(value, str) or len(value) <= MIN_FALLBACK_PROMPT_LENGTH:
        return None
    if value in (PLACEHOLDER_PROMPT, EVENT_PROMPT_SUBMIT):
        return None
    return value[:MAX_PROMPT_LENGTH]


def extract_prompt(data: dict[str, Any]) -> str:
    """Pick the best prompt text out of an event payload.

    Priority: the actual prompt from the hook's stdin JSON, then a possible
    prompt, then the editor's environment variables. Falls back to the
    placeholder text.
    """
    sources = _get(data, "prompt_sources", "promptSources") or {}

    actual = _get(sources, "actual_prompt")
    if isinstance(actual, str) and actual:
        return actual

    candidates = (
        _get(data, "possible_prompt", "possiblePrompt"),
        _get(sources, "env_claude_prompt"),
        _get(sources, "env_user_input"),
    )
    for candidate in candidates:
        prompt = _usable_fallback(candidate)
        if prompt is not None:
            return prompt

    logger.debug("No prompt captured, using placeholder")
    return PLACEHOLDER_PROMPT


def extract_project(data: dict[str, Any]) -> tuple[str, str]:
    """Project path and name of an event payload, defaulting to the working directory."""
    raw_path = _get(data, "cwd", "project_path", "projectPath") or os.getcwd()
    project_path = str(Path(raw_path).resolve())
    return project_path, Path(project_path).name


def build_event_data(stdin_content: str, cwd: str | None = None) -> dict[str, Any]:
    """Turn a hook's raw stdin into event data.

    JSON payloads contribute their ``prompt`` and ``cwd``; anything else is
    taken as the prompt text itself.
    """
    hook_data: dict[str, Any] = {}
    actual_prompt = ""
    if stdin_content:
        try:
            parsed = json.loads(stdin_content)
        except json.JSONDecodeError:
            logger.debug("Hook input is not JSON, treating as plain text")
            actual_prompt = stdin_content
        else:
            if isinstance(parsed, dict):
                hook_data = parsed
                actual_prompt = str(parsed.get("prompt") or "")
            else:
                actual_prompt = stdin_content

    project_path = cwd or hook_data.get("cwd") or os.getcwd()
    return {
        "cwd": project_path,
        "prompt_sources": {
            "actual_prompt": actual_prompt,
            "env_claude_prompt": os.environ.get("CLAUDE_PROMPT", ""),
            "env_user_input": os.environ.get("USER_INPUT", ""),
        },
        "possible_prompt": actual_prompt or PLACEHOLDER_PROMPT,
        "hook_data": hook_data,
    }


def get_cli_command() -> str:
    """Command line the editor should run to reach this CLI."""
    executable = shutil.which("ccheckpoints")
    if executable:
        return executable
    return f"{sys.executable} -m ccheckpoints.main"


def build_hooks_config(cli_command: str) -> dict[str, list[dict[str, Any]]]:
    return {
        EVENT_PROMPT_SUBMIT: [
            {"hooks": [{"type": "command", "command": f"{cli_command} track --event=submit"}]}
        ],
        EVENT_STOP: [
            {"hooks": [{"type": "command", "command": f"{cli_command} track --event=stop"}]}
        ],
    }


def _is_own_entry(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    for hook in entry.get("hooks", []):
        command = hook.get("command", "") if isinstance(hook, dict) else ""
        if HOOK_COMMAND_MARKER in command or "ccheckpoints.main track" in command:
            return True
    return False


def install_hooks(settings_path: Path | None = None, cli_command: str | None = None) -> Path:
    """Merge the tracking hooks into the editor settings file.

    Unrelated settings and other hooks are kept; earlier ccheckpoints entries
    are replaced.

    Raises:
        HookInstallError: If the existing file is not a JSON object or cannot be written.
    """
    path = settings_path or get_editor_settings_path()
    command = cli_command or get_cli_command()

    settings: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise HookInstallError(str(path), str(e)) from e
        if not isinstance(loaded, dict):
            raise HookInstallError(str(path), "settings file is not a JSON object")
        settings = loaded

    hooks = settings.get("hooks")
    if not isinstance(hooks, dict):
        hooks = {}

    for event_name, entries in build_hooks_config(command).items():
        existing = hooks.get(event_name)
        kept = [e for e in existing if not _is_own_entry(e)] if isinstance(existing, list) else []
        hooks[event_name] = kept + entries
    settings["hooks"] = hooks

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(settings, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise HookInstallError(str(path), str(e)) from e

    logger.info("Editor hooks configured", path=str(path), command=command)
    return path
