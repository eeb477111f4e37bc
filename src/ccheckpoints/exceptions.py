"""Custom exception classes for ccheckpoints."""


class CheckpointsError(Exception):
    """Base exception for checkpoint store failures."""


class ConfigurationError(CheckpointsError, ValueError):
    """Raised when configuration validation fails."""


class CheckpointNotFoundError(CheckpointsError, LookupError):
    """Raised when a checkpoint id does not resolve to a stored checkpoint."""

    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(f"Checkpoint not found: {checkpoint_id}")


class NoPriorCheckpointError(CheckpointsError, LookupError):
    """Raised when diffing the oldest checkpoint of a project against its predecessor."""

    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(f"No prior checkpoint for: {checkpoint_id}")


class PersistenceError(CheckpointsError):
    """Raised when reading from or writing to the checkpoint database fails."""

    def __init__(self, operation: str, original_error: str) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(f"Database operation '{operation}' failed: {original_error}")


class HookInstallError(CheckpointsError):
    """Raised when editor hook settings cannot be read or written."""

    def __init__(self, settings_path: str, reason: str) -> None:
        self.settings_path = settings_path
        self.reason = reason
        super().__init__(f"Failed to configure hooks in {settings_path}: {reason}")
