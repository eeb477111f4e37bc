"""ccheckpoints - session checkpoints for editor-driven development."""

__version__ = "0.1.0"
