"""Local HTTP and WebSocket server."""

from .app import create_app
from .websocket import ConnectionManager

__all__ = ["ConnectionManager", "create_app"]
