"""Dependency injection for the checkpoint server."""

from typing import Annotated

from fastapi import Depends, Request

from ..manager import CheckpointManager
from .websocket import ConnectionManager


def get_manager(request: Request) -> CheckpointManager:
    manager: CheckpointManager = request.app.state.manager
    return manager


def get_connections(request: Request) -> ConnectionManager:
    connections: ConnectionManager = request.app.state.connections
    return connections


Manager = Annotated[CheckpointManager, Depends(get_manager)]
Connections = Annotated[ConnectionManager, Depends(get_connections)]
