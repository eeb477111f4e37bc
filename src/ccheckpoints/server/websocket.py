"""WebSocket fan-out of checkpoint events to connected browsers."""

from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = structlog.get_logger()

router = APIRouter(tags=["websocket"])


class ConnectionManager:
    """Keeps the set of connected clients and broadcasts JSON messages to them."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.debug("WebSocket client connected", clients=len(self._clients))
        await self._send(
            websocket,
            {"type": "connected", "data": {"message": "Connected to checkpoint server"}},
        )

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        logger.debug("WebSocket client disconnected", clients=len(self._clients))

    async def _send(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.warning("Failed to send WebSocket message", error=str(e))
            self._clients.discard(websocket)
            return False
        return True

    async def broadcast(self, message_type: str, data: Any) -> int:
        """Send a message to every client. Returns how many received it."""
        message = {
            "type": message_type,
            "data": data,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        # Copy: failed sends remove clients while iterating
        clients = list(self._clients)
        sent = 0
        for websocket in clients:
            if await self._send(websocket, message):
                sent += 1
        logger.debug("Broadcast sent", type=message_type, sent=sent, clients=len(clients))
        return sent

    async def broadcast_session_start(self, session: dict[str, Any]) -> int:
        return await self.broadcast("session_start", session)

    async def broadcast_checkpoint_created(self, checkpoint: dict[str, Any]) -> int:
        return await self.broadcast("checkpoint_created", checkpoint)


@router.websocket("/ws")
async def events_websocket(websocket: WebSocket) -> None:
    """Push session and checkpoint events until the client goes away."""
    connections: ConnectionManager = websocket.app.state.connections
    await connections.connect(websocket)
    try:
        while True:
            # Incoming messages are ignored; reading detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(websocket)
