"""HTTP client for a running checkpoint server."""

from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


class CheckpointsClient:
    """Forwards editor events to the local server.

    Used by the hook commands, which must finish quickly: every request
    shares one short timeout.
    """

    def __init__(self, base_url: str, timeout: float = 3.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout)

    def is_running(self) -> bool:
        """Whether a server answers the health check."""
        try:
            with self._client() as client:
                response = client.get("/api/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def send_event(self, event_type: str, data: dict[str, Any]) -> Any:
        """Post a lifecycle event and return the envelope's ``data``.

        Raises:
            httpx.HTTPError: If the server is unreachable or rejects the event.
        """
        with self._client() as client:
            response = client.post(
                "/api/claude-event",
                json={"event_type": event_type, "data": data},
            )
            response.raise_for_status()
        body = response.json()
        logger.debug("Event delivered to server", event_type=event_type)
        return body.get("data")
