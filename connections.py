import asyncio
import json
from typing import Any, Dict, Iterable

from fastapi import WebSocket

from events import Emit
from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Live WebSocket connections of this process, keyed by connection id."""

    def __init__(self):
        self._connections: Dict[str, WebSocket] = {}

    def register(self, connection_id: str, websocket: WebSocket):
        self._connections[connection_id] = websocket
        logger.debug(f"Registered connection {connection_id} (live connections: {len(self._connections)})")

    def unregister(self, connection_id: str):
        if self._connections.pop(connection_id, None) is not None:
            logger.debug(f"Unregistered connection {connection_id} (live connections: {len(self._connections)})")

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    async def send(self, connection_id: str, event: str, data: Any) -> bool:
        """Best-effort send; a connection that is gone or broken is skipped."""
        websocket = self._connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {event} for {connection_id}: connection is not live")
            return False
        try:
            await websocket.send_text(json.dumps({"event": event, "data": data}))
            return True
        except Exception as e:
            logger.warning(f"Error sending {event} to connection {connection_id}: {e}")
            return False

    async def deliver(self, emits: Iterable[Emit]):
        send_tasks = [self.send(emit.to, emit.event, emit.data) for emit in emits]
        if send_tasks:
            await asyncio.gather(*send_tasks, return_exceptions=True)
