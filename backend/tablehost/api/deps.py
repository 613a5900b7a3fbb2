"""API dependencies for dependency injection."""

import json
import logging
from typing import Dict, Optional

from fastapi import WebSocket

from ..config import Settings, get_settings
from ..core import FloorEngine, InMemoryFloorRepository

logger = logging.getLogger(__name__)


class ConnectionManager:
    """WebSocket connection manager for real-time updates."""

    def __init__(self):
        # websocket -> org it watches (None watches every org)
        self.active_connections: Dict[WebSocket, Optional[str]] = {}

    async def connect(self, websocket: WebSocket, org_id: Optional[str] = None):
        await websocket.accept()
        self.active_connections[websocket] = org_id

    def disconnect(self, websocket: WebSocket):
        self.active_connections.pop(websocket, None)

    async def broadcast(self, message: dict):
        """Send to every client watching the message's org."""
        org_id = message.get("event", {}).get("org_id")
        for connection, watching in list(self.active_connections.items()):
            if watching is not None and org_id is not None and watching != org_id:
                continue
            try:
                await connection.send_text(json.dumps(message))
            except Exception:
                logger.info("Dropping websocket client after failed send")
                self.disconnect(connection)

    async def send_personal(self, message: dict, websocket: WebSocket):
        """Send message to specific client."""
        try:
            await websocket.send_text(json.dumps(message))
        except Exception:
            self.disconnect(websocket)


# Global connection manager instance
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get connection manager dependency."""
    return connection_manager


def build_engine(settings: Optional[Settings] = None) -> FloorEngine:
    """Engine wired to the configured storage backend."""
    settings = settings or get_settings()
    if settings.storage_backend == "sql":
        from ..services.sql_repository import SqlFloorRepository

        repository = SqlFloorRepository()
    elif settings.storage_backend == "memory":
        repository = InMemoryFloorRepository()
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")

    logger.info("Floor engine using %s storage", settings.storage_backend)
    return FloorEngine(repository=repository, settings=settings)


_engine: Optional[FloorEngine] = None


def get_engine() -> FloorEngine:
    """Get the process-wide floor engine dependency."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
