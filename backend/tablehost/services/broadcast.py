"""Pushes domain events to connected dashboards."""

import asyncio
import logging
from typing import List, Optional

from ..core.events import DomainEvent

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """
    Relays every published event to websocket clients.

    The bus callback only queues; a background loop does the sends so a
    slow client never holds up the command that produced the event.
    """

    def __init__(self, connections):
        self.connections = connections
        self.queue: asyncio.Queue = asyncio.Queue()
        self._running = False

    async def on_event(self, event: DomainEvent):
        """Bus subscriber."""
        await self.queue.put(event)

    async def start(self):
        """Start the broadcast loop."""
        self._running = True
        logger.info("Event broadcaster started")

        while self._running:
            try:
                try:
                    event = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await self.send(event)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Broadcast failed")

        logger.info("Event broadcaster stopped")

    async def stop(self):
        """Stop the broadcast loop."""
        self._running = False

    async def send(self, event: DomainEvent):
        await self.connections.broadcast({"type": "event", "event": event.to_dict()})

    async def flush(self) -> List[DomainEvent]:
        """Send everything queued so far. Used when no loop is running."""
        sent = []
        while not self.queue.empty():
            event: Optional[DomainEvent] = self.queue.get_nowait()
            await self.send(event)
            sent.append(event)
        return sent
