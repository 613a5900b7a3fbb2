"""Domain events emitted by the floor engine and the in-process bus."""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of domain events."""

    RESERVATION_CHANGED = "reservation_changed"
    TABLE_FREED = "table_freed"
    TABLE_CHANGED = "table_changed"
    WAITLIST_CHANGED = "waitlist_changed"
    WAITLIST_PROMOTED = "waitlist_promoted"


@dataclass
class DomainEvent:
    """
    Base event. Delivery is at-least-once; consumers de-duplicate on
    ``dedup_key``.
    """

    org_id: str
    sequence: int = 0
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    event_type = None  # set by subclasses

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.event_type.value, self.sequence)

    def payload(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> dict:
        return {
            "type": self.event_type.value,
            "org_id": self.org_id,
            "sequence": self.sequence,
            "occurred_at": self.occurred_at.isoformat(),
            "data": self.payload(),
        }


@dataclass
class ReservationChanged(DomainEvent):
    """A reservation moved to a new status or was edited."""

    reservation_id: int = 0
    status: str = ""
    command: str = ""
    table_ids: List[int] = field(default_factory=list)
    group_id: Optional[str] = None
    freed_table_ids: List[int] = field(default_factory=list)
    waitlist_entry_id: Optional[int] = None

    event_type = EventType.RESERVATION_CHANGED

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        if self.command == "edit":
            return (self.event_type.value, self.reservation_id, self.command, self.sequence)
        return (self.event_type.value, self.reservation_id, self.status)

    def payload(self) -> Dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "status": self.status,
            "command": self.command,
            "table_ids": list(self.table_ids),
            "group_id": self.group_id,
            "freed_table_ids": list(self.freed_table_ids),
            "waitlist_entry_id": self.waitlist_entry_id,
        }


@dataclass
class TableFreed(DomainEvent):
    """Tables became assignable without a reservation changing."""

    table_ids: List[int] = field(default_factory=list)
    reason: str = ""

    event_type = EventType.TABLE_FREED

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.event_type.value, tuple(self.table_ids), self.sequence)

    def payload(self) -> Dict[str, Any]:
        return {"table_ids": list(self.table_ids), "reason": self.reason}


@dataclass
class TableChanged(DomainEvent):
    """A table was added, blocked or combined."""

    table_ids: List[int] = field(default_factory=list)
    status: str = ""
    reason: str = ""
    group_id: Optional[str] = None

    event_type = EventType.TABLE_CHANGED

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.event_type.value, tuple(self.table_ids), self.status, self.sequence)

    def payload(self) -> Dict[str, Any]:
        return {
            "table_ids": list(self.table_ids),
            "status": self.status,
            "reason": self.reason,
            "group_id": self.group_id,
        }


@dataclass
class WaitlistChanged(DomainEvent):
    """A waitlist entry joined, left or was seated."""

    entry_id: int = 0
    status: str = ""
    reservation_id: Optional[int] = None

    event_type = EventType.WAITLIST_CHANGED

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.event_type.value, self.entry_id, self.status)

    def payload(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "status": self.status,
            "reservation_id": self.reservation_id,
        }


@dataclass
class WaitlistPromoted(DomainEvent):
    """A waiting party was offered a freed table. Delivery is external."""

    entry_id: int = 0
    guest_name: str = ""
    party_size: int = 0
    table_ids: List[int] = field(default_factory=list)
    group_id: Optional[str] = None
    automatic: bool = True

    event_type = EventType.WAITLIST_PROMOTED

    @property
    def dedup_key(self) -> Tuple[Any, ...]:
        return (self.event_type.value, self.entry_id)

    def payload(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "guest_name": self.guest_name,
            "party_size": self.party_size,
            "table_ids": list(self.table_ids),
            "group_id": self.group_id,
            "automatic": self.automatic,
        }


Subscriber = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """
    In-process publisher.

    Stamps each event with the next sequence number and hands it to every
    subscriber in registration order. A failing subscriber is logged and
    skipped; it never undoes the command that produced the event.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._sequence = itertools.count(1)
        self.published: List[DomainEvent] = []
        self.max_history = 1000

    def subscribe(self, callback: Subscriber):
        """Register an async callback for every event."""
        self._subscribers.append(callback)

    async def publish(self, event: DomainEvent):
        event.sequence = next(self._sequence)

        self.published.append(event)
        if len(self.published) > self.max_history:
            self.published = self.published[-self.max_history :]

        for callback in self._subscribers:
            try:
                await callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s #%s", event.event_type.value, event.sequence)

    def history(self, org_id: Optional[str] = None, limit: int = 50) -> List[DomainEvent]:
        events = [e for e in self.published if org_id is None or e.org_id == org_id]
        return events[-limit:]
