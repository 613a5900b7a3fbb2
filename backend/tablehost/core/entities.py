"""Domain entities for tables, reservations, guests and the waitlist."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple, Union


class TableStatus(str, Enum):
    """Derived display status of a table. Never stored."""

    BLOCKED = "blocked"
    AVAILABLE = "available"
    RESERVED = "reserved"
    SEATED = "seated"
    BILL_DROPPED = "bill_dropped"


class ReservationStatus(str, Enum):
    """Reservation lifecycle states."""

    ENQUIRY = "enquiry"
    CONFIRMED = "confirmed"
    SEATED = "seated"
    BILL_DROPPED = "bill_dropped"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_RESERVATION_STATUSES = frozenset(
    {ReservationStatus.COMPLETED, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
)


class ReservationChannel(str, Enum):
    """How the booking reached the restaurant."""

    WALK_IN = "walk_in"
    PHONE = "phone"
    IN_PERSON = "in_person"
    WEBSITE = "website"
    GOOGLE_RESERVE = "google_reserve"
    VOICE_AI = "voice_ai"
    WAITLIST = "waitlist"


class WaitlistStatus(str, Enum):
    """Waitlist entry states."""

    WAITING = "waiting"
    NOTIFIED = "notified"
    SEATED = "seated"
    LEFT = "left"


ACTIVE_WAITLIST_STATUSES = frozenset({WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED})


class VipTier(str, Enum):
    NEW = "new"
    RETURNING = "returning"
    REGULAR = "regular"
    VIP = "vip"
    CHAMPION = "champion"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Table:
    """Physical table on the floor plan."""

    id: Optional[int]
    org_id: str
    name: str
    capacity: int
    zone: str = "indoor"
    min_capacity: int = 1
    blocked: bool = False
    block_reason: Optional[str] = None
    sort_order: int = 0
    group_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "capacity": self.capacity,
            "min_capacity": self.min_capacity,
            "zone": self.zone,
            "blocked": self.blocked,
            "block_reason": self.block_reason,
            "sort_order": self.sort_order,
            "group_id": self.group_id,
        }


@dataclass
class CombinedGroup:
    """Two or more tables merged into one assignable unit."""

    id: str
    org_id: str
    table_ids: List[int]
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "table_ids": list(self.table_ids),
            "created_at": _iso(self.created_at),
        }


@dataclass
class StatusChange:
    """Record of a reservation status transition."""

    from_status: ReservationStatus
    to_status: ReservationStatus
    command: str
    actor: Optional[str]
    at: datetime

    def to_dict(self) -> dict:
        return {
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "command": self.command,
            "actor": self.actor,
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StatusChange":
        return cls(
            from_status=ReservationStatus(data["from_status"]),
            to_status=ReservationStatus(data["to_status"]),
            command=data["command"],
            actor=data.get("actor"),
            at=datetime.fromisoformat(data["at"]),
        )


@dataclass
class Reservation:
    """A booking (or walk-in) and the table/group it holds."""

    id: Optional[int]
    org_id: str
    party_size: int
    requested_at: datetime
    guest_id: Optional[int] = None
    guest_name: str = ""
    channel: ReservationChannel = ReservationChannel.PHONE
    status: ReservationStatus = ReservationStatus.ENQUIRY
    table_id: Optional[int] = None
    group_id: Optional[str] = None
    notes: Optional[str] = None
    waitlist_entry_id: Optional[int] = None

    created_at: datetime = field(default_factory=datetime.utcnow)
    confirmed_at: Optional[datetime] = None
    seated_at: Optional[datetime] = None
    bill_dropped_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    turn_time_minutes: Optional[float] = None

    history: List[StatusChange] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RESERVATION_STATUSES

    @property
    def bill_dropped(self) -> bool:
        return self.status == ReservationStatus.BILL_DROPPED

    @property
    def has_unit(self) -> bool:
        return self.table_id is not None or self.group_id is not None

    def unit_key(self) -> Optional[Tuple[str, Union[int, str]]]:
        if self.group_id is not None:
            return ("group", self.group_id)
        if self.table_id is not None:
            return ("table", self.table_id)
        return None

    def timestamps(self) -> List[Optional[datetime]]:
        """Status timestamps in lifecycle order."""
        return [
            self.confirmed_at,
            self.seated_at,
            self.bill_dropped_at,
            self.completed_at or self.cancelled_at or self.no_show_at,
        ]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "guest_id": self.guest_id,
            "guest_name": self.guest_name,
            "party_size": self.party_size,
            "requested_at": _iso(self.requested_at),
            "channel": self.channel.value,
            "status": self.status.value,
            "bill_dropped": self.bill_dropped,
            "table_id": self.table_id,
            "group_id": self.group_id,
            "notes": self.notes,
            "waitlist_entry_id": self.waitlist_entry_id,
            "created_at": _iso(self.created_at),
            "confirmed_at": _iso(self.confirmed_at),
            "seated_at": _iso(self.seated_at),
            "bill_dropped_at": _iso(self.bill_dropped_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "no_show_at": _iso(self.no_show_at),
            "turn_time_minutes": self.turn_time_minutes,
            "history": [h.to_dict() for h in self.history],
        }


@dataclass
class Guest:
    """Guest profile. Only the two counters belong to the engine."""

    id: Optional[int]
    org_id: str
    first_name: str
    last_name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    visit_count: int = 0
    no_show_count: int = 0
    vip_tier: VipTier = VipTier.NEW
    score: float = 0.0

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "email": self.email,
            "visit_count": self.visit_count,
            "no_show_count": self.no_show_count,
            "vip_tier": self.vip_tier.value,
            "score": self.score,
        }


@dataclass
class WaitlistEntry:
    """Walk-in party waiting for a table."""

    id: Optional[int]
    org_id: str
    guest_name: str
    party_size: int
    status: WaitlistStatus = WaitlistStatus.WAITING
    priority: int = 0
    guest_phone: Optional[str] = None
    guest_id: Optional[int] = None
    estimated_wait_minutes: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    notified_at: Optional[datetime] = None
    seated_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    table_id: Optional[int] = None
    group_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_WAITLIST_STATUSES

    def queue_key(self) -> tuple:
        """Sort key: higher priority bucket first, then FIFO."""
        return (-self.priority, self.created_at, self.id or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "guest_name": self.guest_name,
            "guest_phone": self.guest_phone,
            "guest_id": self.guest_id,
            "party_size": self.party_size,
            "priority": self.priority,
            "status": self.status.value,
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "created_at": _iso(self.created_at),
            "notified_at": _iso(self.notified_at),
            "seated_at": _iso(self.seated_at),
            "left_at": _iso(self.left_at),
            "table_id": self.table_id,
            "group_id": self.group_id,
        }


@dataclass(frozen=True)
class AssignableUnit:
    """A single table or a combined group, as seen by assignment."""

    kind: str  # "table" | "group"
    id: Union[int, str]
    table_ids: Tuple[int, ...]
    capacity: int
    name: str = ""

    @property
    def is_group(self) -> bool:
        return self.kind == "group"

    @property
    def first_table_id(self) -> int:
        return min(self.table_ids)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.id,
            "table_ids": list(self.table_ids),
            "capacity": self.capacity,
            "name": self.name,
        }


@dataclass(frozen=True)
class NoFit:
    """No available table or group can take the party. Route to the waitlist."""

    party_size: int
    reason: str = "no available table fits the party"

    def to_dict(self) -> dict:
        return {"no_fit": True, "party_size": self.party_size, "reason": self.reason}


@dataclass
class TableView:
    """A table with its derived status, for callers to render."""

    table: Table
    status: TableStatus
    reservation_id: Optional[int] = None
    group_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            **self.table.to_dict(),
            "status": self.status.value,
            "reservation_id": self.reservation_id,
            "group_id": self.group_id,
        }
