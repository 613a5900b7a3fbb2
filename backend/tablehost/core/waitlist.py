"""Waitlist queue ordering, transitions and wait estimation."""

import math
import statistics
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .entities import TableStatus, WaitlistEntry, WaitlistStatus
from .errors import InvalidTransition
from .registry import FloorPlan


class WaitlistCommand(str, Enum):
    NOTIFY = "notify"
    SEAT = "seat"
    LEAVE = "leave"


class WaitlistQueue:
    """
    FIFO-with-fit queue of walk-in parties.

    Entries are ordered by priority bucket (higher first) and then by
    arrival. When a table frees up, the first WAITING entry in that order
    whose party fits is offered the table, even if a later entry would fill
    it more exactly.
    """

    VALID_TRANSITIONS: Dict[WaitlistCommand, Dict[WaitlistStatus, WaitlistStatus]] = {
        WaitlistCommand.NOTIFY: {
            WaitlistStatus.WAITING: WaitlistStatus.NOTIFIED,
        },
        WaitlistCommand.SEAT: {
            WaitlistStatus.WAITING: WaitlistStatus.SEATED,
            WaitlistStatus.NOTIFIED: WaitlistStatus.SEATED,
        },
        WaitlistCommand.LEAVE: {
            WaitlistStatus.WAITING: WaitlistStatus.LEFT,
            WaitlistStatus.NOTIFIED: WaitlistStatus.LEFT,
        },
    }

    TIMESTAMP_FIELDS = {
        WaitlistStatus.NOTIFIED: "notified_at",
        WaitlistStatus.SEATED: "seated_at",
        WaitlistStatus.LEFT: "left_at",
    }

    @staticmethod
    def ordered(entries: Iterable[WaitlistEntry], include_closed: bool = False) -> List[WaitlistEntry]:
        pool = [e for e in entries if include_closed or e.is_active]
        return sorted(pool, key=lambda e: e.queue_key())

    @classmethod
    def next_fitting(
        cls,
        entries: Iterable[WaitlistEntry],
        capacity: int,
        skip: Sequence[int] = (),
    ) -> Optional[WaitlistEntry]:
        """Earliest WAITING entry whose party fits ``capacity``."""
        for entry in cls.ordered(entries):
            if entry.status != WaitlistStatus.WAITING or entry.id in skip:
                continue
            if entry.party_size <= capacity:
                return entry
        return None

    @classmethod
    def apply(cls, entry: WaitlistEntry, command: WaitlistCommand, now: datetime) -> WaitlistStatus:
        """Move an entry to its next status, stamping the matching time."""
        allowed = cls.VALID_TRANSITIONS[command]
        if entry.status not in allowed:
            raise InvalidTransition("waitlist entry", entry.id, entry.status.value, command.value)

        to_status = allowed[entry.status]
        setattr(entry, cls.TIMESTAMP_FIELDS[to_status], now)
        entry.status = to_status
        return to_status


def average_turn_minutes(turn_times: Sequence[float], default: float) -> float:
    """Mean observed turn time, or ``default`` before any table has turned."""
    observed = [t for t in turn_times if t is not None and t > 0]
    if not observed:
        return default
    return statistics.mean(observed)


def estimate_wait_minutes(
    plan: FloorPlan,
    party_size: int,
    avg_turn: float,
    concurrent_turnovers: int,
) -> int:
    """
    Coarse linear wait estimate for a new waitlist party.

    occupied tables that fit the party x average turn, divided by how many of
    them are expected to turn over at once. With nothing fitting occupied the
    party still waits one full turn, so the estimate is always positive.
    """
    fitting = [u for u in plan.units() if u.capacity >= party_size]
    occupied = plan.count_in_status(fitting, TableStatus.SEATED, TableStatus.BILL_DROPPED)

    concurrent = max(1, min(occupied, concurrent_turnovers))
    minutes = max(occupied, 1) * avg_turn / concurrent
    return max(1, math.ceil(minutes))
