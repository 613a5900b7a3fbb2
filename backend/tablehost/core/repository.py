"""Persistence interface for the floor engine, plus an in-memory store."""

import copy
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from .entities import (
    CombinedGroup,
    Guest,
    Reservation,
    ReservationChannel,
    ReservationStatus,
    Table,
    WaitlistEntry,
)


@dataclass
class ReservationFilter:
    """Criteria for listing reservations. Empty filter matches everything."""

    statuses: Optional[Tuple[ReservationStatus, ...]] = None
    active_only: bool = False
    on_date: Optional[date] = None
    table_id: Optional[int] = None
    group_id: Optional[str] = None
    guest_id: Optional[int] = None
    channel: Optional[ReservationChannel] = None

    def matches(self, reservation: Reservation) -> bool:
        if self.active_only and reservation.is_terminal:
            return False
        if self.statuses and reservation.status not in self.statuses:
            return False
        if self.on_date and reservation.requested_at.date() != self.on_date:
            return False
        if self.table_id is not None and reservation.table_id != self.table_id:
            return False
        if self.group_id is not None and reservation.group_id != self.group_id:
            return False
        if self.guest_id is not None and reservation.guest_id != self.guest_id:
            return False
        if self.channel and reservation.channel != self.channel:
            return False
        return True


Entity = object  # Table | CombinedGroup | Reservation | Guest | WaitlistEntry


class FloorRepository(ABC):
    """
    Storage for one or more organisations' floors.

    Loaders return detached copies: mutating a loaded entity has no effect
    until it is passed to ``save``. ``save`` writes every entity it is given
    (and removes every group in ``delete``) in a single commit, assigning ids
    to new entities in place.
    """

    @abstractmethod
    async def get_table(self, org_id: str, table_id: int) -> Optional[Table]: ...

    @abstractmethod
    async def list_tables(self, org_id: str) -> List[Table]: ...

    @abstractmethod
    async def get_group(self, org_id: str, group_id: str) -> Optional[CombinedGroup]: ...

    @abstractmethod
    async def list_groups(self, org_id: str) -> List[CombinedGroup]: ...

    @abstractmethod
    async def get_reservation(self, org_id: str, reservation_id: int) -> Optional[Reservation]: ...

    @abstractmethod
    async def list_reservations(
        self, org_id: str, criteria: Optional[ReservationFilter] = None
    ) -> List[Reservation]: ...

    @abstractmethod
    async def get_guest(self, org_id: str, guest_id: int) -> Optional[Guest]: ...

    @abstractmethod
    async def get_waitlist_entry(self, org_id: str, entry_id: int) -> Optional[WaitlistEntry]: ...

    @abstractmethod
    async def list_waitlist(self, org_id: str, include_closed: bool = False) -> List[WaitlistEntry]: ...

    @abstractmethod
    async def recent_turn_times(self, org_id: str, limit: int = 50) -> List[float]: ...

    @abstractmethod
    async def save(self, *entities: Entity, delete: Iterable[CombinedGroup] = ()): ...


class InMemoryFloorRepository(FloorRepository):
    """Dictionary-backed repository for tests, demos and single-process use."""

    _KINDS = {
        Table: "tables",
        CombinedGroup: "groups",
        Reservation: "reservations",
        Guest: "guests",
        WaitlistEntry: "waitlist",
    }

    def __init__(self):
        self._store: Dict[Tuple[str, str], Dict[int, Entity]] = {}
        self._ids = {kind: itertools.count(1) for kind in self._KINDS.values()}

    def _bucket(self, org_id: str, kind: str) -> Dict[int, Entity]:
        return self._store.setdefault((org_id, kind), {})

    def _get(self, org_id: str, kind: str, entity_id: int):
        found = self._bucket(org_id, kind).get(entity_id)
        return copy.deepcopy(found) if found is not None else None

    def _all(self, org_id: str, kind: str) -> list:
        bucket = self._bucket(org_id, kind)
        return [copy.deepcopy(bucket[k]) for k in sorted(bucket)]

    async def get_table(self, org_id, table_id):
        return self._get(org_id, "tables", table_id)

    async def list_tables(self, org_id):
        return self._all(org_id, "tables")

    async def get_group(self, org_id, group_id):
        return self._get(org_id, "groups", group_id)

    async def list_groups(self, org_id):
        return self._all(org_id, "groups")

    async def get_reservation(self, org_id, reservation_id):
        return self._get(org_id, "reservations", reservation_id)

    async def list_reservations(self, org_id, criteria=None):
        criteria = criteria or ReservationFilter()
        found = [r for r in self._all(org_id, "reservations") if criteria.matches(r)]
        return sorted(found, key=lambda r: (r.requested_at, r.id))

    async def get_guest(self, org_id, guest_id):
        return self._get(org_id, "guests", guest_id)

    async def get_waitlist_entry(self, org_id, entry_id):
        return self._get(org_id, "waitlist", entry_id)

    async def list_waitlist(self, org_id, include_closed=False):
        entries = self._all(org_id, "waitlist")
        if not include_closed:
            entries = [e for e in entries if e.is_active]
        return sorted(entries, key=lambda e: e.queue_key())

    async def recent_turn_times(self, org_id, limit=50):
        completed = [
            r
            for r in self._all(org_id, "reservations")
            if r.status == ReservationStatus.COMPLETED and r.turn_time_minutes is not None
        ]
        completed.sort(key=lambda r: r.completed_at, reverse=True)
        return [r.turn_time_minutes for r in completed[:limit]]

    async def save(self, *entities, delete=()):
        # Stage first so a bad entity leaves the store untouched
        staged = []
        for entity in entities:
            kind = self._KINDS.get(type(entity))
            if kind is None:
                raise TypeError(f"Cannot store {type(entity).__name__}")
            staged.append((kind, entity))

        for kind, entity in staged:
            if entity.id is None:
                entity.id = next(self._ids[kind])
            self._bucket(entity.org_id, kind)[entity.id] = copy.deepcopy(entity)

        for group in delete:
            self._bucket(group.org_id, "groups").pop(group.id, None)
