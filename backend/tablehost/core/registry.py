"""Table registry and derived table status.

A table's status is never stored. It is recomputed from the table's blocked
flag and the reservation (if any) that has the table or its combined group
right now:

    blocked                     -> BLOCKED
    no holder                   -> AVAILABLE
    CONFIRMED, inside window    -> RESERVED
    SEATED                      -> SEATED
    BILL_DROPPED                -> BILL_DROPPED

A unit may carry several bookings on different dates. Only the party at the
table, or the CONFIRMED booking whose look-ahead/grace window covers now,
holds it at a given moment. Two bookings clash when their times are less
than one turn apart.

Members of a combined group all report the group's status.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .entities import (
    AssignableUnit,
    CombinedGroup,
    Reservation,
    ReservationStatus,
    Table,
    TableStatus,
    TableView,
)

OCCUPYING_STATUSES = (ReservationStatus.SEATED, ReservationStatus.BILL_DROPPED)


def derive_status(
    blocked: bool,
    holder: Optional[Reservation],
    now: datetime,
    lookahead: timedelta,
    grace: timedelta,
) -> TableStatus:
    """Status of a table (or group) given its holding reservation."""
    if blocked:
        return TableStatus.BLOCKED
    if holder is None or holder.is_terminal:
        return TableStatus.AVAILABLE
    if holder.status == ReservationStatus.SEATED:
        return TableStatus.SEATED
    if holder.status == ReservationStatus.BILL_DROPPED:
        return TableStatus.BILL_DROPPED
    if holder.status == ReservationStatus.CONFIRMED:
        start = holder.requested_at - lookahead
        end = holder.requested_at + grace
        if start <= now <= end:
            return TableStatus.RESERVED
    return TableStatus.AVAILABLE


class FloorPlan:
    """
    Point-in-time snapshot of one organisation's floor.

    Built from the tables, the active combined groups and the non-terminal
    reservations. Answers which units exist, who holds them and what status
    each table derives to. Cheap to rebuild; never cached between commands.
    """

    def __init__(
        self,
        tables: Iterable[Table],
        groups: Iterable[CombinedGroup],
        reservations: Iterable[Reservation],
        now: datetime,
        lookahead_minutes: int = 120,
        grace_minutes: int = 15,
        turn_minutes: float = 90,
    ):
        self.now = now
        self.lookahead = timedelta(minutes=lookahead_minutes)
        self.grace = timedelta(minutes=grace_minutes)
        self.turn = timedelta(minutes=turn_minutes)

        self.tables: Dict[int, Table] = {t.id: t for t in tables}
        self.groups: Dict[str, CombinedGroup] = {g.id: g for g in groups}

        self._table_group: Dict[int, str] = {}
        for group in self.groups.values():
            for table_id in group.table_ids:
                self._table_group[table_id] = group.id

        # unit key -> every non-terminal reservation on it, any date
        self._bookings: Dict[Tuple[str, Union[int, str]], List[Reservation]] = {}
        for reservation in reservations:
            key = reservation.unit_key()
            if key is None or reservation.is_terminal:
                continue
            self._bookings.setdefault(key, []).append(reservation)

    # ==================== Units ====================

    def group_of(self, table_id: int) -> Optional[CombinedGroup]:
        group_id = self._table_group.get(table_id)
        return self.groups.get(group_id) if group_id is not None else None

    def table_unit(self, table: Table) -> AssignableUnit:
        return AssignableUnit(
            kind="table",
            id=table.id,
            table_ids=(table.id,),
            capacity=table.capacity,
            name=table.name,
        )

    def group_unit(self, group: CombinedGroup) -> AssignableUnit:
        members = [self.tables[tid] for tid in group.table_ids if tid in self.tables]
        return AssignableUnit(
            kind="group",
            id=group.id,
            table_ids=tuple(sorted(group.table_ids)),
            capacity=sum(t.capacity for t in members),
            name=" + ".join(t.name for t in sorted(members, key=lambda t: t.id)),
        )

    def units(self) -> List[AssignableUnit]:
        """Every assignable unit: ungrouped tables plus combined groups."""
        result = [
            self.table_unit(table)
            for table in self.tables.values()
            if table.id not in self._table_group
        ]
        result.extend(self.group_unit(group) for group in self.groups.values())
        return result

    def unit_for_table(self, table_id: int) -> AssignableUnit:
        """The unit a table is assigned through (its group when combined)."""
        group = self.group_of(table_id)
        if group is not None:
            return self.group_unit(group)
        return self.table_unit(self.tables[table_id])

    def unit(self, kind: str, unit_id: Union[int, str]) -> Optional[AssignableUnit]:
        if kind == "group":
            group = self.groups.get(unit_id)
            return self.group_unit(group) if group else None
        table = self.tables.get(unit_id)
        if table is None or table.id in self._table_group:
            return None
        return self.table_unit(table)

    # ==================== Status ====================

    def bookings(self, unit: AssignableUnit) -> List[Reservation]:
        """Non-terminal reservations referencing the unit, whatever their time."""
        return list(self._bookings.get((unit.kind, unit.id), ()))

    def holder(self, unit: AssignableUnit) -> Optional[Reservation]:
        """The reservation that has the unit right now, if any."""
        upcoming = []
        for reservation in self.bookings(unit):
            if reservation.status in OCCUPYING_STATUSES:
                return reservation
            if reservation.status == ReservationStatus.CONFIRMED:
                start = reservation.requested_at - self.lookahead
                if start <= self.now <= reservation.requested_at + self.grace:
                    upcoming.append(reservation)
        return min(upcoming, key=lambda r: r.requested_at) if upcoming else None

    def conflicts(
        self,
        unit: AssignableUnit,
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> List[Reservation]:
        """
        Reservations a new hold for a party arriving at ``at`` would clash with.

        A booking clashes when it is less than one turn away. A party at the
        table is expected to stay one turn from being seated, and at least
        until the grace period after now when it overstays.
        """
        at = self.now if at is None else at
        clashes = []
        for reservation in self.bookings(unit):
            if ignore is not None and reservation.id == ignore:
                continue
            if reservation.status in OCCUPYING_STATUSES:
                seated = reservation.seated_at or reservation.requested_at
                if at <= max(seated + self.turn, self.now + self.grace):
                    clashes.append(reservation)
            elif abs(at - reservation.requested_at) < self.turn:
                clashes.append(reservation)
        return clashes

    def unit_status(self, unit: AssignableUnit) -> TableStatus:
        blocked = any(
            self.tables[tid].blocked for tid in unit.table_ids if tid in self.tables
        )
        return derive_status(
            blocked, self.holder(unit), self.now, self.lookahead, self.grace
        )

    def table_status(self, table_id: int) -> TableStatus:
        return self.unit_status(self.unit_for_table(table_id))

    def is_assignable(
        self,
        unit: AssignableUnit,
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> bool:
        """
        Whether the unit can be held for a party arriving at ``at``.

        Blocked units never are. A party arriving now (within the grace
        period) also needs the unit to derive AVAILABLE; any arrival needs
        no clashing booking. ``ignore`` is the reservation being moved or
        seated, which never clashes with itself.
        """
        at = self.now if at is None else at
        if self.unit_status(unit) == TableStatus.BLOCKED:
            return False
        if at <= self.now + self.grace:
            holder = self.holder(unit)
            if holder is not None and holder.id != ignore:
                return False
        return not self.conflicts(unit, at, ignore)

    def is_idle(self, unit: AssignableUnit) -> bool:
        """AVAILABLE with no reservation on it at all; safe to combine or split."""
        return self.unit_status(unit) == TableStatus.AVAILABLE and not self.bookings(unit)

    def view(self, table_id: int) -> TableView:
        unit = self.unit_for_table(table_id)
        holder = self.holder(unit)
        return TableView(
            table=self.tables[table_id],
            status=self.unit_status(unit),
            reservation_id=holder.id if holder else None,
            group_id=unit.id if unit.is_group else None,
        )

    def views(self) -> List[TableView]:
        ordered = sorted(self.tables.values(), key=lambda t: (t.sort_order, t.id))
        return [self.view(t.id) for t in ordered]

    def count_in_status(self, units: Iterable[AssignableUnit], *statuses: TableStatus) -> int:
        return sum(1 for u in units if self.unit_status(u) in statuses)
