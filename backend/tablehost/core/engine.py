"""Floor engine: the command façade staff terminals and integrations call."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from ..config import Settings, get_settings
from .assignment import TableAssigner
from .clock import Clock
from .entities import (
    AssignableUnit,
    CombinedGroup,
    Guest,
    NoFit,
    Reservation,
    ReservationChannel,
    ReservationStatus,
    StatusChange,
    Table,
    TableStatus,
    TableView,
    WaitlistEntry,
)
from .errors import Contended, NotFound, TableOccupied, TableUnavailable
from .events import (
    DomainEvent,
    EventBus,
    ReservationChanged,
    TableChanged,
    TableFreed,
    WaitlistChanged,
    WaitlistPromoted,
)
from .locks import LockManager
from .promoter import WaitlistPromoter
from .registry import FloorPlan
from .repository import FloorRepository, InMemoryFloorRepository, ReservationFilter
from .state_machine import ReservationCommand, ReservationStateMachine
from .waitlist import (
    WaitlistCommand,
    WaitlistQueue,
    average_turn_minutes,
    estimate_wait_minutes,
)

logger = logging.getLogger(__name__)

OCCUPIED_STATUSES = (TableStatus.SEATED, TableStatus.BILL_DROPPED)

Commit = Callable[[FloorPlan, AssignableUnit], Awaitable[object]]


class FloorEngine:
    """
    Coordinates the floor of every organisation it serves:
    - Reservation lifecycle (state machine)
    - Derived table status, blocking and combining
    - Best-fit assignment for reservations and walk-ins
    - The waitlist and its background promoter
    - Locks, persistence and domain events

    Every mutation follows the same shape: read a snapshot without locks,
    take the locks of everything it will touch, re-read and re-check under
    the locks, save in one commit, release, then publish one event.
    """

    def __init__(
        self,
        repository: Optional[FloorRepository] = None,
        bus: Optional[EventBus] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        locks: Optional[LockManager] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = repository or InMemoryFloorRepository()
        self.bus = bus or EventBus()
        self.clock = clock or Clock()
        self.locks = locks or LockManager(timeout=self.settings.lock_timeout_seconds)
        self.assigner = TableAssigner()

        self.promoter = WaitlistPromoter(self, max_attempts=self.settings.max_assignment_attempts)
        if self.settings.promotion_enabled:
            self.bus.subscribe(self.promoter.on_event)

    # ==================== Snapshots ====================

    async def snapshot(self, org_id: str) -> FloorPlan:
        """Current floor of one organisation."""
        tables = await self.repository.list_tables(org_id)
        groups = await self.repository.list_groups(org_id)
        reservations = await self.repository.list_reservations(
            org_id, ReservationFilter(active_only=True)
        )
        return FloorPlan(
            tables,
            groups,
            reservations,
            now=self.clock.now(),
            lookahead_minutes=self.settings.reserved_lookahead_minutes,
            grace_minutes=self.settings.reservation_grace_minutes,
            turn_minutes=self.settings.avg_turn_minutes,
        )

    async def _emit(self, event: DomainEvent):
        await self.bus.publish(event)

    async def _require_table(self, org_id: str, table_id: int) -> Table:
        table = await self.repository.get_table(org_id, table_id)
        if table is None:
            raise NotFound("table", table_id)
        return table

    async def _require_group(self, org_id: str, group_id: str) -> CombinedGroup:
        group = await self.repository.get_group(org_id, group_id)
        if group is None:
            raise NotFound("group", group_id)
        return group

    async def _require_reservation(self, org_id: str, reservation_id: int) -> Reservation:
        reservation = await self.repository.get_reservation(org_id, reservation_id)
        if reservation is None:
            raise NotFound("reservation", reservation_id)
        return reservation

    async def _require_entry(self, org_id: str, entry_id: int) -> WaitlistEntry:
        entry = await self.repository.get_waitlist_entry(org_id, entry_id)
        if entry is None:
            raise NotFound("waitlist entry", entry_id)
        return entry

    async def _unit_tables(self, org_id: str, reservation: Reservation) -> Tuple[int, ...]:
        """Tables a reservation holds, empty when it holds none."""
        if reservation.group_id is not None:
            group = await self.repository.get_group(org_id, reservation.group_id)
            return tuple(sorted(group.table_ids)) if group else ()
        if reservation.table_id is not None:
            return (reservation.table_id,)
        return ()

    async def _requested_unit_tables(
        self,
        org_id: str,
        table_id: Optional[int],
        group_id: Optional[str],
    ) -> Tuple[int, ...]:
        """Tables behind an explicitly requested table or group."""
        if group_id is not None:
            group = await self._require_group(org_id, group_id)
            return tuple(sorted(group.table_ids))
        if table_id is not None:
            table = await self._require_table(org_id, table_id)
            if table.group_id is not None:
                group = await self.repository.get_group(org_id, table.group_id)
                if group is not None:
                    return tuple(sorted(group.table_ids))
            return (table.id,)
        return ()

    @asynccontextmanager
    async def _reservation_scope(
        self,
        org_id: str,
        reservation_id: int,
        extra_tables: Sequence[int] = (),
    ) -> AsyncIterator[Reservation]:
        """
        Lock a reservation together with the tables it holds.

        The held unit is read before locking; if it changed by the time the
        locks are taken the read is repeated, up to
        ``max_assignment_attempts`` times.
        """
        for _ in range(self.settings.max_assignment_attempts):
            current = await self._require_reservation(org_id, reservation_id)
            tables = await self._unit_tables(org_id, current)
            async with self.locks.hold(
                org_id, reservations=[reservation_id], tables=[*tables, *extra_tables]
            ):
                fresh = await self._require_reservation(org_id, reservation_id)
                if await self._unit_tables(org_id, fresh) == tables:
                    yield fresh
                    return
            logger.debug("Reservation %s changed tables while locking; retrying", reservation_id)

        raise Contended(
            f"Reservation {reservation_id} keeps changing; try again",
            reservation_id=reservation_id,
        )

    async def _claim(
        self,
        org_id: str,
        party_size: int,
        commit: Commit,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        strict: bool = False,
        reservations: Sequence[int] = (),
        waitlist: Sequence[int] = (),
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> Union[object, NoFit]:
        """
        Choose a unit for a party and run ``commit`` while it is locked.

        Scores an unlocked snapshot, locks the winner (plus any reservation
        or waitlist entry the commit touches), then re-checks that unit on a
        fresh snapshot. A unit lost to a concurrent command is excluded and
        the next candidate tried. With ``strict`` only the preferred unit is
        acceptable and losing it raises ``TableUnavailable``. ``at`` is the
        party's arrival (now for walk-ins); ``ignore`` is a reservation
        already on the floor that must not clash with itself.
        """
        if party_size < 1:
            raise ValueError("party_size must be at least 1")

        exclude: List[tuple] = []
        for attempt in range(1, self.settings.max_assignment_attempts + 1):
            plan = await self.snapshot(org_id)

            if strict:
                choice = self.assigner.preferred(
                    plan, party_size, preferred_table_id, preferred_group_id, at, ignore
                )
                if choice is None:
                    raise TableUnavailable(
                        "Requested table is not available for this party",
                        table_ids=[preferred_table_id] if preferred_table_id is not None else [],
                    )
            else:
                choice = self.assigner.assign(
                    plan,
                    party_size,
                    preferred_table_id=preferred_table_id,
                    preferred_group_id=preferred_group_id,
                    exclude=tuple(exclude),
                    at=at,
                    ignore=ignore,
                )
                if isinstance(choice, NoFit):
                    logger.debug("No fit for party of %d in %s", party_size, org_id)
                    return choice

            async with self.locks.hold(
                org_id, reservations=reservations, tables=choice.table_ids, waitlist=waitlist
            ):
                fresh = await self.snapshot(org_id)
                unit = fresh.unit(choice.kind, choice.id)
                if (
                    unit is not None
                    and unit.table_ids == choice.table_ids
                    and unit.capacity >= party_size
                    and fresh.is_assignable(unit, at, ignore)
                ):
                    return await commit(fresh, unit)

            logger.debug(
                "Lost %s %s to a concurrent command (attempt %d)", choice.kind, choice.id, attempt
            )
            if strict:
                raise TableUnavailable(
                    f"{choice.name} was taken by another terminal", table_ids=choice.table_ids
                )
            exclude.append((choice.kind, choice.id))

        return NoFit(party_size=party_size, reason="tables kept being taken; try again")

    @staticmethod
    def _hold_unit(reservation: Reservation, unit: Optional[AssignableUnit]):
        reservation.table_id = None
        reservation.group_id = None
        if unit is None:
            return
        if unit.is_group:
            reservation.group_id = unit.id
        else:
            reservation.table_id = unit.id

    def _reservation_event(
        self,
        reservation: Reservation,
        command: str,
        table_ids: Sequence[int] = (),
        freed: Sequence[int] = (),
    ) -> ReservationChanged:
        return ReservationChanged(
            org_id=reservation.org_id,
            occurred_at=self.clock.now(),
            reservation_id=reservation.id,
            status=reservation.status.value,
            command=command,
            table_ids=list(table_ids),
            group_id=reservation.group_id,
            freed_table_ids=list(freed),
            waitlist_entry_id=reservation.waitlist_entry_id,
        )

    # ==================== Tables ====================

    async def add_table(
        self,
        org_id: str,
        name: str,
        capacity: int,
        zone: str = "indoor",
        min_capacity: int = 1,
        sort_order: int = 0,
    ) -> Table:
        """Register a table. Floor-plan setup belongs elsewhere; this seeds."""
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if not 1 <= min_capacity <= capacity:
            raise ValueError("min_capacity must be between 1 and capacity")

        table = Table(
            id=None,
            org_id=org_id,
            name=name,
            capacity=capacity,
            zone=zone,
            min_capacity=min_capacity,
            sort_order=sort_order,
        )
        await self.repository.save(table)
        logger.info("Added table %s (%d seats) to %s", table.name, capacity, org_id)

        await self._emit(
            TableChanged(
                org_id=org_id,
                occurred_at=self.clock.now(),
                table_ids=[table.id],
                status=TableStatus.AVAILABLE.value,
                reason="added",
            )
        )
        return table

    async def table_status(self, org_id: str, table_id: int) -> TableView:
        plan = await self.snapshot(org_id)
        if table_id not in plan.tables:
            raise NotFound("table", table_id)
        return plan.view(table_id)

    async def floor_status(self, org_id: str) -> List[TableView]:
        plan = await self.snapshot(org_id)
        return plan.views()

    async def block(
        self,
        org_id: str,
        table_id: int,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> TableView:
        """Take a table out of service. Refused while guests are at it."""
        await self._require_table(org_id, table_id)

        async with self.locks.hold(org_id, tables=[table_id]):
            plan = await self.snapshot(org_id)
            table = plan.tables.get(table_id)
            if table is None:
                raise NotFound("table", table_id)

            status = plan.table_status(table_id)
            if status in OCCUPIED_STATUSES:
                logger.debug("Refused to block table %s: %s", table_id, status.value)
                raise TableOccupied(table_id, status.value)

            table.blocked = True
            table.block_reason = reason
            await self.repository.save(table)

        logger.info("Table %s blocked by %s (%s)", table_id, actor or "staff", reason or "no reason")
        await self._emit(
            TableChanged(
                org_id=org_id,
                occurred_at=self.clock.now(),
                table_ids=[table_id],
                status=TableStatus.BLOCKED.value,
                reason=reason or "",
                group_id=table.group_id,
            )
        )
        return await self.table_status(org_id, table_id)

    async def unblock(self, org_id: str, table_id: int, actor: Optional[str] = None) -> TableView:
        """Return a blocked table to service."""
        await self._require_table(org_id, table_id)

        async with self.locks.hold(org_id, tables=[table_id]):
            plan = await self.snapshot(org_id)
            table = plan.tables.get(table_id)
            if table is None:
                raise NotFound("table", table_id)

            status = plan.table_status(table_id)
            if status in OCCUPIED_STATUSES:
                raise TableOccupied(table_id, status.value)

            table.blocked = False
            table.block_reason = None
            await self.repository.save(table)

        logger.info("Table %s unblocked by %s", table_id, actor or "staff")
        await self._emit(
            TableFreed(
                org_id=org_id,
                occurred_at=self.clock.now(),
                table_ids=[table_id],
                reason="unblocked",
            )
        )
        return await self.table_status(org_id, table_id)

    async def combine(
        self,
        org_id: str,
        table_ids: Sequence[int],
        actor: Optional[str] = None,
    ) -> CombinedGroup:
        """Join two or more free tables into one assignable group."""
        wanted = sorted(set(table_ids))
        if len(wanted) < 2:
            raise ValueError("combine needs at least two distinct tables")
        for table_id in wanted:
            await self._require_table(org_id, table_id)

        async with self.locks.hold(org_id, tables=wanted):
            plan = await self.snapshot(org_id)
            members = []
            for table_id in wanted:
                table = plan.tables.get(table_id)
                if table is None:
                    raise NotFound("table", table_id)
                if plan.group_of(table_id) is not None:
                    raise TableUnavailable(f"{table.name} is already combined", table_ids=[table_id])
                if not plan.is_idle(plan.table_unit(table)):
                    raise TableUnavailable(
                        f"{table.name} is {plan.table_status(table_id).value} or booked",
                        table_ids=[table_id],
                    )
                members.append(table)

            group = CombinedGroup(
                id=str(uuid.uuid4()),
                org_id=org_id,
                table_ids=wanted,
                created_at=self.clock.now(),
            )
            for table in members:
                table.group_id = group.id
            await self.repository.save(group, *members)

        logger.info("Combined tables %s into group %s (%s)", wanted, group.id, actor or "staff")
        await self._emit(
            TableChanged(
                org_id=org_id,
                occurred_at=self.clock.now(),
                table_ids=wanted,
                status="combined",
                group_id=group.id,
            )
        )
        return group

    async def uncombine(
        self,
        org_id: str,
        group_id: str,
        actor: Optional[str] = None,
    ) -> List[Table]:
        """Split a free, unheld group back into its tables."""
        group = await self._require_group(org_id, group_id)

        async with self.locks.hold(org_id, tables=group.table_ids):
            group = await self._require_group(org_id, group_id)
            plan = await self.snapshot(org_id)
            unit = plan.unit("group", group_id)
            if not plan.is_idle(unit):
                raise TableUnavailable(
                    f"Group {unit.name} is {plan.unit_status(unit).value} or booked",
                    table_ids=list(unit.table_ids),
                )

            members = [plan.tables[tid] for tid in group.table_ids if tid in plan.tables]
            for table in members:
                table.group_id = None
            await self.repository.save(*members, delete=[group])

        freed = sorted(t.id for t in members)
        logger.info("Split group %s back into tables %s (%s)", group_id, freed, actor or "staff")
        await self._emit(
            TableFreed(
                org_id=org_id,
                occurred_at=self.clock.now(),
                table_ids=freed,
                reason="uncombined",
            )
        )
        return members

    async def assign_table(
        self,
        org_id: str,
        party_size: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
    ) -> Union[AssignableUnit, NoFit]:
        """Best-fit suggestion. Reads only; nothing is held."""
        plan = await self.snapshot(org_id)
        return self.assigner.assign(
            plan,
            party_size,
            preferred_table_id=preferred_table_id,
            preferred_group_id=preferred_group_id,
        )

    # ==================== Reservations ====================

    async def get_reservation(self, org_id: str, reservation_id: int) -> Reservation:
        return await self._require_reservation(org_id, reservation_id)

    async def list_reservations(
        self, org_id: str, criteria: Optional[ReservationFilter] = None
    ) -> List[Reservation]:
        return await self.repository.list_reservations(org_id, criteria)

    async def create_reservation(
        self,
        org_id: str,
        party_size: int,
        requested_at: datetime,
        guest_id: Optional[int] = None,
        guest_name: str = "",
        channel: ReservationChannel = ReservationChannel.PHONE,
        table_id: Optional[int] = None,
        group_id: Optional[str] = None,
        auto_assign: bool = False,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Union[Reservation, NoFit]:
        """
        Record a new ENQUIRY.

        Args:
            org_id: Organisation taking the booking
            party_size: Number of guests
            requested_at: When the party is expected
            guest_id: Known guest, if any
            guest_name: Name to show when there is no guest record
            channel: Where the booking came from
            table_id: Table to hold, checked under its lock
            group_id: Combined group to hold, checked under its locks
            auto_assign: Hold the best-fit unit instead
            notes: Free text for the host

        Returns:
            The stored reservation, or ``NoFit`` when ``auto_assign`` found
            nothing (no reservation is created in that case)
        """
        if party_size < 1:
            raise ValueError("party_size must be at least 1")

        if guest_id is not None:
            guest = await self.repository.get_guest(org_id, guest_id)
            if guest is None:
                raise NotFound("guest", guest_id)
            guest_name = guest_name or guest.display_name

        reservation = Reservation(
            id=None,
            org_id=org_id,
            party_size=party_size,
            requested_at=requested_at,
            guest_id=guest_id,
            guest_name=guest_name,
            channel=channel,
            notes=notes,
            created_at=self.clock.now(),
        )

        if table_id is None and group_id is None and not auto_assign:
            await self.repository.save(reservation)
            held: Tuple[int, ...] = ()
        else:
            if group_id is not None or table_id is not None:
                # Unknown ids are NotFound, not NoFit
                await self._requested_unit_tables(org_id, table_id, group_id)

            async def commit(plan: FloorPlan, unit: AssignableUnit):
                self._hold_unit(reservation, unit)
                await self.repository.save(reservation)
                return unit.table_ids

            result = await self._claim(
                org_id,
                party_size,
                commit,
                preferred_table_id=table_id,
                preferred_group_id=group_id,
                strict=table_id is not None or group_id is not None,
                at=requested_at,
            )
            if isinstance(result, NoFit):
                return result
            held = result

        logger.info(
            "Reservation %s created for %s (%d) at %s via %s",
            reservation.id,
            reservation.guest_name or "guest",
            party_size,
            requested_at.isoformat(),
            channel.value,
        )
        await self._emit(self._reservation_event(reservation, "create", table_ids=held))
        return reservation

    async def transition(
        self,
        org_id: str,
        reservation_id: int,
        command: Union[ReservationCommand, str],
        actor: Optional[str] = None,
    ) -> Union[Reservation, NoFit]:
        """
        Apply a status command to a reservation.

        ``seat`` on a reservation with no table runs best-fit assignment
        first, under the same locks, and may return ``NoFit``. ``edit`` is
        not a status change; use ``edit_reservation``.
        """
        cmd = ReservationStateMachine.parse_command(command)
        if cmd == ReservationCommand.EDIT:
            raise ValueError("edit needs field changes; use edit_reservation")

        current = await self._require_reservation(org_id, reservation_id)
        if cmd == ReservationCommand.SEAT and not current.has_unit:
            # Fail fast on a status that can never be seated
            ReservationStateMachine.target(current, cmd)
            return await self._seat_with_assignment(org_id, reservation_id, actor)

        async with self._reservation_scope(org_id, reservation_id) as reservation:
            tables = await self._unit_tables(org_id, reservation)

            if cmd == ReservationCommand.SEAT:
                plan = await self.snapshot(org_id)
                unit = plan.unit(*reservation.unit_key())
                if unit is None or plan.unit_status(unit) == TableStatus.BLOCKED:
                    raise TableUnavailable(
                        f"Reservation {reservation_id}'s table is blocked or gone",
                        table_ids=list(tables),
                    )
                if plan.conflicts(unit, ignore=reservation.id):
                    raise TableUnavailable(
                        f"{unit.name} is taken by another party right now",
                        table_ids=list(tables),
                    )

            change = ReservationStateMachine.apply(reservation, cmd, self.clock.now(), actor)

            guest = None
            if reservation.guest_id is not None and change.to_status in (
                ReservationStatus.COMPLETED,
                ReservationStatus.NO_SHOW,
            ):
                guest = await self.repository.get_guest(org_id, reservation.guest_id)
                if guest is not None:
                    if change.to_status == ReservationStatus.COMPLETED:
                        guest.visit_count += 1
                    else:
                        guest.no_show_count += 1

            await self.repository.save(reservation, *([guest] if guest else []))

        freed = tables if cmd in ReservationStateMachine.RELEASING_COMMANDS else ()
        logger.info(
            "Reservation %s: %s -> %s by %s",
            reservation_id,
            change.from_status.value,
            change.to_status.value,
            actor or "staff",
        )
        await self._emit(self._reservation_event(reservation, cmd.value, tables, freed))
        return reservation

    async def _seat_with_assignment(
        self, org_id: str, reservation_id: int, actor: Optional[str]
    ) -> Union[Reservation, NoFit]:
        current = await self._require_reservation(org_id, reservation_id)

        async def commit(plan: FloorPlan, unit: AssignableUnit):
            reservation = await self._require_reservation(org_id, reservation_id)
            if reservation.has_unit:
                raise Contended(
                    f"Reservation {reservation_id} was assigned a table meanwhile; try again",
                    reservation_id=reservation_id,
                )
            self._hold_unit(reservation, unit)
            ReservationStateMachine.apply(reservation, ReservationCommand.SEAT, self.clock.now(), actor)
            await self.repository.save(reservation)
            return reservation

        result = await self._claim(
            org_id, current.party_size, commit, reservations=[reservation_id], ignore=reservation_id
        )
        if isinstance(result, NoFit):
            return result

        tables = await self._unit_tables(org_id, result)
        logger.info("Reservation %s seated at auto-assigned %s", reservation_id, list(tables))
        await self._emit(self._reservation_event(result, ReservationCommand.SEAT.value, tables))
        return result

    async def edit_reservation(
        self,
        org_id: str,
        reservation_id: int,
        requested_at: Optional[datetime] = None,
        party_size: Optional[int] = None,
        table_id: Optional[int] = None,
        group_id: Optional[str] = None,
        clear_table: bool = False,
        notes: Optional[str] = None,
        guest_name: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Reservation:
        """Change an ENQUIRY or CONFIRMED reservation's details."""
        if party_size is not None and party_size < 1:
            raise ValueError("party_size must be at least 1")

        current = await self._require_reservation(org_id, reservation_id)
        ReservationStateMachine.check_editable(current)

        moving = table_id is not None or group_id is not None
        new_tables = await self._requested_unit_tables(org_id, table_id, group_id)

        async with self._reservation_scope(
            org_id, reservation_id, extra_tables=new_tables
        ) as reservation:
            ReservationStateMachine.check_editable(reservation)
            old_tables = await self._unit_tables(org_id, reservation)
            party = party_size or reservation.party_size
            when = requested_at or reservation.requested_at
            plan = await self.snapshot(org_id)

            if moving:
                requested = (
                    plan.unit("group", group_id)
                    if group_id is not None
                    else plan.unit_for_table(table_id)
                )
                if requested is None:
                    raise NotFound("group", group_id)
                if (requested.kind, requested.id) != reservation.unit_key():
                    unit = self.assigner.preferred(
                        plan, party, table_id, group_id, at=when, ignore=reservation.id
                    )
                    if unit is None:
                        raise TableUnavailable(
                            f"{requested.name} cannot take a party of {party} then",
                            table_ids=list(requested.table_ids),
                        )
                    self._hold_unit(reservation, unit)
            elif clear_table:
                self._hold_unit(reservation, None)

            key = reservation.unit_key()
            if key is not None:
                held = plan.unit(*key)
                if held is None or held.capacity < party:
                    raise TableUnavailable(
                        f"Party of {party} does not fit the held table",
                        table_ids=list(old_tables),
                    )
                if requested_at is not None and plan.conflicts(held, when, ignore=reservation.id):
                    raise TableUnavailable(
                        f"{held.name} is already booked around {when.isoformat()}",
                        table_ids=list(held.table_ids),
                    )

            if requested_at is not None:
                reservation.requested_at = requested_at
            if party_size is not None:
                reservation.party_size = party_size
            if notes is not None:
                reservation.notes = notes
            if guest_name is not None:
                reservation.guest_name = guest_name

            reservation.history.append(
                StatusChange(
                    from_status=reservation.status,
                    to_status=reservation.status,
                    command=ReservationCommand.EDIT.value,
                    actor=actor,
                    at=self.clock.now(),
                )
            )
            await self.repository.save(reservation)
            now_tables = await self._unit_tables(org_id, reservation)

        freed = [t for t in old_tables if t not in now_tables]
        logger.info("Reservation %s edited by %s", reservation_id, actor or "staff")
        await self._emit(
            self._reservation_event(
                reservation, ReservationCommand.EDIT.value, now_tables, freed
            )
        )
        return reservation

    # ==================== Walk-ins ====================

    async def seat_walk_in(
        self,
        org_id: str,
        guest_name: str,
        party_size: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        guest_id: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Union[Reservation, NoFit]:
        """
        Seat a party that just walked in.

        Creates a WALK_IN reservation that goes straight through CONFIRMED
        to SEATED at the chosen unit, all in one commit. Returns ``NoFit``
        when nothing can take the party; the host then offers the waitlist.
        """
        return await self._seat_new_party(
            org_id,
            guest_name,
            party_size,
            ReservationChannel.WALK_IN,
            preferred_table_id=preferred_table_id,
            preferred_group_id=preferred_group_id,
            guest_id=guest_id,
            actor=actor,
        )

    async def seat_and_next(
        self,
        org_id: str,
        guest_name: str,
        party_size: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        guest_id: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> Union[Reservation, NoFit]:
        """Seat the party and leave the terminal ready for the next one."""
        return await self.seat_walk_in(
            org_id,
            guest_name,
            party_size,
            preferred_table_id=preferred_table_id,
            preferred_group_id=preferred_group_id,
            guest_id=guest_id,
            actor=actor,
        )

    async def _seat_new_party(
        self,
        org_id: str,
        guest_name: str,
        party_size: int,
        channel: ReservationChannel,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        guest_id: Optional[int] = None,
        actor: Optional[str] = None,
        entry: Optional[WaitlistEntry] = None,
    ) -> Union[Reservation, NoFit]:
        async def commit(plan: FloorPlan, unit: AssignableUnit):
            now = self.clock.now()
            to_save = []

            if entry is not None:
                fresh = await self._require_entry(org_id, entry.id)
                WaitlistQueue.apply(fresh, WaitlistCommand.SEAT, now)
                self._hold_waitlist_unit(fresh, unit)
                to_save.append(fresh)

            reservation = Reservation(
                id=None,
                org_id=org_id,
                party_size=party_size,
                requested_at=now,
                guest_id=guest_id,
                guest_name=guest_name,
                channel=channel,
                waitlist_entry_id=entry.id if entry else None,
                created_at=now,
            )
            self._hold_unit(reservation, unit)
            ReservationStateMachine.apply(reservation, ReservationCommand.CONFIRM, now, actor)
            ReservationStateMachine.apply(reservation, ReservationCommand.SEAT, now, actor)
            await self.repository.save(reservation, *to_save)
            return reservation

        result = await self._claim(
            org_id,
            party_size,
            commit,
            preferred_table_id=preferred_table_id,
            preferred_group_id=preferred_group_id,
            waitlist=[entry.id] if entry else (),
        )
        if isinstance(result, NoFit):
            return result

        tables = await self._unit_tables(org_id, result)
        logger.info(
            "Seated %s (%d, %s) at tables %s",
            guest_name or "walk-in",
            party_size,
            channel.value,
            list(tables),
        )
        await self._emit(self._reservation_event(result, ReservationCommand.SEAT.value, tables))
        return result

    # ==================== Waitlist ====================

    async def list_waitlist(self, org_id: str, include_closed: bool = False) -> List[WaitlistEntry]:
        return await self.repository.list_waitlist(org_id, include_closed)

    async def estimate_wait(self, org_id: str, party_size: int) -> int:
        """Minutes a new party of ``party_size`` should expect to wait."""
        plan = await self.snapshot(org_id)
        turn_times = await self.repository.recent_turn_times(
            org_id, self.settings.turn_time_sample_size
        )
        avg_turn = average_turn_minutes(turn_times, self.settings.avg_turn_minutes)
        return estimate_wait_minutes(
            plan, party_size, avg_turn, self.settings.waitlist_concurrent_turnovers
        )

    async def enqueue_waitlist(
        self,
        org_id: str,
        guest_name: str,
        party_size: int,
        guest_phone: Optional[str] = None,
        guest_id: Optional[int] = None,
        priority: int = 0,
    ) -> WaitlistEntry:
        """Add a walk-in party to the back of its priority bucket."""
        if party_size < 1:
            raise ValueError("party_size must be at least 1")

        entry = WaitlistEntry(
            id=None,
            org_id=org_id,
            guest_name=guest_name,
            party_size=party_size,
            priority=priority,
            guest_phone=guest_phone,
            guest_id=guest_id,
            estimated_wait_minutes=await self.estimate_wait(org_id, party_size),
            created_at=self.clock.now(),
        )
        await self.repository.save(entry)

        logger.info(
            "Waitlisted %s (%d), estimated %d min",
            guest_name,
            party_size,
            entry.estimated_wait_minutes,
        )
        await self._emit(
            WaitlistChanged(
                org_id=org_id,
                occurred_at=self.clock.now(),
                entry_id=entry.id,
                status=entry.status.value,
            )
        )
        return entry

    @staticmethod
    def _hold_waitlist_unit(entry: WaitlistEntry, unit: Optional[AssignableUnit]):
        entry.table_id = None
        entry.group_id = None
        if unit is None:
            return
        if unit.is_group:
            entry.group_id = unit.id
        else:
            entry.table_id = unit.id

    async def notify_waitlist(
        self,
        org_id: str,
        entry_id: int,
        table_id: Optional[int] = None,
        group_id: Optional[str] = None,
        actor: Optional[str] = None,
        automatic: bool = False,
    ) -> WaitlistEntry:
        """
        Tell a waiting party their table is ready.

        When a table or group is offered it must be assignable right now and
        seat the party; the offer is recorded on the entry and preferred
        when the party is seated.
        """
        await self._require_entry(org_id, entry_id)
        offered_tables = await self._requested_unit_tables(org_id, table_id, group_id)

        async with self.locks.hold(org_id, tables=offered_tables, waitlist=[entry_id]):
            entry = await self._require_entry(org_id, entry_id)
            WaitlistQueue.apply(entry, WaitlistCommand.NOTIFY, self.clock.now())

            unit = None
            if offered_tables:
                plan = await self.snapshot(org_id)
                unit = self.assigner.preferred(plan, entry.party_size, table_id, group_id)
                if unit is None:
                    raise TableUnavailable(
                        f"Offered table cannot take {entry.guest_name}'s party",
                        table_ids=list(offered_tables),
                    )
            self._hold_waitlist_unit(entry, unit)
            await self.repository.save(entry)

        logger.info(
            "Notified %s (entry %s)%s by %s",
            entry.guest_name,
            entry_id,
            f" for {unit.name}" if unit else "",
            actor or "staff",
        )
        await self._emit(
            WaitlistPromoted(
                org_id=org_id,
                occurred_at=self.clock.now(),
                entry_id=entry.id,
                guest_name=entry.guest_name,
                party_size=entry.party_size,
                table_ids=list(unit.table_ids) if unit else [],
                group_id=entry.group_id,
                automatic=automatic,
            )
        )
        return entry

    async def seat_waitlist(
        self,
        org_id: str,
        entry_id: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Union[Reservation, NoFit]:
        """Seat a waiting or notified party, preferring the table it was offered."""
        entry = await self._require_entry(org_id, entry_id)
        if not entry.is_active:
            # Raises InvalidTransition before any assignment work
            WaitlistQueue.apply(entry, WaitlistCommand.SEAT, self.clock.now())

        if preferred_table_id is None and preferred_group_id is None:
            preferred_table_id = entry.table_id
            preferred_group_id = entry.group_id

        return await self._seat_new_party(
            org_id,
            entry.guest_name,
            entry.party_size,
            ReservationChannel.WAITLIST,
            preferred_table_id=preferred_table_id,
            preferred_group_id=preferred_group_id,
            guest_id=entry.guest_id,
            actor=actor,
            entry=entry,
        )

    async def leave_waitlist(
        self, org_id: str, entry_id: int, actor: Optional[str] = None
    ) -> WaitlistEntry:
        """The party gave up or could not be reached."""
        await self._require_entry(org_id, entry_id)

        async with self.locks.hold(org_id, waitlist=[entry_id]):
            entry = await self._require_entry(org_id, entry_id)
            WaitlistQueue.apply(entry, WaitlistCommand.LEAVE, self.clock.now())
            await self.repository.save(entry)

        logger.info("%s left the waitlist (entry %s)", entry.guest_name, entry_id)
        await self._emit(
            WaitlistChanged(
                org_id=org_id,
                occurred_at=self.clock.now(),
                entry_id=entry.id,
                status=entry.status.value,
            )
        )
        return entry

    # ==================== Guests ====================

    async def add_guest(
        self,
        org_id: str,
        first_name: str,
        last_name: str = "",
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Guest:
        """Register a guest profile. The CRM owns guests; this seeds."""
        guest = Guest(
            id=None,
            org_id=org_id,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            email=email,
        )
        await self.repository.save(guest)
        return guest

    async def get_guest(self, org_id: str, guest_id: int) -> Guest:
        guest = await self.repository.get_guest(org_id, guest_id)
        if guest is None:
            raise NotFound("guest", guest_id)
        return guest
