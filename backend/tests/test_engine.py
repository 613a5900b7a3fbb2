"""Tests for the floor engine façade."""

import asyncio
from datetime import timedelta

import pytest

from tablehost.core import (
    Contended,
    InvalidTransition,
    NoFit,
    NotFound,
    ReservationChannel,
    ReservationFilter,
    ReservationStatus,
    TableOccupied,
    TableStatus,
    TableUnavailable,
    WaitlistStatus,
)
from tablehost.core.events import (
    ReservationChanged,
    TableChanged,
    TableFreed,
    WaitlistChanged,
    WaitlistPromoted,
)

from conftest import ORG, T0, add_tables


async def booked(engine, table_id, party_size=2, minutes=30, guest_id=None):
    """A CONFIRMED reservation holding ``table_id``."""
    reservation = await engine.create_reservation(
        ORG,
        party_size,
        T0 + timedelta(minutes=minutes),
        guest_id=guest_id,
        guest_name="Booked",
        table_id=table_id,
    )
    return await engine.transition(ORG, reservation.id, "confirm")


async def status_of(engine, table_id):
    return (await engine.table_status(ORG, table_id)).status


@pytest.mark.anyio
class TestWalkIns:
    """Tests for seating walk-in parties."""

    async def test_best_fit_walk_in(self, engine):
        """A 4-top and a 2-top: a walk-in of 2 goes to the 2-top."""
        four, two = await add_tables(engine, 4, 2)

        reservation = await engine.seat_walk_in(ORG, "Lee", 2)

        assert reservation.status == ReservationStatus.SEATED
        assert reservation.channel == ReservationChannel.WALK_IN
        assert reservation.table_id == two.id
        assert reservation.confirmed_at == reservation.seated_at == T0
        assert await status_of(engine, two.id) == TableStatus.SEATED
        assert await status_of(engine, four.id) == TableStatus.AVAILABLE

    async def test_no_fit_then_waitlist(self, engine):
        """Nothing seats 6, so the party joins the waitlist instead."""
        await add_tables(engine, 4, 2)

        result = await engine.seat_walk_in(ORG, "Smith", 6)
        assert isinstance(result, NoFit)
        assert await engine.list_reservations(ORG) == []

        entry = await engine.enqueue_waitlist(ORG, "Smith", 6)
        assert entry.status == WaitlistStatus.WAITING
        assert entry.estimated_wait_minutes > 0

    async def test_concurrent_walk_ins_one_table(self, engine):
        """Two terminals race for the only 4-top: exactly one party sits."""
        await add_tables(engine, 4)

        results = await asyncio.gather(
            engine.seat_walk_in(ORG, "First", 4),
            engine.seat_walk_in(ORG, "Second", 4),
        )

        seated = [r for r in results if not isinstance(r, NoFit)]
        assert len(seated) == 1
        assert sum(isinstance(r, NoFit) for r in results) == 1

        active = await engine.list_reservations(ORG, ReservationFilter(active_only=True))
        assert len(active) == 1

    async def test_many_concurrent_walk_ins(self, engine):
        """Never more parties seated than tables."""
        await add_tables(engine, 2, 2, 2)

        results = await asyncio.gather(*[engine.seat_walk_in(ORG, f"P{i}", 2) for i in range(6)])

        seated = [r for r in results if not isinstance(r, NoFit)]
        assert len(seated) == 3
        assert len({r.table_id for r in seated}) == 3

    async def test_preferred_table(self, engine):
        four, two = await add_tables(engine, 4, 2)
        reservation = await engine.seat_and_next(ORG, "Lee", 2, preferred_table_id=four.id)
        assert reservation.table_id == four.id

    async def test_taken_preference_falls_back(self, engine):
        four, two, other = await add_tables(engine, 4, 2, 2)
        await engine.seat_walk_in(ORG, "First", 2, preferred_table_id=two.id)

        reservation = await engine.seat_walk_in(ORG, "Second", 2, preferred_table_id=two.id)
        assert reservation.table_id == other.id

    async def test_one_event_per_command(self, engine):
        await add_tables(engine, 4)
        before = len(engine.bus.published)

        await engine.seat_walk_in(ORG, "Lee", 2)

        events = engine.bus.published[before:]
        assert len(events) == 1
        assert isinstance(events[0], ReservationChanged)
        assert events[0].status == "seated"
        sequences = [e.sequence for e in engine.bus.published]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == len(sequences)


@pytest.mark.anyio
class TestReservationLifecycle:
    """Tests for reservation commands through the engine."""

    async def test_full_service(self, engine, clock):
        """Seat, drop bill, leave: the table follows and the guest gets a visit."""
        (table,) = await add_tables(engine, 4)
        guest = await engine.add_guest(ORG, "Ada", "Lovelace")

        reservation = await engine.create_reservation(
            ORG, 4, T0 + timedelta(minutes=30), guest_id=guest.id, table_id=table.id
        )
        assert reservation.status == ReservationStatus.ENQUIRY
        assert reservation.guest_name == "Ada Lovelace"
        assert await status_of(engine, table.id) == TableStatus.AVAILABLE

        await engine.transition(ORG, reservation.id, "confirm")
        assert await status_of(engine, table.id) == TableStatus.RESERVED

        clock.advance(minutes=30)
        await engine.transition(ORG, reservation.id, "seat")
        assert await status_of(engine, table.id) == TableStatus.SEATED

        clock.advance(minutes=60)
        dropped = await engine.transition(ORG, reservation.id, "drop_bill")
        assert dropped.status == ReservationStatus.BILL_DROPPED
        assert await status_of(engine, table.id) == TableStatus.BILL_DROPPED

        clock.advance(minutes=15)
        done = await engine.transition(ORG, reservation.id, "mark_left")
        assert done.status == ReservationStatus.COMPLETED
        assert done.turn_time_minutes == 75.0
        assert await status_of(engine, table.id) == TableStatus.AVAILABLE

        guest = await engine.get_guest(ORG, guest.id)
        assert guest.visit_count == 1

        event = engine.bus.published[-1]
        assert isinstance(event, ReservationChanged)
        assert event.freed_table_ids == [table.id]

    async def test_confirm_twice(self, engine):
        reservation = await engine.create_reservation(ORG, 2, T0)
        await engine.transition(ORG, reservation.id, "confirm")

        with pytest.raises(InvalidTransition):
            await engine.transition(ORG, reservation.id, "confirm")

        stored = await engine.get_reservation(ORG, reservation.id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert len(stored.history) == 1

    async def test_cancel_releases_table(self, engine):
        (table,) = await add_tables(engine, 4)
        reservation = await booked(engine, table.id)
        assert isinstance(await engine.assign_table(ORG, 2), NoFit)
        assert engine.bus.published[-1].freed_table_ids == []

        await engine.transition(ORG, reservation.id, "cancel")
        assert engine.bus.published[-1].freed_table_ids == [table.id]

        assert await status_of(engine, table.id) == TableStatus.AVAILABLE
        assert (await engine.assign_table(ORG, 2)).id == table.id

    async def test_no_show_releases_and_counts(self, engine):
        (table,) = await add_tables(engine, 4)
        guest = await engine.add_guest(ORG, "Sam")
        reservation = await booked(engine, table.id, guest_id=guest.id)

        result = await engine.transition(ORG, reservation.id, "mark_no_show")

        assert result.status == ReservationStatus.NO_SHOW
        assert await status_of(engine, table.id) == TableStatus.AVAILABLE
        assert (await engine.get_guest(ORG, guest.id)).no_show_count == 1

    async def test_seat_without_table_assigns(self, engine):
        four, two = await add_tables(engine, 4, 2)
        reservation = await engine.create_reservation(ORG, 3, T0)
        await engine.transition(ORG, reservation.id, "confirm")

        seated = await engine.transition(ORG, reservation.id, "seat")

        assert seated.status == ReservationStatus.SEATED
        assert seated.table_id == four.id

    async def test_seat_without_table_no_fit(self, engine):
        await add_tables(engine, 2)
        reservation = await engine.create_reservation(ORG, 5, T0)
        await engine.transition(ORG, reservation.id, "confirm")

        result = await engine.transition(ORG, reservation.id, "seat")

        assert isinstance(result, NoFit)
        stored = await engine.get_reservation(ORG, reservation.id)
        assert stored.status == ReservationStatus.CONFIRMED

    async def test_seat_on_blocked_table_refused(self, engine):
        (table,) = await add_tables(engine, 4)
        reservation = await booked(engine, table.id)
        await engine.block(ORG, table.id, reason="spill")

        with pytest.raises(TableUnavailable):
            await engine.transition(ORG, reservation.id, "seat")

    async def test_bookings_less_than_a_turn_apart_clash(self, engine):
        (table,) = await add_tables(engine, 4)
        await booked(engine, table.id)

        with pytest.raises(TableUnavailable):
            await engine.create_reservation(ORG, 2, T0 + timedelta(hours=1), table_id=table.id)

        later = await engine.create_reservation(
            ORG, 2, T0 + timedelta(hours=3), table_id=table.id
        )
        assert later.table_id == table.id

    async def test_far_ahead_booking_leaves_table_free(self, engine, clock):
        """A booking next week neither colours the table nor turns tonight away."""
        (table,) = await add_tables(engine, 4)
        next_week = await booked(engine, table.id, minutes=7 * 24 * 60)

        assert await status_of(engine, table.id) == TableStatus.AVAILABLE
        assert (await engine.assign_table(ORG, 2)).id == table.id

        tonight = await engine.seat_walk_in(ORG, "Tonight", 2)
        assert tonight.table_id == table.id
        assert await status_of(engine, table.id) == TableStatus.SEATED

        await engine.transition(ORG, tonight.id, "mark_left")
        clock.advance(days=7)
        view = await engine.table_status(ORG, table.id)
        assert view.status == TableStatus.RESERVED
        assert view.reservation_id == next_week.id

    async def test_bookings_on_different_days_share_a_table(self, engine, clock):
        (table,) = await add_tables(engine, 4)
        tomorrow = await booked(engine, table.id, minutes=24 * 60)
        next_week = await booked(engine, table.id, minutes=8 * 24 * 60)

        assert tomorrow.table_id == next_week.table_id == table.id

        clock.advance(days=1)
        assert (await engine.table_status(ORG, table.id)).reservation_id == tomorrow.id

    async def test_early_seat_refused_while_table_occupied(self, engine):
        (table,) = await add_tables(engine, 4)
        await engine.seat_walk_in(ORG, "Diner", 2)
        later = await booked(engine, table.id, minutes=180)

        with pytest.raises(TableUnavailable):
            await engine.transition(ORG, later.id, "seat")

        stored = await engine.get_reservation(ORG, later.id)
        assert stored.status == ReservationStatus.CONFIRMED

    async def test_edit_time_into_another_booking(self, engine):
        (table,) = await add_tables(engine, 4)
        await booked(engine, table.id)
        later = await booked(engine, table.id, minutes=240)

        with pytest.raises(TableUnavailable):
            await engine.edit_reservation(ORG, later.id, requested_at=T0 + timedelta(minutes=60))

        moved = await engine.edit_reservation(
            ORG, later.id, requested_at=T0 + timedelta(minutes=150)
        )
        assert moved.requested_at == T0 + timedelta(minutes=150)
        assert moved.table_id == table.id

    async def test_auto_assign_on_create(self, engine):
        four, two = await add_tables(engine, 4, 2)
        reservation = await engine.create_reservation(ORG, 2, T0, auto_assign=True)
        assert reservation.table_id == two.id

        result = await engine.create_reservation(ORG, 8, T0, auto_assign=True)
        assert isinstance(result, NoFit)

    async def test_edit_moves_table(self, engine):
        four, two = await add_tables(engine, 4, 2)
        reservation = await booked(engine, two.id, party_size=2)

        with pytest.raises(TableUnavailable):
            await engine.edit_reservation(ORG, reservation.id, party_size=4)

        edited = await engine.edit_reservation(
            ORG, reservation.id, party_size=4, table_id=four.id, notes="birthday"
        )

        assert edited.table_id == four.id
        assert edited.party_size == 4
        assert edited.notes == "birthday"
        assert edited.status == ReservationStatus.CONFIRMED
        assert edited.history[-1].command == "edit"
        assert await status_of(engine, two.id) == TableStatus.AVAILABLE
        assert engine.bus.published[-1].freed_table_ids == [two.id]

    async def test_edit_after_seating_refused(self, engine):
        await add_tables(engine, 4)
        reservation = await engine.seat_walk_in(ORG, "Lee", 2)

        with pytest.raises(InvalidTransition):
            await engine.edit_reservation(ORG, reservation.id, notes="too late")

    async def test_edit_is_not_a_status_command(self, engine):
        reservation = await engine.create_reservation(ORG, 2, T0)
        with pytest.raises(ValueError):
            await engine.transition(ORG, reservation.id, "edit")
        with pytest.raises(ValueError):
            await engine.transition(ORG, reservation.id, "teleport")

    async def test_unknown_ids(self, engine):
        with pytest.raises(NotFound):
            await engine.transition(ORG, 999, "confirm")
        with pytest.raises(NotFound):
            await engine.table_status(ORG, 999)
        with pytest.raises(NotFound):
            await engine.create_reservation(ORG, 2, T0, guest_id=999)

    async def test_tenants_are_isolated(self, engine):
        await add_tables(engine, 4)
        reservation = await engine.create_reservation(ORG, 2, T0)

        assert await engine.floor_status("other-org") == []
        with pytest.raises(NotFound):
            await engine.get_reservation("other-org", reservation.id)

    async def test_list_reservations_filter(self, engine):
        await add_tables(engine, 4, 4)
        await engine.seat_walk_in(ORG, "Walk", 2)
        await engine.create_reservation(ORG, 2, T0 + timedelta(days=1))

        walk_ins = await engine.list_reservations(
            ORG, ReservationFilter(channel=ReservationChannel.WALK_IN)
        )
        tomorrow = await engine.list_reservations(
            ORG, ReservationFilter(on_date=(T0 + timedelta(days=1)).date())
        )
        assert [r.guest_name for r in walk_ins] == ["Walk"]
        assert len(tomorrow) == 1


@pytest.mark.anyio
class TestTables:
    """Tests for blocking and combining tables."""

    async def test_block_seated_table(self, engine):
        (table,) = await add_tables(engine, 4)
        reservation = await engine.seat_walk_in(ORG, "Lee", 4)

        with pytest.raises(TableOccupied):
            await engine.block(ORG, table.id)

        await engine.transition(ORG, reservation.id, "mark_left")
        view = await engine.block(ORG, table.id, reason="broken leg")

        assert view.status == TableStatus.BLOCKED
        assert view.table.block_reason == "broken leg"
        assert isinstance(await engine.seat_walk_in(ORG, "Next", 2), NoFit)

    async def test_unblock_frees_table(self, engine):
        (table,) = await add_tables(engine, 4)
        await engine.block(ORG, table.id)

        view = await engine.unblock(ORG, table.id)

        assert view.status == TableStatus.AVAILABLE
        assert not view.table.blocked
        event = engine.bus.published[-1]
        assert isinstance(event, TableFreed)
        assert event.table_ids == [table.id]

    async def test_combine_and_seat(self, engine):
        a, b, c = await add_tables(engine, 2, 2, 6)

        group = await engine.combine(ORG, [b.id, a.id])
        assert group.table_ids == [a.id, b.id]
        assert isinstance(engine.bus.published[-1], TableChanged)

        reservation = await engine.seat_walk_in(ORG, "Party", 4)

        assert reservation.group_id == group.id
        assert reservation.table_id is None
        assert await status_of(engine, a.id) == TableStatus.SEATED
        assert await status_of(engine, b.id) == TableStatus.SEATED
        assert await status_of(engine, c.id) == TableStatus.AVAILABLE

        with pytest.raises(TableUnavailable):
            await engine.uncombine(ORG, group.id)

    async def test_uncombine(self, engine):
        a, b = await add_tables(engine, 2, 2)
        group = await engine.combine(ORG, [a.id, b.id])

        tables = await engine.uncombine(ORG, group.id)

        assert all(t.group_id is None for t in tables)
        assert [v.group_id for v in await engine.floor_status(ORG)] == [None, None]
        with pytest.raises(NotFound):
            await engine.uncombine(ORG, group.id)

    async def test_combine_rules(self, engine):
        a, b, c = await add_tables(engine, 2, 2, 2)

        with pytest.raises(ValueError):
            await engine.combine(ORG, [a.id, a.id])

        await engine.seat_walk_in(ORG, "Lee", 2, preferred_table_id=c.id)
        with pytest.raises(TableUnavailable):
            await engine.combine(ORG, [b.id, c.id])

        await engine.combine(ORG, [a.id, b.id])
        with pytest.raises(TableUnavailable):
            await engine.combine(ORG, [b.id, c.id])

    async def test_lock_timeout_is_contended(self, engine):
        (table,) = await add_tables(engine, 4)

        async with engine.locks.hold(ORG, tables=[table.id]):
            with pytest.raises(Contended):
                await engine.block(ORG, table.id)

        assert not engine.locks.is_locked(ORG, "table", table.id)
        assert (await engine.table_status(ORG, table.id)).status == TableStatus.AVAILABLE
        assert engine.locks.active() == 0

    async def test_locks_are_dropped_once_released(self, engine):
        (table,) = await add_tables(engine, 4)

        for _ in range(50):
            reservation = await engine.create_reservation(ORG, 2, T0, table_id=table.id)
            await engine.transition(ORG, reservation.id, "cancel")

        assert engine.locks.active() == 0


@pytest.mark.anyio
class TestWaitlist:
    """Tests for the waitlist and automatic promotion."""

    async def test_promotion_is_fifo_with_fit(self, engine):
        (table,) = await add_tables(engine, 4)
        diner = await engine.seat_walk_in(ORG, "Diner", 4)

        big = await engine.enqueue_waitlist(ORG, "Big", 6)
        small = await engine.enqueue_waitlist(ORG, "Small", 2)
        exact = await engine.enqueue_waitlist(ORG, "Exact", 4)

        await engine.transition(ORG, diner.id, "mark_left")
        promoted = await engine.promoter.drain()

        assert [e.id for e in promoted] == [small.id]
        assert promoted[0].status == WaitlistStatus.NOTIFIED
        assert promoted[0].table_id == table.id

        queue = {e.id: e.status for e in await engine.list_waitlist(ORG)}
        assert queue[big.id] == WaitlistStatus.WAITING
        assert queue[exact.id] == WaitlistStatus.WAITING

        event = engine.bus.published[-1]
        assert isinstance(event, WaitlistPromoted)
        assert event.automatic
        assert event.table_ids == [table.id]

    async def test_table_is_offered_once(self, engine):
        (table,) = await add_tables(engine, 4)
        first = await engine.enqueue_waitlist(ORG, "First", 2)
        second = await engine.enqueue_waitlist(ORG, "Second", 2)

        await engine.block(ORG, table.id)
        await engine.unblock(ORG, table.id)
        assert [e.id for e in await engine.promoter.drain()] == [first.id]

        # Same table freed again while the offer stands
        assert await engine.promoter.promote(ORG, [table.id]) == []
        assert (await engine.repository.get_waitlist_entry(ORG, second.id)).status == (
            WaitlistStatus.WAITING
        )

    async def test_seat_notified_party_at_offered_table(self, engine):
        four, two = await add_tables(engine, 4, 2)
        entry = await engine.enqueue_waitlist(ORG, "Kim", 2)
        await engine.notify_waitlist(ORG, entry.id, table_id=four.id)

        reservation = await engine.seat_waitlist(ORG, entry.id)

        assert reservation.table_id == four.id
        assert reservation.channel == ReservationChannel.WAITLIST
        assert reservation.waitlist_entry_id == entry.id
        assert reservation.status == ReservationStatus.SEATED

        closed = await engine.list_waitlist(ORG, include_closed=True)
        assert closed[0].status == WaitlistStatus.SEATED
        assert await engine.list_waitlist(ORG) == []

        with pytest.raises(InvalidTransition):
            await engine.seat_waitlist(ORG, entry.id)

    async def test_seat_waiting_party_best_fit(self, engine):
        four, two = await add_tables(engine, 4, 2)
        entry = await engine.enqueue_waitlist(ORG, "Kim", 2)

        reservation = await engine.seat_waitlist(ORG, entry.id)
        assert reservation.table_id == two.id

    async def test_leave(self, engine):
        entry = await engine.enqueue_waitlist(ORG, "Gone", 2)

        left = await engine.leave_waitlist(ORG, entry.id)

        assert left.status == WaitlistStatus.LEFT
        assert isinstance(engine.bus.published[-1], WaitlistChanged)
        with pytest.raises(InvalidTransition):
            await engine.notify_waitlist(ORG, entry.id)

    async def test_offer_must_be_free(self, engine):
        (table,) = await add_tables(engine, 4)
        await engine.seat_walk_in(ORG, "Diner", 4)
        entry = await engine.enqueue_waitlist(ORG, "Kim", 2)

        with pytest.raises(TableUnavailable):
            await engine.notify_waitlist(ORG, entry.id, table_id=table.id)

        stored = await engine.repository.get_waitlist_entry(ORG, entry.id)
        assert stored.status == WaitlistStatus.WAITING

    async def test_manual_notify(self, engine):
        entry = await engine.enqueue_waitlist(ORG, "Kim", 2)

        notified = await engine.notify_waitlist(ORG, entry.id, actor="host")

        assert notified.status == WaitlistStatus.NOTIFIED
        assert notified.notified_at == T0
        assert engine.bus.published[-1].automatic is False

    async def test_estimate_uses_observed_turns(self, engine, clock):
        await add_tables(engine, 4, 4)
        first = await engine.seat_walk_in(ORG, "First", 2)
        clock.advance(minutes=60)
        await engine.transition(ORG, first.id, "mark_left")

        await engine.seat_walk_in(ORG, "Second", 2)
        entry = await engine.enqueue_waitlist(ORG, "Waiting", 2)

        assert entry.estimated_wait_minutes == 60

    async def test_priority_bucket(self, engine):
        regular = await engine.enqueue_waitlist(ORG, "Regular", 2)
        vip = await engine.enqueue_waitlist(ORG, "VIP", 2, priority=1)

        assert [e.id for e in await engine.list_waitlist(ORG)] == [vip.id, regular.id]

    async def test_replays_are_ignored_within_memory(self, engine):
        promoter = engine.promoter
        promoter.max_seen = 3
        events = [TableFreed(org_id=ORG, sequence=i, table_ids=[1]) for i in range(1, 5)]

        for event in events:
            await promoter.on_event(event)
        assert promoter.queue.qsize() == 4

        await promoter.on_event(events[-1])
        assert promoter.queue.qsize() == 4

        # The oldest key has been forgotten
        await promoter.on_event(events[0])
        assert promoter.queue.qsize() == 5
