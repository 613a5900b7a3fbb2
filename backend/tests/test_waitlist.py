"""Tests for waitlist ordering, transitions and wait estimates."""

from datetime import timedelta

import pytest

from tablehost.core.entities import (
    Reservation,
    ReservationStatus,
    Table,
    WaitlistEntry,
    WaitlistStatus,
)
from tablehost.core.errors import InvalidTransition
from tablehost.core.registry import FloorPlan
from tablehost.core.waitlist import (
    WaitlistCommand,
    WaitlistQueue,
    average_turn_minutes,
    estimate_wait_minutes,
)

from conftest import ORG, T0


def entry(entry_id, party_size, minutes=0, priority=0, status=WaitlistStatus.WAITING):
    return WaitlistEntry(
        id=entry_id,
        org_id=ORG,
        guest_name=f"Party {entry_id}",
        party_size=party_size,
        status=status,
        priority=priority,
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestWaitlistQueue:
    """Tests for FIFO-with-fit ordering."""

    def test_earlier_fitting_party_first(self):
        """The earliest party that fits wins, even if a later one fits better."""
        queue = [entry(1, 2, minutes=0), entry(2, 4, minutes=5)]
        assert WaitlistQueue.next_fitting(queue, 4).id == 1

    def test_skips_parties_that_do_not_fit(self):
        queue = [entry(1, 6, minutes=0), entry(2, 2, minutes=5), entry(3, 4, minutes=10)]
        assert WaitlistQueue.next_fitting(queue, 4).id == 2
        assert WaitlistQueue.next_fitting(queue, 6).id == 1

    def test_priority_bucket_first(self):
        queue = [entry(1, 2, minutes=0), entry(2, 2, minutes=5, priority=1)]
        assert WaitlistQueue.next_fitting(queue, 2).id == 2

    def test_only_waiting_parties_are_offered(self):
        queue = [
            entry(1, 2, minutes=0, status=WaitlistStatus.NOTIFIED),
            entry(2, 2, minutes=5),
        ]
        assert WaitlistQueue.next_fitting(queue, 2).id == 2
        assert WaitlistQueue.next_fitting(queue, 2, skip=[2]) is None

    def test_ordered_hides_closed_entries(self):
        queue = [entry(1, 2, minutes=3), entry(2, 2, minutes=1, status=WaitlistStatus.LEFT)]
        assert [e.id for e in WaitlistQueue.ordered(queue)] == [1]
        assert [e.id for e in WaitlistQueue.ordered(queue, include_closed=True)] == [2, 1]

    def test_transitions(self):
        party = entry(1, 2)
        WaitlistQueue.apply(party, WaitlistCommand.NOTIFY, T0)
        assert party.status == WaitlistStatus.NOTIFIED
        assert party.notified_at == T0

        with pytest.raises(InvalidTransition):
            WaitlistQueue.apply(party, WaitlistCommand.NOTIFY, T0)

        WaitlistQueue.apply(party, WaitlistCommand.SEAT, T0)
        assert party.status == WaitlistStatus.SEATED

    def test_left_is_final(self):
        party = entry(1, 2)
        WaitlistQueue.apply(party, WaitlistCommand.LEAVE, T0)

        for command in WaitlistCommand:
            with pytest.raises(InvalidTransition):
                WaitlistQueue.apply(party, command, T0)
        assert party.status == WaitlistStatus.LEFT


class TestWaitEstimate:
    """Tests for the linear wait estimator."""

    def seated_floor(self, occupied, free=1):
        tables = [
            Table(id=i, org_id=ORG, name=f"T{i}", capacity=4)
            for i in range(1, occupied + free + 1)
        ]
        reservations = [
            Reservation(
                id=i,
                org_id=ORG,
                party_size=4,
                requested_at=T0,
                status=ReservationStatus.SEATED,
                table_id=i,
            )
            for i in range(1, occupied + 1)
        ]
        return FloorPlan(tables, [], reservations, now=T0)

    def test_empty_floor_waits_one_turn(self):
        assert estimate_wait_minutes(self.seated_floor(0), 2, 90.0, 2) == 90

    def test_scales_with_occupied_tables(self):
        assert estimate_wait_minutes(self.seated_floor(1), 2, 90.0, 2) == 90
        assert estimate_wait_minutes(self.seated_floor(3), 2, 90.0, 2) == 135

    def test_only_fitting_tables_count(self):
        assert estimate_wait_minutes(self.seated_floor(3), 6, 60.0, 2) == 60

    def test_always_positive(self):
        assert estimate_wait_minutes(self.seated_floor(0), 2, 0.1, 2) >= 1

    def test_average_turn(self):
        assert average_turn_minutes([], 90.0) == 90.0
        assert average_turn_minutes([60.0, 80.0], 90.0) == 70.0
