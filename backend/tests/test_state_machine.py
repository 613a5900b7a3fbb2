"""Tests for the reservation state machine."""

from datetime import timedelta

import pytest

from tablehost.core.entities import Reservation, ReservationStatus
from tablehost.core.errors import InvalidTransition, TableUnavailable
from tablehost.core.state_machine import ReservationCommand, ReservationStateMachine

from conftest import ORG, T0

SM = ReservationStateMachine


def make_reservation(**kwargs) -> Reservation:
    fields = dict(id=1, org_id=ORG, party_size=2, requested_at=T0 + timedelta(hours=1))
    fields.update(kwargs)
    return Reservation(**fields)


class TestReservationStateMachine:
    """Tests for reservation transitions."""

    def test_initial_state(self):
        """New reservations start as ENQUIRY."""
        assert make_reservation().status == ReservationStatus.ENQUIRY

    def test_confirm_twice(self):
        """Second confirm is rejected and changes nothing."""
        reservation = make_reservation()
        SM.apply(reservation, ReservationCommand.CONFIRM, T0)
        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.confirmed_at == T0

        with pytest.raises(InvalidTransition):
            SM.apply(reservation, ReservationCommand.CONFIRM, T0 + timedelta(minutes=5))

        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.confirmed_at == T0
        assert len(reservation.history) == 1

    def test_full_lifecycle(self):
        """Confirm, seat, drop bill, leave."""
        reservation = make_reservation(table_id=7)

        SM.apply(reservation, ReservationCommand.CONFIRM, T0)
        SM.apply(reservation, ReservationCommand.SEAT, T0 + timedelta(minutes=10))
        assert reservation.status == ReservationStatus.SEATED

        SM.apply(reservation, ReservationCommand.DROP_BILL, T0 + timedelta(minutes=70))
        assert reservation.status == ReservationStatus.BILL_DROPPED
        assert reservation.bill_dropped

        SM.apply(reservation, ReservationCommand.MARK_LEFT, T0 + timedelta(minutes=85))
        assert reservation.status == ReservationStatus.COMPLETED
        assert reservation.is_terminal
        assert reservation.turn_time_minutes == 75.0
        assert [h.to_status for h in reservation.history] == [
            ReservationStatus.CONFIRMED,
            ReservationStatus.SEATED,
            ReservationStatus.BILL_DROPPED,
            ReservationStatus.COMPLETED,
        ]

    def test_mark_left_straight_from_seated(self):
        """Dropping the bill is optional."""
        reservation = make_reservation(table_id=7)
        SM.apply(reservation, ReservationCommand.CONFIRM, T0)
        SM.apply(reservation, ReservationCommand.SEAT, T0)
        SM.apply(reservation, ReservationCommand.MARK_LEFT, T0 + timedelta(minutes=45))

        assert reservation.status == ReservationStatus.COMPLETED
        assert reservation.bill_dropped_at is None

    def test_seat_needs_a_table(self):
        """Seat without a table or group is refused before any change."""
        reservation = make_reservation()
        SM.apply(reservation, ReservationCommand.CONFIRM, T0)

        with pytest.raises(TableUnavailable):
            SM.apply(reservation, ReservationCommand.SEAT, T0)

        assert reservation.status == ReservationStatus.CONFIRMED
        assert reservation.seated_at is None

    def test_seat_from_enquiry_rejected(self):
        """An ENQUIRY must be confirmed first."""
        reservation = make_reservation(table_id=7)
        with pytest.raises(InvalidTransition):
            SM.apply(reservation, ReservationCommand.SEAT, T0)

    def test_no_show_only_from_confirmed(self):
        reservation = make_reservation()
        with pytest.raises(InvalidTransition):
            SM.apply(reservation, ReservationCommand.MARK_NO_SHOW, T0)

        SM.apply(reservation, ReservationCommand.CONFIRM, T0)
        SM.apply(reservation, ReservationCommand.MARK_NO_SHOW, T0 + timedelta(minutes=20))
        assert reservation.status == ReservationStatus.NO_SHOW
        assert reservation.no_show_at == T0 + timedelta(minutes=20)

    def test_cancel_from_enquiry_and_confirmed(self):
        enquiry = make_reservation()
        SM.apply(enquiry, ReservationCommand.CANCEL, T0)
        assert enquiry.status == ReservationStatus.CANCELLED

        confirmed = make_reservation()
        SM.apply(confirmed, ReservationCommand.CONFIRM, T0)
        SM.apply(confirmed, ReservationCommand.CANCEL, T0)
        assert confirmed.status == ReservationStatus.CANCELLED

    @pytest.mark.parametrize(
        "command",
        [c for c in ReservationCommand if c != ReservationCommand.EDIT],
    )
    def test_terminal_states_accept_nothing(self, command):
        """COMPLETED, CANCELLED and NO_SHOW are final."""
        reservation = make_reservation()
        SM.apply(reservation, ReservationCommand.CANCEL, T0)

        with pytest.raises(InvalidTransition):
            SM.apply(reservation, command, T0 + timedelta(minutes=1))
        assert reservation.status == ReservationStatus.CANCELLED

    def test_timestamps_never_run_backwards(self):
        """A transition stamped before the previous one takes the later time."""
        reservation = make_reservation(table_id=7)
        SM.apply(reservation, ReservationCommand.CONFIRM, T0 + timedelta(minutes=30))
        SM.apply(reservation, ReservationCommand.SEAT, T0)

        assert reservation.seated_at == reservation.confirmed_at
        stamps = [ts for ts in reservation.timestamps() if ts is not None]
        assert stamps == sorted(stamps)

    def test_edit_window(self):
        """Edits are allowed while ENQUIRY or CONFIRMED only."""
        reservation = make_reservation(table_id=7)
        SM.check_editable(reservation)
        SM.apply(reservation, ReservationCommand.CONFIRM, T0)
        SM.check_editable(reservation)

        SM.apply(reservation, ReservationCommand.SEAT, T0)
        with pytest.raises(InvalidTransition):
            SM.check_editable(reservation)

    def test_apply_rejects_edit(self):
        with pytest.raises(ValueError):
            SM.apply(make_reservation(), ReservationCommand.EDIT, T0)

    def test_history_records_actor(self):
        reservation = make_reservation()
        change = SM.apply(reservation, ReservationCommand.CONFIRM, T0, actor="host-2")

        assert change.actor == "host-2"
        assert change.from_status == ReservationStatus.ENQUIRY
        assert reservation.history[-1] is change

    def test_parse_command(self):
        assert SM.parse_command("Drop_Bill") == ReservationCommand.DROP_BILL
        assert SM.parse_command(ReservationCommand.SEAT) == ReservationCommand.SEAT
        with pytest.raises(ValueError):
            SM.parse_command("dance")

    def test_can_apply(self):
        reservation = make_reservation()
        assert SM.can_apply(reservation, ReservationCommand.CONFIRM)
        assert not SM.can_apply(reservation, ReservationCommand.DROP_BILL)
