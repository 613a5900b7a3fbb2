"""Reservation lifecycle state machine."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from .entities import Reservation, ReservationStatus, StatusChange
from .errors import InvalidTransition, TableUnavailable


class ReservationCommand(str, Enum):
    """Commands staff can issue against a reservation."""

    CONFIRM = "confirm"
    SEAT = "seat"
    DROP_BILL = "drop_bill"
    MARK_LEFT = "mark_left"
    CANCEL = "cancel"
    MARK_NO_SHOW = "mark_no_show"
    EDIT = "edit"


class ReservationStateMachine:
    """
    Validates and applies reservation status transitions.

    State flow:
    ENQUIRY → CONFIRMED (confirm)
    CONFIRMED → SEATED (seat, needs a table or group)
    SEATED → BILL_DROPPED (drop_bill)
    SEATED | BILL_DROPPED → COMPLETED (mark_left)

    Side exits:
    ENQUIRY | CONFIRMED → CANCELLED (cancel)
    CONFIRMED → NO_SHOW (mark_no_show)

    COMPLETED, CANCELLED and NO_SHOW accept nothing. ``edit`` keeps the
    status and is legal only while ENQUIRY or CONFIRMED.

    The machine is pure: it mutates the reservation it is handed and never
    touches storage, locks or events.
    """

    VALID_TRANSITIONS: Dict[ReservationCommand, Dict[ReservationStatus, ReservationStatus]] = {
        ReservationCommand.CONFIRM: {
            ReservationStatus.ENQUIRY: ReservationStatus.CONFIRMED,
        },
        ReservationCommand.SEAT: {
            ReservationStatus.CONFIRMED: ReservationStatus.SEATED,
        },
        ReservationCommand.DROP_BILL: {
            ReservationStatus.SEATED: ReservationStatus.BILL_DROPPED,
        },
        ReservationCommand.MARK_LEFT: {
            ReservationStatus.SEATED: ReservationStatus.COMPLETED,
            ReservationStatus.BILL_DROPPED: ReservationStatus.COMPLETED,
        },
        ReservationCommand.CANCEL: {
            ReservationStatus.ENQUIRY: ReservationStatus.CANCELLED,
            ReservationStatus.CONFIRMED: ReservationStatus.CANCELLED,
        },
        ReservationCommand.MARK_NO_SHOW: {
            ReservationStatus.CONFIRMED: ReservationStatus.NO_SHOW,
        },
        ReservationCommand.EDIT: {
            ReservationStatus.ENQUIRY: ReservationStatus.ENQUIRY,
            ReservationStatus.CONFIRMED: ReservationStatus.CONFIRMED,
        },
    }

    # Timestamp field set when entering each status
    TIMESTAMP_FIELDS = {
        ReservationStatus.CONFIRMED: "confirmed_at",
        ReservationStatus.SEATED: "seated_at",
        ReservationStatus.BILL_DROPPED: "bill_dropped_at",
        ReservationStatus.COMPLETED: "completed_at",
        ReservationStatus.CANCELLED: "cancelled_at",
        ReservationStatus.NO_SHOW: "no_show_at",
    }

    # Commands that give the held table or group back to the floor
    RELEASING_COMMANDS = frozenset(
        {
            ReservationCommand.CANCEL,
            ReservationCommand.MARK_NO_SHOW,
            ReservationCommand.MARK_LEFT,
        }
    )

    @classmethod
    def parse_command(cls, command) -> ReservationCommand:
        """Accept a command enum or its string value."""
        if isinstance(command, ReservationCommand):
            return command
        try:
            return ReservationCommand(str(command).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown reservation command: {command}") from None

    @classmethod
    def can_apply(cls, reservation: Reservation, command: ReservationCommand) -> bool:
        return reservation.status in cls.VALID_TRANSITIONS.get(command, {})

    @classmethod
    def target(cls, reservation: Reservation, command: ReservationCommand) -> ReservationStatus:
        """Status the command leads to, or ``InvalidTransition``."""
        allowed = cls.VALID_TRANSITIONS.get(command, {})
        if reservation.status not in allowed:
            raise InvalidTransition(
                "reservation", reservation.id, reservation.status.value, command.value
            )
        return allowed[reservation.status]

    @classmethod
    def check_editable(cls, reservation: Reservation):
        cls.target(reservation, ReservationCommand.EDIT)

    @classmethod
    def apply(
        cls,
        reservation: Reservation,
        command: ReservationCommand,
        now: datetime,
        actor: Optional[str] = None,
    ) -> StatusChange:
        """
        Apply a status command in place.

        Args:
            reservation: Reservation to mutate
            command: Any command except ``edit``
            now: Transition time
            actor: Who issued the command

        Returns:
            The history record appended to the reservation
        """
        if command == ReservationCommand.EDIT:
            raise ValueError("edit does not change status; use check_editable")

        to_status = cls.target(reservation, command)

        if command == ReservationCommand.SEAT and not reservation.has_unit:
            raise TableUnavailable(
                f"Reservation {reservation.id} has no table or group assigned"
            )

        # Timestamps never run backwards even if the clock does
        previous = [ts for ts in reservation.timestamps() if ts is not None]
        at = max([now, *previous])

        field_name = cls.TIMESTAMP_FIELDS[to_status]
        if getattr(reservation, field_name) is not None:
            raise InvalidTransition(
                "reservation", reservation.id, reservation.status.value, command.value
            )
        setattr(reservation, field_name, at)

        if to_status == ReservationStatus.COMPLETED and reservation.seated_at:
            reservation.turn_time_minutes = round(
                (at - reservation.seated_at).total_seconds() / 60, 1
            )

        change = StatusChange(
            from_status=reservation.status,
            to_status=to_status,
            command=command.value,
            actor=actor,
            at=at,
        )
        reservation.status = to_status
        reservation.history.append(change)
        return change
