"""Reservation model."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import Reservation, ReservationChannel, ReservationStatus, StatusChange
from .base import Base


class ReservationRecord(Base):
    """Reservation or walk-in with its lifecycle timestamps."""

    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)

    # Who
    guest_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    guest_name: Mapped[str] = mapped_column(String(100), default="")
    channel: Mapped[ReservationChannel] = mapped_column(
        SQLEnum(ReservationChannel), default=ReservationChannel.PHONE
    )

    # Current state
    status: Mapped[ReservationStatus] = mapped_column(
        SQLEnum(ReservationStatus), default=ReservationStatus.ENQUIRY, index=True
    )

    # Held unit
    table_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    waitlist_entry_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timing
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    seated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    bill_dropped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    no_show_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    turn_time_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    history: Mapped[List[dict]] = mapped_column(JSON, default=list)

    @classmethod
    def from_entity(cls, reservation: Reservation) -> "ReservationRecord":
        record = cls(id=reservation.id)
        record.update_from(reservation)
        return record

    def update_from(self, reservation: Reservation):
        self.org_id = reservation.org_id
        self.party_size = reservation.party_size
        self.requested_at = reservation.requested_at
        self.guest_id = reservation.guest_id
        self.guest_name = reservation.guest_name
        self.channel = reservation.channel
        self.status = reservation.status
        self.table_id = reservation.table_id
        self.group_id = reservation.group_id
        self.notes = reservation.notes
        self.waitlist_entry_id = reservation.waitlist_entry_id
        self.created_at = reservation.created_at
        self.confirmed_at = reservation.confirmed_at
        self.seated_at = reservation.seated_at
        self.bill_dropped_at = reservation.bill_dropped_at
        self.completed_at = reservation.completed_at
        self.cancelled_at = reservation.cancelled_at
        self.no_show_at = reservation.no_show_at
        self.turn_time_minutes = reservation.turn_time_minutes
        # Reassign so the JSON column is flagged dirty
        self.history = [change.to_dict() for change in reservation.history]

    def to_entity(self) -> Reservation:
        return Reservation(
            id=self.id,
            org_id=self.org_id,
            party_size=self.party_size,
            requested_at=self.requested_at,
            guest_id=self.guest_id,
            guest_name=self.guest_name,
            channel=self.channel,
            status=self.status,
            table_id=self.table_id,
            group_id=self.group_id,
            notes=self.notes,
            waitlist_entry_id=self.waitlist_entry_id,
            created_at=self.created_at,
            confirmed_at=self.confirmed_at,
            seated_at=self.seated_at,
            bill_dropped_at=self.bill_dropped_at,
            completed_at=self.completed_at,
            cancelled_at=self.cancelled_at,
            no_show_at=self.no_show_at,
            turn_time_minutes=self.turn_time_minutes,
            history=[StatusChange.from_dict(item) for item in self.history or []],
        )
