"""Waitlist entry model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import WaitlistEntry, WaitlistStatus
from .base import Base


class WaitlistRecord(Base):
    """Walk-in party waiting for a table."""

    __tablename__ = "waitlist_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    guest_name: Mapped[str] = mapped_column(String(100), nullable=False)
    guest_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    guest_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[WaitlistStatus] = mapped_column(
        SQLEnum(WaitlistStatus), default=WaitlistStatus.WAITING, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=0)
    estimated_wait_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timing
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    seated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Table offered on notify or taken on seat
    table_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    @classmethod
    def from_entity(cls, entry: WaitlistEntry) -> "WaitlistRecord":
        record = cls(id=entry.id)
        record.update_from(entry)
        return record

    def update_from(self, entry: WaitlistEntry):
        self.org_id = entry.org_id
        self.guest_name = entry.guest_name
        self.guest_phone = entry.guest_phone
        self.guest_id = entry.guest_id
        self.party_size = entry.party_size
        self.status = entry.status
        self.priority = entry.priority
        self.estimated_wait_minutes = entry.estimated_wait_minutes
        self.created_at = entry.created_at
        self.notified_at = entry.notified_at
        self.seated_at = entry.seated_at
        self.left_at = entry.left_at
        self.table_id = entry.table_id
        self.group_id = entry.group_id

    def to_entity(self) -> WaitlistEntry:
        return WaitlistEntry(
            id=self.id,
            org_id=self.org_id,
            guest_name=self.guest_name,
            party_size=self.party_size,
            status=self.status,
            priority=self.priority,
            guest_phone=self.guest_phone,
            guest_id=self.guest_id,
            estimated_wait_minutes=self.estimated_wait_minutes,
            created_at=self.created_at,
            notified_at=self.notified_at,
            seated_at=self.seated_at,
            left_at=self.left_at,
            table_id=self.table_id,
            group_id=self.group_id,
        )
