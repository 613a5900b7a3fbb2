"""Guest model. Profiles are owned by the CRM; the engine keeps counters."""

from typing import Optional

from sqlalchemy import Enum as SQLEnum, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import Guest, VipTier
from .base import Base


class GuestRecord(Base):
    """Known guest."""

    __tablename__ = "guests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), default="")
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Counters maintained by the floor engine
    visit_count: Mapped[int] = mapped_column(Integer, default=0)
    no_show_count: Mapped[int] = mapped_column(Integer, default=0)

    vip_tier: Mapped[VipTier] = mapped_column(SQLEnum(VipTier), default=VipTier.NEW)
    score: Mapped[float] = mapped_column(Float, default=0.0)

    @classmethod
    def from_entity(cls, guest: Guest) -> "GuestRecord":
        record = cls(id=guest.id)
        record.update_from(guest)
        return record

    def update_from(self, guest: Guest):
        self.org_id = guest.org_id
        self.first_name = guest.first_name
        self.last_name = guest.last_name
        self.phone = guest.phone
        self.email = guest.email
        self.visit_count = guest.visit_count
        self.no_show_count = guest.no_show_count
        self.vip_tier = guest.vip_tier
        self.score = guest.score

    def to_entity(self) -> Guest:
        return Guest(
            id=self.id,
            org_id=self.org_id,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            email=self.email,
            visit_count=self.visit_count,
            no_show_count=self.no_show_count,
            vip_tier=self.vip_tier,
            score=self.score,
        )
