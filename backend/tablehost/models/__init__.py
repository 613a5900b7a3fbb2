"""Database models for the floor engine."""

from .base import Base, async_session, engine, get_db, init_db
from .guest import GuestRecord
from .reservation import ReservationRecord
from .table import CombinedGroupRecord, TableRecord
from .waitlist import WaitlistRecord

__all__ = [
    "Base",
    "engine",
    "get_db",
    "init_db",
    "async_session",
    "TableRecord",
    "CombinedGroupRecord",
    "ReservationRecord",
    "GuestRecord",
    "WaitlistRecord",
]
