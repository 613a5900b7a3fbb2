"""Services around the floor engine: storage and broadcasting."""

from .broadcast import EventBroadcaster
from .sql_repository import SqlFloorRepository

__all__ = ["EventBroadcaster", "SqlFloorRepository"]
