"""Core floor engine modules."""

from .engine import FloorEngine
from .entities import (
    AssignableUnit,
    CombinedGroup,
    Guest,
    NoFit,
    Reservation,
    ReservationChannel,
    ReservationStatus,
    Table,
    TableStatus,
    TableView,
    WaitlistEntry,
    WaitlistStatus,
)
from .errors import Contended, FloorError, InvalidTransition, NotFound, TableOccupied, TableUnavailable
from .events import EventBus
from .repository import FloorRepository, InMemoryFloorRepository, ReservationFilter
from .state_machine import ReservationCommand, ReservationStateMachine

__all__ = [
    "FloorEngine",
    "AssignableUnit",
    "CombinedGroup",
    "Guest",
    "NoFit",
    "Reservation",
    "ReservationChannel",
    "ReservationStatus",
    "Table",
    "TableStatus",
    "TableView",
    "WaitlistEntry",
    "WaitlistStatus",
    "FloorError",
    "InvalidTransition",
    "TableUnavailable",
    "TableOccupied",
    "Contended",
    "NotFound",
    "EventBus",
    "FloorRepository",
    "InMemoryFloorRepository",
    "ReservationFilter",
    "ReservationCommand",
    "ReservationStateMachine",
]
