"""Reservation API routes."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core import (
    FloorEngine,
    ReservationChannel,
    ReservationFilter,
    ReservationStatus,
)
from ..deps import get_engine

router = APIRouter(prefix="/orgs/{org_id}/reservations", tags=["reservations"])


class ReservationCreate(BaseModel):
    """Schema for creating a reservation."""

    party_size: int = Field(..., ge=1)
    requested_at: datetime
    guest_id: Optional[int] = None
    guest_name: str = ""
    channel: ReservationChannel = ReservationChannel.PHONE
    table_id: Optional[int] = None
    group_id: Optional[str] = None
    auto_assign: bool = False
    notes: Optional[str] = None
    actor: Optional[str] = None


class ReservationUpdate(BaseModel):
    """Schema for editing a reservation. Only set fields change."""

    requested_at: Optional[datetime] = None
    party_size: Optional[int] = Field(None, ge=1)
    table_id: Optional[int] = None
    group_id: Optional[str] = None
    clear_table: bool = False
    notes: Optional[str] = None
    guest_name: Optional[str] = None
    actor: Optional[str] = None


class TransitionRequest(BaseModel):
    """Schema for a status command."""

    command: str
    actor: Optional[str] = None


class WalkInRequest(BaseModel):
    """Schema for seating a walk-in party."""

    guest_name: str = ""
    party_size: int = Field(..., ge=1)
    preferred_table_id: Optional[int] = None
    preferred_group_id: Optional[str] = None
    guest_id: Optional[int] = None
    actor: Optional[str] = None


@router.get("")
async def get_reservations(
    org_id: str,
    status: Optional[List[ReservationStatus]] = Query(None),
    active_only: bool = False,
    on_date: Optional[date] = None,
    table_id: Optional[int] = None,
    guest_id: Optional[int] = None,
    channel: Optional[ReservationChannel] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """List reservations, optionally filtered."""
    criteria = ReservationFilter(
        statuses=tuple(status) if status else None,
        active_only=active_only,
        on_date=on_date,
        table_id=table_id,
        guest_id=guest_id,
        channel=channel,
    )
    reservations = await engine.list_reservations(org_id, criteria)
    return [r.to_dict() for r in reservations]


@router.post("", status_code=201)
async def create_reservation(
    org_id: str,
    data: ReservationCreate,
    engine: FloorEngine = Depends(get_engine),
):
    """Create an ENQUIRY, optionally holding a table."""
    result = await engine.create_reservation(
        org_id,
        party_size=data.party_size,
        requested_at=data.requested_at,
        guest_id=data.guest_id,
        guest_name=data.guest_name,
        channel=data.channel,
        table_id=data.table_id,
        group_id=data.group_id,
        auto_assign=data.auto_assign,
        notes=data.notes,
        actor=data.actor,
    )
    # NoFit serialises with "no_fit": true
    return result.to_dict()


@router.post("/walk-ins", status_code=201)
async def seat_walk_in(
    org_id: str,
    data: WalkInRequest,
    engine: FloorEngine = Depends(get_engine),
):
    """Seat a walk-in at the best-fit table, or report that nothing fits."""
    result = await engine.seat_walk_in(
        org_id,
        data.guest_name,
        data.party_size,
        preferred_table_id=data.preferred_table_id,
        preferred_group_id=data.preferred_group_id,
        guest_id=data.guest_id,
        actor=data.actor,
    )
    return result.to_dict()


@router.get("/{reservation_id}")
async def get_reservation(
    org_id: str,
    reservation_id: int,
    engine: FloorEngine = Depends(get_engine),
):
    """Get a reservation with its history."""
    reservation = await engine.get_reservation(org_id, reservation_id)
    return reservation.to_dict()


@router.post("/{reservation_id}/transitions")
async def transition_reservation(
    org_id: str,
    reservation_id: int,
    data: TransitionRequest,
    engine: FloorEngine = Depends(get_engine),
):
    """Apply a status command (confirm, seat, drop_bill, mark_left, ...)."""
    result = await engine.transition(org_id, reservation_id, data.command, actor=data.actor)
    return result.to_dict()


@router.patch("/{reservation_id}")
async def edit_reservation(
    org_id: str,
    reservation_id: int,
    data: ReservationUpdate,
    engine: FloorEngine = Depends(get_engine),
):
    """Edit an ENQUIRY or CONFIRMED reservation."""
    reservation = await engine.edit_reservation(
        org_id,
        reservation_id,
        requested_at=data.requested_at,
        party_size=data.party_size,
        table_id=data.table_id,
        group_id=data.group_id,
        clear_table=data.clear_table,
        notes=data.notes,
        guest_name=data.guest_name,
        actor=data.actor,
    )
    return reservation.to_dict()
