"""Waitlist API routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core import FloorEngine
from ..deps import get_engine

router = APIRouter(prefix="/orgs/{org_id}/waitlist", tags=["waitlist"])


class WaitlistCreate(BaseModel):
    """Schema for adding a party to the waitlist."""

    guest_name: str
    party_size: int = Field(..., ge=1)
    guest_phone: Optional[str] = None
    guest_id: Optional[int] = None
    priority: int = 0


class NotifyRequest(BaseModel):
    """Schema for telling a party their table is ready."""

    table_id: Optional[int] = None
    group_id: Optional[str] = None
    actor: Optional[str] = None


class SeatRequest(BaseModel):
    """Schema for seating a waitlisted party."""

    preferred_table_id: Optional[int] = None
    preferred_group_id: Optional[str] = None
    actor: Optional[str] = None


class ActorRequest(BaseModel):
    actor: Optional[str] = None


@router.get("")
async def get_waitlist(
    org_id: str,
    include_closed: bool = False,
    engine: FloorEngine = Depends(get_engine),
):
    """The queue in offer order."""
    entries = await engine.list_waitlist(org_id, include_closed=include_closed)
    return [e.to_dict() for e in entries]


@router.get("/estimate")
async def estimate_wait(
    org_id: str,
    party_size: int = Query(..., ge=1),
    engine: FloorEngine = Depends(get_engine),
):
    """Quote a wait before the party joins."""
    minutes = await engine.estimate_wait(org_id, party_size)
    return {"party_size": party_size, "estimated_wait_minutes": minutes}


@router.post("", status_code=201)
async def join_waitlist(
    org_id: str,
    data: WaitlistCreate,
    engine: FloorEngine = Depends(get_engine),
):
    """Add a party to the waitlist."""
    entry = await engine.enqueue_waitlist(
        org_id,
        data.guest_name,
        data.party_size,
        guest_phone=data.guest_phone,
        guest_id=data.guest_id,
        priority=data.priority,
    )
    return entry.to_dict()


@router.post("/{entry_id}/notify")
async def notify_party(
    org_id: str,
    entry_id: int,
    data: Optional[NotifyRequest] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Tell a waiting party their table is ready."""
    data = data or NotifyRequest()
    entry = await engine.notify_waitlist(
        org_id, entry_id, table_id=data.table_id, group_id=data.group_id, actor=data.actor
    )
    return entry.to_dict()


@router.post("/{entry_id}/seat")
async def seat_party(
    org_id: str,
    entry_id: int,
    data: Optional[SeatRequest] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Seat a waiting or notified party."""
    data = data or SeatRequest()
    result = await engine.seat_waitlist(
        org_id,
        entry_id,
        preferred_table_id=data.preferred_table_id,
        preferred_group_id=data.preferred_group_id,
        actor=data.actor,
    )
    return result.to_dict()


@router.post("/{entry_id}/leave")
async def leave_waitlist(
    org_id: str,
    entry_id: int,
    data: Optional[ActorRequest] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """The party gave up or could not be reached."""
    entry = await engine.leave_waitlist(org_id, entry_id, actor=data.actor if data else None)
    return entry.to_dict()
