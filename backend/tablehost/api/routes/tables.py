"""Table management API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ...core import FloorEngine, NoFit
from ..deps import get_engine

router = APIRouter(prefix="/orgs/{org_id}/tables", tags=["tables"])


class TableCreate(BaseModel):
    """Schema for creating a table."""

    name: str
    capacity: int = Field(4, ge=1)
    zone: str = "indoor"
    min_capacity: int = Field(1, ge=1)
    sort_order: int = 0


class BlockRequest(BaseModel):
    """Schema for taking a table out of service."""

    reason: Optional[str] = None
    actor: Optional[str] = None


class ActorRequest(BaseModel):
    """Who is issuing the command."""

    actor: Optional[str] = None


class CombineRequest(BaseModel):
    """Schema for joining tables."""

    table_ids: List[int] = Field(..., min_length=2)
    actor: Optional[str] = None


class TableResponse(BaseModel):
    """Schema for a table with its derived status."""

    id: int
    org_id: str
    name: str
    capacity: int
    min_capacity: int
    zone: str
    blocked: bool
    block_reason: Optional[str]
    sort_order: int
    status: str
    reservation_id: Optional[int]
    group_id: Optional[str]


@router.get("", response_model=List[TableResponse])
async def get_tables(
    org_id: str,
    status: Optional[str] = None,
    zone: Optional[str] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Get the floor, optionally filtered by derived status or zone."""
    views = await engine.floor_status(org_id)
    if status:
        views = [v for v in views if v.status.value == status]
    if zone:
        views = [v for v in views if v.table.zone == zone]
    return [TableResponse(**v.to_dict()) for v in views]


@router.get("/assign")
async def suggest_table(
    org_id: str,
    party_size: int = Query(..., ge=1),
    preferred_table_id: Optional[int] = None,
    preferred_group_id: Optional[str] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Best-fit table for a party. Nothing is held."""
    choice = await engine.assign_table(
        org_id,
        party_size,
        preferred_table_id=preferred_table_id,
        preferred_group_id=preferred_group_id,
    )
    if isinstance(choice, NoFit):
        return choice.to_dict()
    return {"no_fit": False, "unit": choice.to_dict()}


@router.get("/{table_id}", response_model=TableResponse)
async def get_table(org_id: str, table_id: int, engine: FloorEngine = Depends(get_engine)):
    """Get a specific table with its derived status."""
    view = await engine.table_status(org_id, table_id)
    return TableResponse(**view.to_dict())


@router.post("", response_model=TableResponse, status_code=201)
async def create_table(
    org_id: str,
    table_data: TableCreate,
    engine: FloorEngine = Depends(get_engine),
):
    """Create a new table."""
    table = await engine.add_table(
        org_id,
        name=table_data.name,
        capacity=table_data.capacity,
        zone=table_data.zone,
        min_capacity=table_data.min_capacity,
        sort_order=table_data.sort_order,
    )
    view = await engine.table_status(org_id, table.id)
    return TableResponse(**view.to_dict())


@router.post("/{table_id}/block", response_model=TableResponse)
async def block_table(
    org_id: str,
    table_id: int,
    request: BlockRequest,
    engine: FloorEngine = Depends(get_engine),
):
    """Take a table out of service."""
    view = await engine.block(org_id, table_id, reason=request.reason, actor=request.actor)
    return TableResponse(**view.to_dict())


@router.post("/{table_id}/unblock", response_model=TableResponse)
async def unblock_table(
    org_id: str,
    table_id: int,
    request: Optional[ActorRequest] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Return a table to service."""
    view = await engine.unblock(org_id, table_id, actor=request.actor if request else None)
    return TableResponse(**view.to_dict())


@router.post("/groups", status_code=201)
async def combine_tables(
    org_id: str,
    request: CombineRequest,
    engine: FloorEngine = Depends(get_engine),
):
    """Combine tables into one assignable group."""
    group = await engine.combine(org_id, request.table_ids, actor=request.actor)
    return group.to_dict()


@router.delete("/groups/{group_id}")
async def uncombine_tables(
    org_id: str,
    group_id: str,
    request: Optional[ActorRequest] = None,
    engine: FloorEngine = Depends(get_engine),
):
    """Split a group back into its tables."""
    tables = await engine.uncombine(org_id, group_id, actor=request.actor if request else None)
    return {"group_id": group_id, "tables": [t.to_dict() for t in tables]}
