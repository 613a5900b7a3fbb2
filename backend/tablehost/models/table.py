"""Table and combined-group models."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..core.entities import CombinedGroup, Table
from .base import Base


class TableRecord(Base):
    """Restaurant table. Status is derived, so none is stored."""

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    min_capacity: Mapped[int] = mapped_column(Integer, default=1)

    # Layout
    zone: Mapped[str] = mapped_column(String(50), default="indoor")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Out of service
    blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    block_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    group_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    @classmethod
    def from_entity(cls, table: Table) -> "TableRecord":
        record = cls(id=table.id)
        record.update_from(table)
        return record

    def update_from(self, table: Table):
        self.org_id = table.org_id
        self.name = table.name
        self.capacity = table.capacity
        self.min_capacity = table.min_capacity
        self.zone = table.zone
        self.sort_order = table.sort_order
        self.blocked = table.blocked
        self.block_reason = table.block_reason
        self.group_id = table.group_id

    def to_entity(self) -> Table:
        return Table(
            id=self.id,
            org_id=self.org_id,
            name=self.name,
            capacity=self.capacity,
            zone=self.zone,
            min_capacity=self.min_capacity,
            blocked=self.blocked,
            block_reason=self.block_reason,
            sort_order=self.sort_order,
            group_id=self.group_id,
        )


class CombinedGroupRecord(Base):
    """Tables pushed together and assigned as one."""

    __tablename__ = "table_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    org_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    table_ids: Mapped[List[int]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    @classmethod
    def from_entity(cls, group: CombinedGroup) -> "CombinedGroupRecord":
        record = cls(id=group.id)
        record.update_from(group)
        return record

    def update_from(self, group: CombinedGroup):
        self.org_id = group.org_id
        self.table_ids = sorted(group.table_ids)
        self.created_at = group.created_at

    def to_entity(self) -> CombinedGroup:
        return CombinedGroup(
            id=self.id,
            org_id=self.org_id,
            table_ids=list(self.table_ids),
            created_at=self.created_at,
        )
