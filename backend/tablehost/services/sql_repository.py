"""FloorRepository backed by SQLAlchemy's async ORM."""

import logging
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.entities import (
    CombinedGroup,
    Guest,
    ReservationStatus,
    Reservation,
    Table,
    TERMINAL_RESERVATION_STATUSES,
    WaitlistEntry,
    ACTIVE_WAITLIST_STATUSES,
)
from ..core.repository import FloorRepository, ReservationFilter
from ..models import (
    CombinedGroupRecord,
    GuestRecord,
    ReservationRecord,
    TableRecord,
    WaitlistRecord,
    async_session,
)

logger = logging.getLogger(__name__)


class SqlFloorRepository(FloorRepository):
    """
    Stores the floor in the configured database.

    Every call opens its own session, so entities handed out are detached
    copies. ``save`` writes everything in one transaction.
    """

    RECORDS = {
        Table: TableRecord,
        CombinedGroup: CombinedGroupRecord,
        Reservation: ReservationRecord,
        Guest: GuestRecord,
        WaitlistEntry: WaitlistRecord,
    }

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self.session_factory = session_factory or async_session

    async def _get(self, record_cls, org_id: str, entity_id):
        async with self.session_factory() as session:
            record = await session.get(record_cls, entity_id)
            if record is None or record.org_id != org_id:
                return None
            return record.to_entity()

    async def _all(self, session: AsyncSession, query) -> list:
        result = await session.execute(query)
        return [record.to_entity() for record in result.scalars().all()]

    async def get_table(self, org_id, table_id):
        return await self._get(TableRecord, org_id, table_id)

    async def list_tables(self, org_id):
        async with self.session_factory() as session:
            return await self._all(
                session,
                select(TableRecord).where(TableRecord.org_id == org_id).order_by(TableRecord.id),
            )

    async def get_group(self, org_id, group_id):
        return await self._get(CombinedGroupRecord, org_id, group_id)

    async def list_groups(self, org_id):
        async with self.session_factory() as session:
            return await self._all(
                session,
                select(CombinedGroupRecord)
                .where(CombinedGroupRecord.org_id == org_id)
                .order_by(CombinedGroupRecord.id),
            )

    async def get_reservation(self, org_id, reservation_id):
        return await self._get(ReservationRecord, org_id, reservation_id)

    async def list_reservations(self, org_id, criteria=None):
        criteria = criteria or ReservationFilter()
        query = select(ReservationRecord).where(ReservationRecord.org_id == org_id)
        if criteria.active_only:
            query = query.where(ReservationRecord.status.not_in(list(TERMINAL_RESERVATION_STATUSES)))
        if criteria.table_id is not None:
            query = query.where(ReservationRecord.table_id == criteria.table_id)
        if criteria.group_id is not None:
            query = query.where(ReservationRecord.group_id == criteria.group_id)
        query = query.order_by(ReservationRecord.requested_at, ReservationRecord.id)

        async with self.session_factory() as session:
            found = await self._all(session, query)
        # Remaining criteria are cheap to apply in Python
        return [r for r in found if criteria.matches(r)]

    async def get_guest(self, org_id, guest_id):
        return await self._get(GuestRecord, org_id, guest_id)

    async def get_waitlist_entry(self, org_id, entry_id):
        return await self._get(WaitlistRecord, org_id, entry_id)

    async def list_waitlist(self, org_id, include_closed=False):
        query = select(WaitlistRecord).where(WaitlistRecord.org_id == org_id)
        if not include_closed:
            query = query.where(WaitlistRecord.status.in_(list(ACTIVE_WAITLIST_STATUSES)))

        async with self.session_factory() as session:
            entries = await self._all(session, query)
        return sorted(entries, key=lambda e: e.queue_key())

    async def recent_turn_times(self, org_id, limit=50) -> List[float]:
        query = (
            select(ReservationRecord.turn_time_minutes)
            .where(
                ReservationRecord.org_id == org_id,
                ReservationRecord.status == ReservationStatus.COMPLETED,
                ReservationRecord.turn_time_minutes.is_not(None),
            )
            .order_by(desc(ReservationRecord.completed_at))
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [value for value in result.scalars().all()]

    async def save(self, *entities, delete=()):
        delete = list(delete)
        written = []
        async with self.session_factory() as session:
            async with session.begin():
                for entity in entities:
                    record_cls = self.RECORDS.get(type(entity))
                    if record_cls is None:
                        raise TypeError(f"Cannot store {type(entity).__name__}")

                    record = None
                    if entity.id is not None:
                        record = await session.get(record_cls, entity.id)
                    if record is None:
                        record = record_cls.from_entity(entity)
                        session.add(record)
                    else:
                        record.update_from(entity)
                    written.append((entity, record))

                for group in delete:
                    record = await session.get(CombinedGroupRecord, group.id)
                    if record is not None:
                        await session.delete(record)

                await session.flush()
                assigned = [(entity, record.id) for entity, record in written]

        # Ids only become visible to the caller once the commit succeeded
        for entity, entity_id in assigned:
            entity.id = entity_id
        logger.debug("Saved %d entities, deleted %d groups", len(assigned), len(delete))
