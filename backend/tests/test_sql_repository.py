"""Tests for the SQLAlchemy-backed repository."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tablehost.core import (
    CombinedGroup,
    FloorEngine,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    Table,
    TableStatus,
    WaitlistEntry,
    WaitlistStatus,
)
from tablehost.core.entities import StatusChange
from tablehost.models import init_db
from tablehost.services.sql_repository import SqlFloorRepository

from conftest import ORG, T0, add_tables


@pytest.fixture
async def repository():
    db_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(db_engine)
    yield SqlFloorRepository(async_sessionmaker(db_engine, expire_on_commit=False))
    await db_engine.dispose()


@pytest.mark.anyio
class TestSqlFloorRepository:
    """Tests for SQL persistence."""

    async def test_save_assigns_ids(self, repository):
        table = Table(id=None, org_id=ORG, name="T1", capacity=4, zone="patio")
        await repository.save(table)

        assert table.id is not None
        stored = await repository.get_table(ORG, table.id)
        assert stored == table
        assert await repository.get_table("other-org", table.id) is None

    async def test_reservation_round_trip(self, repository):
        reservation = Reservation(
            id=None,
            org_id=ORG,
            party_size=3,
            requested_at=T0,
            guest_name="Ada",
            status=ReservationStatus.CONFIRMED,
            table_id=1,
            confirmed_at=T0,
            history=[
                StatusChange(
                    from_status=ReservationStatus.ENQUIRY,
                    to_status=ReservationStatus.CONFIRMED,
                    command="confirm",
                    actor="host",
                    at=T0,
                )
            ],
        )
        await repository.save(reservation)

        stored = await repository.get_reservation(ORG, reservation.id)
        assert stored.status == ReservationStatus.CONFIRMED
        assert stored.history == reservation.history

        stored.party_size = 4
        await repository.save(stored)
        assert (await repository.get_reservation(ORG, reservation.id)).party_size == 4

    async def test_groups_and_delete(self, repository):
        a = Table(id=None, org_id=ORG, name="T1", capacity=2)
        b = Table(id=None, org_id=ORG, name="T2", capacity=2)
        await repository.save(a, b)

        group = CombinedGroup(id="g-1", org_id=ORG, table_ids=[b.id, a.id], created_at=T0)
        a.group_id = b.group_id = group.id
        await repository.save(group, a, b)

        groups = await repository.list_groups(ORG)
        assert [g.table_ids for g in groups] == [sorted([a.id, b.id])]

        await repository.save(delete=[group])
        assert await repository.get_group(ORG, "g-1") is None

    async def test_list_filters(self, repository):
        done = Reservation(
            id=None,
            org_id=ORG,
            party_size=2,
            requested_at=T0,
            status=ReservationStatus.COMPLETED,
            completed_at=T0 + timedelta(minutes=50),
            turn_time_minutes=50.0,
        )
        live = Reservation(id=None, org_id=ORG, party_size=2, requested_at=T0 + timedelta(hours=1))
        await repository.save(done, live)

        active = await repository.list_reservations(ORG, ReservationFilter(active_only=True))
        assert [r.id for r in active] == [live.id]
        assert await repository.recent_turn_times(ORG) == [50.0]

    async def test_waitlist_order(self, repository):
        late = WaitlistEntry(id=None, org_id=ORG, guest_name="Late", party_size=2,
                             created_at=T0 + timedelta(minutes=5))
        early = WaitlistEntry(id=None, org_id=ORG, guest_name="Early", party_size=2, created_at=T0)
        gone = WaitlistEntry(id=None, org_id=ORG, guest_name="Gone", party_size=2,
                             status=WaitlistStatus.LEFT, created_at=T0)
        await repository.save(late, early, gone)

        assert [e.guest_name for e in await repository.list_waitlist(ORG)] == ["Early", "Late"]
        assert len(await repository.list_waitlist(ORG, include_closed=True)) == 3

    async def test_engine_on_sql(self, repository, clock, settings):
        """The engine behaves the same on SQL storage."""
        engine = FloorEngine(repository=repository, clock=clock, settings=settings)
        four, two = await add_tables(engine, 4, 2)

        reservation = await engine.seat_walk_in(ORG, "Lee", 2)
        assert reservation.table_id == two.id
        assert (await engine.table_status(ORG, two.id)).status == TableStatus.SEATED

        clock.advance(minutes=40)
        done = await engine.transition(ORG, reservation.id, "mark_left")
        assert done.turn_time_minutes == 40.0
        assert (await engine.table_status(ORG, two.id)).status == TableStatus.AVAILABLE

        group = await engine.combine(ORG, [four.id, two.id])
        assert (await engine.table_status(ORG, four.id)).group_id == group.id
