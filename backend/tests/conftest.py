"""Shared fixtures for floor engine tests."""

from datetime import datetime

import pytest

from tablehost.config import Settings
from tablehost.core import FloorEngine, InMemoryFloorRepository
from tablehost.core.clock import FrozenClock

T0 = datetime(2026, 3, 14, 18, 0)
ORG = "bistro-1"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FrozenClock(T0)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        lock_timeout_seconds=0.2,
        avg_turn_minutes=90.0,
        reserved_lookahead_minutes=120,
        reservation_grace_minutes=15,
        waitlist_concurrent_turnovers=2,
        promotion_enabled=True,
    )


@pytest.fixture
def engine(clock, settings):
    return FloorEngine(repository=InMemoryFloorRepository(), clock=clock, settings=settings)


async def add_tables(engine, *capacities, org_id=ORG):
    """Add one table per capacity, named T1, T2, ... in order."""
    tables = []
    for number, capacity in enumerate(capacities, start=1):
        tables.append(await engine.add_table(org_id, f"T{number}", capacity))
    return tables
