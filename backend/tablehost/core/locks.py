"""Per-entity locks with bounded waits."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Tuple

from .errors import Contended

logger = logging.getLogger(__name__)

# Global acquisition order: reservations, then tables, then waitlist entries
_KIND_RANK = {"reservation": 0, "table": 1, "waitlist": 2}

LockKey = Tuple[str, int, int]


class LockManager:
    """
    Mutual exclusion per reservation, table and waitlist entry.

    A combined group is locked by locking every member table. Keys are always
    taken in one global order so two commands can never wait on each other
    in a cycle, and each wait is capped at ``timeout`` seconds, after which
    ``Contended`` is raised and everything already taken is released.
    """

    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout
        self._locks: Dict[LockKey, asyncio.Lock] = {}
        # holders plus waiters per key; the lock is dropped when it reaches zero
        self._users: Dict[LockKey, int] = {}

    def active(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._locks)

    def _checkout(self, key: LockKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: LockKey):
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    @staticmethod
    def keys(
        org_id: str,
        reservations: Iterable[int] = (),
        tables: Iterable[int] = (),
        waitlist: Iterable[int] = (),
    ) -> List[LockKey]:
        wanted = set()
        for kind, ids in (("reservation", reservations), ("table", tables), ("waitlist", waitlist)):
            for entity_id in ids:
                if entity_id is not None:
                    wanted.add((org_id, _KIND_RANK[kind], entity_id))
        return sorted(wanted)

    def is_locked(self, org_id: str, kind: str, entity_id: int) -> bool:
        lock = self._locks.get((org_id, _KIND_RANK[kind], entity_id))
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(
        self,
        org_id: str,
        reservations: Iterable[int] = (),
        tables: Iterable[int] = (),
        waitlist: Iterable[int] = (),
    ) -> AsyncIterator[List[LockKey]]:
        """Acquire every requested lock in order; release all on exit."""
        keys = self.keys(org_id, reservations, tables, waitlist)
        taken: List[asyncio.Lock] = []
        checked_out: List[LockKey] = []
        try:
            for key in keys:
                lock = self._checkout(key)
                checked_out.append(key)
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    logger.warning("Lock wait timed out for %s", key)
                    raise Contended(
                        "Another terminal is updating this table; try again",
                        key=list(key),
                    ) from None
                taken.append(lock)
            yield keys
        finally:
            for lock in reversed(taken):
                lock.release()
            for key in checked_out:
                self._checkin(key)
