"""Background waitlist promotion when tables free up."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Sequence, Set, Tuple

from .entities import WaitlistEntry, WaitlistStatus
from .errors import Contended, InvalidTransition, TableUnavailable
from .events import DomainEvent, ReservationChanged, TableFreed
from .waitlist import WaitlistQueue

logger = logging.getLogger(__name__)


@dataclass
class FreedTables:
    """Work item: tables that just became assignable."""

    org_id: str
    table_ids: Tuple[int, ...]
    attempts: int = 0


class WaitlistPromoter:
    """
    Offers freed tables to waiting parties.

    Subscribes to the engine's event bus and queues every event that frees
    tables. The processing loop offers each freed unit to the first WAITING
    entry that fits (FIFO-with-fit) by issuing the same ``notify`` command
    staff would, so promotion goes through the per-table and per-entry locks
    and can never offer one entry twice or one table to two entries.

    Runs as a background task started by the API lifespan; tests call
    ``drain`` instead.
    """

    def __init__(self, engine, max_attempts: int = 3):
        self.engine = engine
        self.max_attempts = max_attempts
        self.queue: asyncio.Queue = asyncio.Queue()
        self._running = False
        self.max_seen = 1000
        self._seen: Set[Tuple] = set()
        self._seen_order: Deque[Tuple] = deque()

    async def on_event(self, event: DomainEvent):
        """Bus subscriber: queue tables freed by the event, if any."""
        if isinstance(event, TableFreed):
            table_ids = event.table_ids
        elif isinstance(event, ReservationChanged):
            table_ids = event.freed_table_ids
        else:
            return

        if not table_ids:
            return

        # At-least-once delivery: ignore replays of an event already queued
        if not self._remember(event.dedup_key):
            return

        await self.queue.put(
            FreedTables(org_id=event.org_id, table_ids=tuple(table_ids))
        )

    def _remember(self, key: Tuple) -> bool:
        """Record a dedup key; False if it was already seen recently."""
        if key in self._seen:
            return False
        self._seen.add(key)
        self._seen_order.append(key)
        while len(self._seen_order) > self.max_seen:
            self._seen.discard(self._seen_order.popleft())
        return True

    async def start(self):
        """Start the promotion loop."""
        self._running = True
        logger.info("Waitlist promoter started")

        while self._running:
            try:
                try:
                    item = await asyncio.wait_for(self.queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await self._process(item)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Waitlist promotion failed")

        logger.info("Waitlist promoter stopped")

    async def stop(self):
        """Stop the promotion loop."""
        self._running = False

    async def drain(self) -> List[WaitlistEntry]:
        """Process everything queued so far. Used when no loop is running."""
        promoted: List[WaitlistEntry] = []
        while not self.queue.empty():
            item = self.queue.get_nowait()
            promoted.extend(await self._process(item))
        return promoted

    async def _process(self, item: FreedTables) -> List[WaitlistEntry]:
        try:
            return await self.promote(item.org_id, item.table_ids)
        except Contended:
            item.attempts += 1
            if item.attempts < self.max_attempts:
                logger.debug("Promotion for %s contended; requeueing", item.table_ids)
                await self.queue.put(item)
            else:
                logger.warning(
                    "Giving up promotion for tables %s in %s after %d attempts",
                    list(item.table_ids),
                    item.org_id,
                    item.attempts,
                )
            return []

    async def promote(self, org_id: str, table_ids: Sequence[int]) -> List[WaitlistEntry]:
        """
        Offer each freed unit to the first fitting WAITING party.

        Args:
            org_id: Organisation whose tables freed up
            table_ids: Tables reported free; grouped tables are offered as
                their whole group

        Returns:
            The entries moved to NOTIFIED, in the order they were offered
        """
        plan = await self.engine.snapshot(org_id)
        promoted: List[WaitlistEntry] = []
        offered_units = set()

        for table_id in table_ids:
            if table_id not in plan.tables:
                continue
            unit = plan.unit_for_table(table_id)
            if (unit.kind, unit.id) in offered_units:
                continue
            offered_units.add((unit.kind, unit.id))

            if not plan.is_assignable(unit):
                continue

            waiting = await self.engine.repository.list_waitlist(org_id)
            if set(unit.table_ids) & self._offered_tables(plan, waiting):
                logger.debug("%s is already offered to a notified party", unit.name)
                continue

            entry = WaitlistQueue.next_fitting(waiting, unit.capacity)
            if entry is None:
                logger.debug("No waiting party fits %s (%d seats)", unit.name, unit.capacity)
                continue

            try:
                notified = await self.engine.notify_waitlist(
                    org_id,
                    entry.id,
                    table_id=None if unit.is_group else unit.id,
                    group_id=unit.id if unit.is_group else None,
                    actor="promoter",
                    automatic=True,
                )
            except (InvalidTransition, TableUnavailable) as exc:
                # Lost a race with staff; the state we saw is gone
                logger.info("Skipped promotion of entry %s: %s", entry.id, exc.detail)
                continue

            promoted.append(notified)

        return promoted

    @staticmethod
    def _offered_tables(plan, entries: Sequence[WaitlistEntry]) -> Set[int]:
        """Tables currently offered to NOTIFIED parties."""
        offered: Set[int] = set()
        for entry in entries:
            if entry.status != WaitlistStatus.NOTIFIED:
                continue
            if entry.group_id is not None and entry.group_id in plan.groups:
                offered.update(plan.groups[entry.group_id].table_ids)
            elif entry.table_id is not None:
                offered.add(entry.table_id)
        return offered
