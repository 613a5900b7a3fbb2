"""Best-fit table assignment for walk-ins and reservations."""

from datetime import datetime
from typing import List, Optional, Tuple, Union

from .entities import AssignableUnit, NoFit
from .registry import FloorPlan


class TableAssigner:
    """
    Picks the table or combined group a party should sit at.

    Candidates are units that can be held for the party's arrival time (now
    for walk-ins: they must derive AVAILABLE) and seat at least the party.
    Ranking, lowest first:
    - wasted seats (capacity - party size)
    - absolute capacity
    - lowest table id (lowest member id for a group)

    A preferred unit that is itself assignable skips the ranking; it may be
    larger than needed but never smaller than the party.
    """

    @staticmethod
    def score(unit: AssignableUnit, party_size: int) -> Tuple[int, int, int]:
        return (unit.capacity - party_size, unit.capacity, unit.first_table_id)

    def candidates(
        self,
        plan: FloorPlan,
        party_size: int,
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> List[AssignableUnit]:
        """Assignable units that fit, best first."""
        if party_size < 1:
            raise ValueError("party_size must be at least 1")

        fitting = [
            unit
            for unit in plan.units()
            if unit.capacity >= party_size and plan.is_assignable(unit, at, ignore)
        ]
        fitting.sort(key=lambda u: self.score(u, party_size))
        return fitting

    def preferred(
        self,
        plan: FloorPlan,
        party_size: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> Optional[AssignableUnit]:
        """The explicitly requested unit, if it can take the party."""
        unit = None
        if preferred_group_id is not None:
            unit = plan.unit("group", preferred_group_id)
        elif preferred_table_id is not None and preferred_table_id in plan.tables:
            unit = plan.unit_for_table(preferred_table_id)

        if unit is None or unit.capacity < party_size:
            return None
        if not plan.is_assignable(unit, at, ignore):
            return None
        return unit

    def assign(
        self,
        plan: FloorPlan,
        party_size: int,
        preferred_table_id: Optional[int] = None,
        preferred_group_id: Optional[str] = None,
        exclude: Tuple[tuple, ...] = (),
        at: Optional[datetime] = None,
        ignore: Optional[int] = None,
    ) -> Union[AssignableUnit, NoFit]:
        """
        Choose a unit for the party.

        Args:
            plan: Floor snapshot to score against
            party_size: Number of guests
            preferred_table_id: Table staff asked for, if any
            preferred_group_id: Combined group staff asked for, if any
            exclude: (kind, id) units already lost to a race this round
            at: When the party arrives; now when omitted
            ignore: Reservation being placed, so it never clashes with itself

        Returns:
            The chosen unit, or ``NoFit`` when nothing can take the party
        """
        choice = self.preferred(
            plan, party_size, preferred_table_id, preferred_group_id, at, ignore
        )
        if choice is not None and (choice.kind, choice.id) not in exclude:
            return choice

        for unit in self.candidates(plan, party_size, at, ignore):
            if (unit.kind, unit.id) not in exclude:
                return unit
        return NoFit(party_size=party_size)
