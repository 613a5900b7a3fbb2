"""Typed errors raised by the floor engine.

Every error is recoverable for the caller except ``NotFound``, which is
fatal only to the request that raised it. No error means partial state: a
command that raises has not been applied.
"""

from typing import Any, Optional


class FloorError(Exception):
    """Base class for engine errors."""

    code = "floor_error"

    def __init__(self, detail: str, **context: Any):
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, **self.context}


class InvalidTransition(FloorError):
    """Command is not legal from the entity's current status."""

    code = "invalid_transition"

    def __init__(self, entity: str, entity_id: Any, status: str, command: str):
        super().__init__(
            f"Cannot {command} {entity} {entity_id} in status {status}",
            entity=entity,
            entity_id=entity_id,
            status=status,
            command=command,
        )
        self.status = status
        self.command = command


class TableUnavailable(FloorError):
    """Table or group failed its availability precondition at commit time."""

    code = "table_unavailable"

    def __init__(self, detail: str, table_ids: Optional[list] = None):
        super().__init__(detail, table_ids=list(table_ids or []))
        self.table_ids = list(table_ids or [])


class TableOccupied(FloorError):
    """Table is mid-service (SEATED or BILL_DROPPED)."""

    code = "table_occupied"

    def __init__(self, table_id: int, status: str):
        super().__init__(
            f"Table {table_id} is {status}", table_id=table_id, status=status
        )
        self.table_id = table_id
        self.status = status


class Contended(FloorError):
    """A lock could not be acquired in time. Safe to retry."""

    code = "contended"


class NotFound(FloorError):
    """Unknown id."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id
