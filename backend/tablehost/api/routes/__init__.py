"""API route modules."""

from . import reservations, tables, waitlist, websocket

__all__ = ["reservations", "tables", "waitlist", "websocket"]
