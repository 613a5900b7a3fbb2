"""Reservation, table and waitlist engine for restaurant floors."""

__version__ = "0.1.0"
