"""Booking arbitration engine for property viewings."""

__version__ = "1.0.0"
