"""Booking and availability engine for a small clinical practice."""

__version__ = "0.1.0"
