"""Sync ActivityWatch time tracking into conjure.so time entry measures."""

__version__ = "1.0.0"
