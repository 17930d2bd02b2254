"""Offline-first record sync client."""

__version__ = "1.0.0"
