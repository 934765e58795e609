"""Offline-capable asset cache: versioned stores and per-request fetch strategies."""

__version__ = "1.0.0"
