"""Property listing sync and query layer for a rental dashboard."""

__version__ = "0.1.0"
