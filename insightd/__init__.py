"""Collect and query logs, endpoint metrics, traces and spans over HTTP, stored in SQLite."""

__version__ = "0.1.0"
__all__ = ["__version__"]