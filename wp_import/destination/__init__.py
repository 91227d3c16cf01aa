"""Destination-side collaborators: contracts plus the DuckDB and filesystem implementations."""

from .duckdb_store import DuckDBStore
from .local_storage import LocalStorage

__all__ = ["DuckDBStore", "LocalStorage"]
