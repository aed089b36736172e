"""Infrastructure modules for Geni Takeoff."""

from . import config_store, document_renderer, takeoff_db

__all__ = ["config_store", "document_renderer", "takeoff_db"]
