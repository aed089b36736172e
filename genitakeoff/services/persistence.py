import asyncio
import logging
import sqlite3

from genitakeoff.errors import PersistenceError

logger = logging.getLogger(__name__)

STORAGE_ERRORS = (sqlite3.Error, OSError)


async def run_db(fn, *args, **kwargs):
    """Run a blocking database call off the event loop.

    Storage failures come back as :class:`PersistenceError` so callers can retry
    without knowing which backend is underneath.
    """
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except STORAGE_ERRORS as exc:
        name = getattr(fn, "__name__", repr(fn))
        logger.warning("Storage call %s failed: %s", name, exc)
        raise PersistenceError(f"{name} failed: {exc}") from exc


__all__ = ["STORAGE_ERRORS", "run_db"]
