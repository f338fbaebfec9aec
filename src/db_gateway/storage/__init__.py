"""Storage backends behind one interface."""

import logging
from functools import lru_cache

from .base import StorageBackend
from .json_file import JsonFileStore
from .sql import SQLStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> StorageBackend:
    """Return the process-wide backend selected by ``settings.storage_backend``."""
    from ..config import settings

    if settings.storage_backend == "json":
        logger.info(f"📄 Using document-file store at {settings.json_store_path}")
        return JsonFileStore(settings.json_store_path)
    if settings.storage_backend == "sql":
        from ..database import SessionLocal

        return SQLStore(SessionLocal)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")


__all__ = ["JsonFileStore", "SQLStore", "StorageBackend", "get_store"]
