"""Gateway services: key store, schema resolver, row store and audit logger."""

from .audit import AuditLogger
from .auth import APIKeyManager
from .logging import get_logger, setup_logging
from .rows import RowStore
from .schema import SchemaResolver

__all__ = [
    "APIKeyManager",
    "AuditLogger",
    "RowStore",
    "SchemaResolver",
    "get_logger",
    "setup_logging",
]
