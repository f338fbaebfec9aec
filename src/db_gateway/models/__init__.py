"""Database models for the DB Gateway Service."""

from .api_key import APIKey
from .query_log import QueryLog
from .table_row import TableRow
from .tenant import Database, DatabaseTable, TableColumn

__all__ = [
    "APIKey",
    "Database",
    "DatabaseTable",
    "QueryLog",
    "TableColumn",
    "TableRow",
]
