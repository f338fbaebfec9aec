"""Persistence contract shared by the relational and document-file backends."""

import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..schemas import (
    APIKeyRecord,
    ColumnDefinition,
    DatabaseRecord,
    QueryLogRecord,
    RowRecord,
    TableRecord,
)


# fields a key update may touch
KEY_FIELDS = frozenset({"key_value", "is_active", "name", "last_used_at"})


def new_id() -> str:
    return str(uuid.uuid4())


def as_filter_text(value: Any) -> Optional[str]:
    """Text form used for equality filtering.

    Mirrors how a JSON ``->>`` lookup renders values: strings as-is, booleans
    lower-case, numbers and containers by their JSON spelling, null as None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, separators=(",", ":"))


class StorageBackend(ABC):
    """Everything the gateway needs from its backing store.

    Implementations wrap driver errors in ``StorageFailure``. Lookups that find
    nothing return ``None`` (or ``False`` for deletes); mapping that to a
    not-found error is the caller's job.
    """

    name = "abstract"

    # -- API keys -----------------------------------------------------------

    @abstractmethod
    def get_key_by_value(self, key_value: str) -> Optional[APIKeyRecord]:
        """Indexed lookup by secret."""

    @abstractmethod
    def get_key(self, key_id: str) -> Optional[APIKeyRecord]:
        ...

    @abstractmethod
    def list_keys(self, database_id: Optional[str] = None) -> List[APIKeyRecord]:
        ...

    @abstractmethod
    def create_key(self, record: APIKeyRecord) -> APIKeyRecord:
        ...

    @abstractmethod
    def update_key(self, key_id: str, **fields) -> Optional[APIKeyRecord]:
        """Set ``key_value``, ``is_active``, ``name`` or ``last_used_at`` atomically."""

    @abstractmethod
    def delete_key(self, key_id: str) -> bool:
        ...

    # -- Databases, tables and columns --------------------------------------

    @abstractmethod
    def create_database(self, record: DatabaseRecord) -> DatabaseRecord:
        ...

    @abstractmethod
    def get_database(self, database_id: str) -> Optional[DatabaseRecord]:
        ...

    @abstractmethod
    def list_databases(self, user_id: Optional[str] = None) -> List[DatabaseRecord]:
        ...

    @abstractmethod
    def create_table(
        self, database_id: str, name: str, columns: List[ColumnDefinition]
    ) -> TableRecord:
        """Create a table; raises ``Conflict`` when the name is taken in the database."""

    @abstractmethod
    def find_table(self, database_id: str, name: str) -> Optional[TableRecord]:
        """Exact, case-sensitive name match inside one database."""

    @abstractmethod
    def list_tables(self, database_id: str) -> List[TableRecord]:
        ...

    @abstractmethod
    def list_columns(self, table_id: str) -> List[ColumnDefinition]:
        """Columns ordered by position."""

    # -- Rows ---------------------------------------------------------------

    @abstractmethod
    def select_rows(
        self, table_id: str, filters: Dict[str, str], limit: int, offset: int = 0
    ) -> List[RowRecord]:
        """Rows of one table matching every filter, oldest first."""

    @abstractmethod
    def get_row(self, table_id: str, row_id: str) -> Optional[RowRecord]:
        ...

    @abstractmethod
    def insert_row(self, table_id: str, data: Dict[str, Any]) -> RowRecord:
        ...

    @abstractmethod
    def replace_row_data(
        self, table_id: str, row_id: str, data: Dict[str, Any]
    ) -> Optional[RowRecord]:
        """Overwrite the whole document of one row and bump ``updated_at``."""

    @abstractmethod
    def delete_row(self, table_id: str, row_id: str) -> bool:
        ...

    # -- Query logs ---------------------------------------------------------

    @abstractmethod
    def append_query_log(self, record: QueryLogRecord) -> None:
        ...

    @abstractmethod
    def list_query_logs(
        self,
        database_id: Optional[str] = None,
        method: Optional[str] = None,
        limit: int = 200,
    ) -> List[QueryLogRecord]:
        """Newest first."""

    @abstractmethod
    def clear_query_logs(self) -> int:
        """Delete every entry and return how many were removed."""
