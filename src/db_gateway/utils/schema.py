from typing import List

from ..errors import TableNotFound
from ..schemas import ColumnDefinition, TableRecord
from ..storage.base import StorageBackend


class SchemaResolver:
    """Maps a table name inside a tenant database to its stored table."""

    def __init__(self, store: StorageBackend):
        self.store = store

    def resolve(self, database_id: str, table_name: str) -> TableRecord:
        """Exact, case-sensitive lookup; names are unique per database."""
        table = self.store.find_table(database_id, table_name)
        if table is None:
            raise TableNotFound(table_name)
        return table

    def columns(self, table_id: str) -> List[ColumnDefinition]:
        return self.store.list_columns(table_id)
