"""Local backend keeping every collection in one JSON document file.

The file layout matches ``mainwebdb.json``: one top-level list per collection.
The whole document is held in memory and rewritten atomically after each
mutation. The lock protects the file, not row-level ordering: an update still
reads and writes in two separate steps, exactly like the relational backend.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import Conflict, StorageFailure
from ..models.tenant import utcnow
from ..schemas import (
    APIKeyRecord,
    ColumnDefinition,
    DatabaseRecord,
    QueryLogRecord,
    RowRecord,
    TableRecord,
)
from .base import KEY_FIELDS, StorageBackend, as_filter_text, new_id

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "databases",
    "database_tables",
    "table_columns",
    "table_rows",
    "api_keys",
    "query_logs",
)


class JsonFileStore(StorageBackend):
    """Backend for the local document-file deployment."""

    name = "json"

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, dict]] = {name: {} for name in COLLECTIONS}
        self._keys_by_value: Dict[str, str] = {}
        self._load()

    # -- file handling ------------------------------------------------------

    def _load(self):
        if not self.path.exists():
            return
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as e:
            logger.error(f"❌ Could not read {self.path}: {e}")
            raise StorageFailure(f"Could not read document store {self.path}") from e

        for name in COLLECTIONS:
            self._data[name] = {item["id"]: item for item in raw.get(name, [])}
        self._keys_by_value = {
            item["key_value"]: key_id
            for key_id, item in self._data["api_keys"].items()
        }
        logger.info(f"✅ Loaded document store from {self.path}")

    def _flush(self):
        document = {name: list(items.values()) for name, items in self._data.items()}
        directory = self.path.parent
        tmp_path = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"❌ Could not write {self.path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageFailure() from e

    @contextmanager
    def _writing(self):
        """Hold the lock for one mutation and flush it.

        If the block or the flush fails, the in-memory collections go back to
        what they were, so memory never runs ahead of the file.
        """
        with self._lock:
            saved = {name: dict(items) for name, items in self._data.items()}
            saved_index = dict(self._keys_by_value)
            try:
                yield
                self._flush()
            except Exception:
                self._data = saved
                self._keys_by_value = saved_index
                raise

    # -- API keys -----------------------------------------------------------

    def get_key_by_value(self, key_value: str) -> Optional[APIKeyRecord]:
        with self._lock:
            key_id = self._keys_by_value.get(key_value)
            if key_id is None:
                return None
            return APIKeyRecord.model_validate(self._data["api_keys"][key_id])

    def get_key(self, key_id: str) -> Optional[APIKeyRecord]:
        with self._lock:
            item = self._data["api_keys"].get(key_id)
            return APIKeyRecord.model_validate(item) if item else None

    def list_keys(self, database_id: Optional[str] = None) -> List[APIKeyRecord]:
        with self._lock:
            return [
                APIKeyRecord.model_validate(item)
                for item in self._data["api_keys"].values()
                if database_id is None or item["database_id"] == database_id
            ]

    def create_key(self, record: APIKeyRecord) -> APIKeyRecord:
        with self._writing():
            if record.key_value in self._keys_by_value:
                raise Conflict("API key already exists")
            if record.created_at is None:
                record = record.model_copy(update={"created_at": utcnow()})
            self._data["api_keys"][record.id] = record.model_dump(mode="json")
            self._keys_by_value[record.key_value] = record.id
            return record

    def update_key(self, key_id: str, **fields) -> Optional[APIKeyRecord]:
        unknown = set(fields) - KEY_FIELDS
        if unknown:
            raise ValueError(f"Cannot update API key fields: {sorted(unknown)}")

        with self._writing():
            item = self._data["api_keys"].get(key_id)
            if item is None:
                return None
            updated = APIKeyRecord.model_validate(item).model_copy(update=fields)
            new_value = updated.key_value
            if new_value != item["key_value"]:
                if new_value in self._keys_by_value:
                    raise Conflict("API key already exists")
                del self._keys_by_value[item["key_value"]]
                self._keys_by_value[new_value] = key_id
            self._data["api_keys"][key_id] = updated.model_dump(mode="json")
            return updated

    def delete_key(self, key_id: str) -> bool:
        with self._writing():
            item = self._data["api_keys"].pop(key_id, None)
            if item is None:
                return False
            self._keys_by_value.pop(item["key_value"], None)
            return True

    # -- Databases, tables and columns --------------------------------------

    def create_database(self, record: DatabaseRecord) -> DatabaseRecord:
        with self._writing():
            if record.created_at is None:
                record = record.model_copy(update={"created_at": utcnow()})
            self._data["databases"][record.id] = record.model_dump(mode="json")
            return record

    def get_database(self, database_id: str) -> Optional[DatabaseRecord]:
        with self._lock:
            item = self._data["databases"].get(database_id)
            return DatabaseRecord.model_validate(item) if item else None

    def list_databases(self, user_id: Optional[str] = None) -> List[DatabaseRecord]:
        with self._lock:
            items = [
                item
                for item in self._data["databases"].values()
                if user_id is None or item["user_id"] == user_id
            ]
            return [
                DatabaseRecord.model_validate(item)
                for item in sorted(items, key=lambda d: d["name"])
            ]

    def create_table(
        self, database_id: str, name: str, columns: List[ColumnDefinition]
    ) -> TableRecord:
        with self._writing():
            if self.find_table(database_id, name) is not None:
                raise Conflict(f'Table "{name}" already exists')
            table = TableRecord(
                id=new_id(), database_id=database_id, name=name, created_at=utcnow()
            )
            self._data["database_tables"][table.id] = table.model_dump(mode="json")
            for position, column in enumerate(columns):
                column_id = new_id()
                self._data["table_columns"][column_id] = {
                    "id": column_id,
                    "table_id": table.id,
                    **column.model_copy(update={"position": position}).model_dump(),
                }
            return table

    def find_table(self, database_id: str, name: str) -> Optional[TableRecord]:
        with self._lock:
            for item in self._data["database_tables"].values():
                if item["database_id"] == database_id and item["name"] == name:
                    return TableRecord.model_validate(item)
            return None

    def list_tables(self, database_id: str) -> List[TableRecord]:
        with self._lock:
            items = [
                item
                for item in self._data["database_tables"].values()
                if item["database_id"] == database_id
            ]
            return [
                TableRecord.model_validate(item)
                for item in sorted(items, key=lambda t: t["name"])
            ]

    def list_columns(self, table_id: str) -> List[ColumnDefinition]:
        with self._lock:
            items = [
                item
                for item in self._data["table_columns"].values()
                if item["table_id"] == table_id
            ]
            return [
                ColumnDefinition.model_validate(item)
                for item in sorted(items, key=lambda c: c["position"])
            ]

    # -- Rows ---------------------------------------------------------------

    def select_rows(
        self, table_id: str, filters: Dict[str, str], limit: int, offset: int = 0
    ) -> List[RowRecord]:
        with self._lock:
            matches = [
                item
                for item in self._data["table_rows"].values()
                if item["table_id"] == table_id
                and all(
                    key in item["data"] and as_filter_text(item["data"][key]) == text
                    for key, text in filters.items()
                )
            ]
            # stable sort keeps insertion order for equal timestamps
            matches.sort(key=lambda r: RowRecord.model_validate(r).created_at)
            return [
                RowRecord.model_validate(item)
                for item in matches[offset : offset + limit]
            ]

    def get_row(self, table_id: str, row_id: str) -> Optional[RowRecord]:
        with self._lock:
            item = self._data["table_rows"].get(row_id)
            if item is None or item["table_id"] != table_id:
                return None
            return RowRecord.model_validate(item)

    def insert_row(self, table_id: str, data: Dict[str, Any]) -> RowRecord:
        with self._writing():
            now = utcnow()
            row = RowRecord(
                id=new_id(),
                table_id=table_id,
                data=data,
                created_at=now,
                updated_at=now,
            )
            self._data["table_rows"][row.id] = row.model_dump(mode="json")
            return RowRecord.model_validate(self._data["table_rows"][row.id])

    def replace_row_data(
        self, table_id: str, row_id: str, data: Dict[str, Any]
    ) -> Optional[RowRecord]:
        with self._writing():
            item = self._data["table_rows"].get(row_id)
            if item is None or item["table_id"] != table_id:
                return None
            row = RowRecord.model_validate(item).model_copy(
                update={"data": data, "updated_at": utcnow()}
            )
            self._data["table_rows"][row_id] = row.model_dump(mode="json")
            return RowRecord.model_validate(self._data["table_rows"][row_id])

    def delete_row(self, table_id: str, row_id: str) -> bool:
        with self._writing():
            item = self._data["table_rows"].get(row_id)
            if item is None or item["table_id"] != table_id:
                return False
            del self._data["table_rows"][row_id]
            return True

    # -- Query logs ---------------------------------------------------------

    def append_query_log(self, record: QueryLogRecord) -> None:
        with self._writing():
            if record.created_at is None:
                record = record.model_copy(update={"created_at": utcnow()})
            self._data["query_logs"][record.id] = record.model_dump(mode="json")

    def list_query_logs(
        self,
        database_id: Optional[str] = None,
        method: Optional[str] = None,
        limit: int = 200,
    ) -> List[QueryLogRecord]:
        with self._lock:
            logs = [
                QueryLogRecord.model_validate(item)
                for item in self._data["query_logs"].values()
                if (database_id is None or item["database_id"] == database_id)
                and (method is None or item["method"] == method)
            ]
            # newest first; reverse insertion order breaks timestamp ties
            logs.reverse()
            logs.sort(key=lambda log: log.created_at, reverse=True)
            return logs[:limit]

    def clear_query_logs(self) -> int:
        with self._writing():
            count = len(self._data["query_logs"])
            self._data["query_logs"] = {}
            return count
