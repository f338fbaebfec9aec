"""Row operations on schemaless documents.

Updates are a shallow merge: top-level keys of the partial document replace or
extend the stored ones and the merged document is written back whole. Nested
objects are replaced, never merged. Read and write are two separate store
calls, so concurrent updates of one row end last-writer-wins.
"""

import base64
import binascii
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..errors import InvalidPayload, RowNotFound
from ..schemas import ColumnDefinition, RowRecord
from ..storage.base import StorageBackend, as_filter_text

RESERVED_KEYS = ("id", "_created_at", "_updated_at")


def shallow_merge(existing: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    return {**existing, **partial}


def flatten_row(row: RowRecord) -> Dict[str, Any]:
    """Row document with id and timestamps injected as sibling keys."""
    return {
        "id": row.id,
        **row.data,
        "_created_at": row.created_at.isoformat(),
        "_updated_at": row.updated_at.isoformat(),
    }


def encode_cursor(offset: int) -> str:
    raw = json.dumps({"offset": offset}).encode()
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_cursor(cursor: str) -> int:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        offset = json.loads(base64.urlsafe_b64decode(padded.encode()))["offset"]
    except (binascii.Error, ValueError, KeyError, TypeError):
        raise InvalidPayload("Invalid cursor")
    if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
        raise InvalidPayload("Invalid cursor")
    return offset


def _is_timestamp(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _is_uuid(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


TYPE_CHECKS = {
    "text": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "float": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "timestamp": _is_timestamp,
    "uuid": _is_uuid,
    "jsonb": lambda v: True,
}


def check_columns(
    document: Dict[str, Any], columns: List[ColumnDefinition], partial: bool
) -> None:
    """Validate a payload against declared columns, raising ``InvalidPayload``.

    Unknown data types accept any value. On insert, a non-nullable column
    without a default must be present.
    """
    declared = {column.name: column for column in columns}

    unknown = [key for key in document if key not in declared]
    if unknown:
        raise InvalidPayload(f"Unknown column(s): {', '.join(sorted(unknown))}")

    for name, value in document.items():
        column = declared[name]
        if value is None:
            if not column.is_nullable:
                raise InvalidPayload(f'Column "{name}" is not nullable')
            continue
        check = TYPE_CHECKS.get(column.data_type)
        if check is not None and not check(value):
            raise InvalidPayload(
                f'Column "{name}" expects {column.data_type}, got {type(value).__name__}'
            )

    if not partial:
        for column in columns:
            if (
                column.name not in document
                and not column.is_nullable
                and column.default_value is None
            ):
                raise InvalidPayload(f'Column "{column.name}" is required')


class RowStore:
    """Executes row actions against one resolved table."""

    def __init__(
        self,
        store: StorageBackend,
        limit: int = 100,
        enforce_column_types: bool = False,
    ):
        self.store = store
        self.limit = limit
        self.enforce_column_types = enforce_column_types

    def select(
        self,
        table_id: str,
        filters: Optional[Dict[str, Any]] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Return flattened rows and the cursor of the next page, if any."""
        criteria = {
            key: "null" if value is None else as_filter_text(value)
            for key, value in (filters or {}).items()
        }
        offset = decode_cursor(cursor) if cursor else 0

        # one extra row tells whether another page exists
        rows = self.store.select_rows(table_id, criteria, self.limit + 1, offset)
        next_cursor = None
        if len(rows) > self.limit:
            rows = rows[: self.limit]
            next_cursor = encode_cursor(offset + self.limit)
        return [flatten_row(row) for row in rows], next_cursor

    def insert(self, table_id: str, document: Any) -> Dict[str, Any]:
        self._validate(table_id, document, partial=False, action="insert")
        return flatten_row(self.store.insert_row(table_id, document))

    def update(self, table_id: str, row_id: str, partial: Any) -> Dict[str, Any]:
        self._validate(table_id, partial, partial=True, action="update")
        existing = self.store.get_row(table_id, row_id)
        if existing is None:
            raise RowNotFound()
        merged = shallow_merge(existing.data, partial)
        updated = self.store.replace_row_data(table_id, row_id, merged)
        if updated is None:
            # deleted between read and write
            raise RowNotFound()
        return flatten_row(updated)

    def delete(self, table_id: str, row_id: str) -> Dict[str, bool]:
        if not self.store.delete_row(table_id, row_id):
            raise RowNotFound()
        return {"deleted": True}

    def _validate(self, table_id: str, document: Any, partial: bool, action: str):
        if not isinstance(document, dict):
            raise InvalidPayload(f"Missing 'data' object for {action}")
        reserved = [key for key in RESERVED_KEYS if key in document]
        if reserved:
            raise InvalidPayload(f"Reserved field(s) in data: {', '.join(reserved)}")
        if self.enforce_column_types:
            columns = self.store.list_columns(table_id)
            if columns:
                check_columns(document, columns, partial)
