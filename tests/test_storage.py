"""
Backend contract checks shared by the SQL and JSON document stores
"""
import json
import os

import pytest

from db_gateway.errors import Conflict, StorageFailure
from db_gateway.schemas import APIKeyRecord, ColumnDefinition, QueryLogRecord
from db_gateway.storage import JsonFileStore
from db_gateway.storage.base import new_id
from db_gateway.utils.rows import RowStore

from conftest import make_tenant


def test_find_table_is_case_sensitive_and_scoped(store):
    first = make_tenant(store, db_name="D1")
    second = make_tenant(store, user_id="user-2", db_name="D2")

    assert store.find_table(first.database.id, "users").id == first.table.id
    assert store.find_table(second.database.id, "users").id == second.table.id
    assert store.find_table(first.database.id, "USERS") is None


def test_duplicate_table_name_conflicts(store):
    tenant = make_tenant(store)
    with pytest.raises(Conflict):
        store.create_table(tenant.database.id, "users", [])


def test_columns_keep_position_order(store):
    tenant = make_tenant(
        store,
        table="people",
        columns=[
            ColumnDefinition(name="z", data_type="text"),
            ColumnDefinition(name="a", data_type="integer", is_nullable=False),
        ],
    )
    columns = store.list_columns(tenant.table.id)
    assert [(c.name, c.position) for c in columns] == [("z", 0), ("a", 1)]
    assert columns[1].is_nullable is False


def test_duplicate_key_value_conflicts(store):
    tenant = make_tenant(store)
    with pytest.raises(Conflict):
        store.create_key(
            APIKeyRecord(
                id=new_id(),
                user_id=tenant.user_id,
                database_id=tenant.database.id,
                key_value=tenant.key,
            )
        )


def test_row_scoped_to_table(store):
    tenant = make_tenant(store)
    other = store.create_table(tenant.database.id, "other", [])
    row = store.insert_row(tenant.table.id, {"a": 1})

    assert store.get_row(other.id, row.id) is None
    assert store.replace_row_data(other.id, row.id, {"a": 2}) is None
    assert store.delete_row(other.id, row.id) is False
    assert store.get_row(tenant.table.id, row.id).data == {"a": 1}


def test_replace_bumps_updated_at_only(store):
    tenant = make_tenant(store)
    row = store.insert_row(tenant.table.id, {"a": 1})

    updated = store.replace_row_data(tenant.table.id, row.id, {"b": 2})

    assert updated.data == {"b": 2}
    assert updated.created_at == row.created_at
    assert updated.updated_at >= row.updated_at


def test_query_log_filters(store):
    tenant = make_tenant(store)
    for method in ("select", "insert"):
        store.append_query_log(
            QueryLogRecord(
                id=new_id(),
                database_id=tenant.database.id,
                user_id=tenant.user_id,
                method=method,
                endpoint="/users",
                status_code=200,
            )
        )

    assert len(store.list_query_logs(database_id=tenant.database.id)) == 2
    assert [log.method for log in store.list_query_logs(method="insert")] == ["insert"]
    assert store.list_query_logs(database_id="elsewhere") == []
    assert store.list_query_logs(limit=1)[0].method == "insert"
    assert store.clear_query_logs() == 2


def test_json_store_survives_reload(tmp_path):
    path = tmp_path / "mainwebdb.json"
    store = JsonFileStore(path)
    tenant = make_tenant(store)
    row = store.insert_row(tenant.table.id, {"name": "Ada"})

    reopened = JsonFileStore(path)

    assert reopened.get_key_by_value(tenant.key).id == tenant.key_id
    assert reopened.get_row(tenant.table.id, row.id).data == {"name": "Ada"}
    document = json.loads(path.read_text())
    assert set(document) == {
        "databases",
        "database_tables",
        "table_columns",
        "table_rows",
        "api_keys",
        "query_logs",
    }
    # no temp files left behind
    assert [p.name for p in tmp_path.iterdir()] == ["mainwebdb.json"]


def test_json_store_regenerated_secret_index(tmp_path):
    store = JsonFileStore(tmp_path / "db.json")
    tenant = make_tenant(store)

    store.update_key(tenant.key_id, key_value="gfx_new")

    assert store.get_key_by_value(tenant.key) is None
    assert store.get_key_by_value("gfx_new").id == tenant.key_id
    assert JsonFileStore(tmp_path / "db.json").get_key_by_value("gfx_new") is not None


def test_json_store_rejects_corrupt_file(tmp_path):
    path = tmp_path / "mainwebdb.json"
    path.write_text("{not json")

    with pytest.raises(StorageFailure):
        JsonFileStore(path)


def test_json_store_failed_write_leaves_memory_unchanged(tmp_path, monkeypatch):
    path = tmp_path / "mainwebdb.json"
    store = JsonFileStore(path)
    tenant = make_tenant(store)
    rows = RowStore(store)
    kept = rows.insert(tenant.table.id, {"name": "Ada"})

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(StorageFailure):
        rows.insert(tenant.table.id, {"name": "ghost"})
    with pytest.raises(StorageFailure):
        rows.update(tenant.table.id, kept["id"], {"name": "Ada L."})
    with pytest.raises(StorageFailure):
        rows.delete(tenant.table.id, kept["id"])
    with pytest.raises(StorageFailure):
        store.update_key(tenant.key_id, key_value="gfx_lost")
    with pytest.raises(StorageFailure):
        store.create_table(tenant.database.id, "orders", [])
    monkeypatch.undo()

    docs, _ = rows.select(tenant.table.id)
    assert [d["name"] for d in docs] == ["Ada"]
    assert store.get_key_by_value(tenant.key).id == tenant.key_id
    assert store.get_key_by_value("gfx_lost") is None
    assert store.find_table(tenant.database.id, "orders") is None
    # no temp files left behind, and the next write succeeds
    assert [p.name for p in tmp_path.iterdir()] == ["mainwebdb.json"]
    rows.insert(tenant.table.id, {"name": "Grace"})
    reopened = RowStore(JsonFileStore(path))
    assert [d["name"] for d in reopened.select(tenant.table.id)[0]] == ["Ada", "Grace"]
