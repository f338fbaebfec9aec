# tests/conftest.py
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db_gateway.database import create_tables
from db_gateway.main import app
from db_gateway.schemas import ColumnDefinition, DatabaseRecord
from db_gateway.storage import JsonFileStore, SQLStore, get_store
from db_gateway.storage.base import new_id
from db_gateway.utils.auth import APIKeyManager

GATEWAY_URL = "/v1/db-api"


@pytest.fixture(params=["sql", "json"])
def store(request, tmp_path):
    """Each test runs once against SQLite via SQLAlchemy and once against a JSON file."""
    if request.param == "sql":
        engine = create_engine(
            f"sqlite:///{tmp_path / 'gateway.db'}",
            connect_args={"check_same_thread": False},
        )
        create_tables(bind=engine)
        yield SQLStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
        engine.dispose()
    else:
        yield JsonFileStore(tmp_path / "mainwebdb.json")


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_tenant(store, user_id="user-1", db_name="D1", table="users", columns=None):
    """Create a database with one table and one active key."""
    database = store.create_database(
        DatabaseRecord(id=new_id(), user_id=user_id, name=db_name)
    )
    table_record = store.create_table(database.id, table, columns or [])
    key = APIKeyManager(store).create_api_key(database.id, user_id, "K1")
    return SimpleNamespace(
        database=database,
        table=table_record,
        key=key.key_value,
        key_id=key.id,
        user_id=user_id,
    )


@pytest.fixture
def tenant(store):
    return make_tenant(
        store,
        columns=[
            ColumnDefinition(name="name", data_type="text"),
            ColumnDefinition(name="email", data_type="text"),
        ],
    )


@pytest.fixture
def gateway(client, tenant):
    """POST an envelope with the tenant's key unless one is given."""

    def call(**body):
        body.setdefault("api_key", tenant.key)
        body.setdefault("table", "users")
        return client.post(GATEWAY_URL, json=body)

    return call
