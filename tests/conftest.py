"""Pytest configuration and fixtures."""

import os
import tempfile
import uuid
from datetime import date
from pathlib import Path

import pytest
from unittest.mock import patch

# Configure the environment before any assistant_hub module reads it
_TEST_DB = Path(tempfile.gettempdir()) / f"assistant_hub_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite:///{_TEST_DB}")
os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["NAME_MATCH_POLICY"] = "reject"

from assistant_hub.infra.database import engine  # noqa: E402
from assistant_hub.infra.schema import metadata  # noqa: E402


@pytest.fixture(autouse=True)
def offline_tokenizer():
    """Keep history trimming off the network; tests that need it patch their own encoding."""
    with patch("assistant_hub.services.prompt_builder._get_encoding", return_value=None):
        yield


@pytest.fixture
def db():
    """Fresh tables for every test."""
    metadata.drop_all(engine)
    metadata.create_all(engine)
    yield engine
    metadata.drop_all(engine)


class Seeder:
    """Insert rows through SQLAlchemy Core; returns the row id."""

    def __init__(self, bind):
        self.bind = bind

    def add(self, table: str, **values) -> str:
        values.setdefault("id", str(uuid.uuid4()))
        with self.bind.begin() as connection:
            connection.execute(metadata.tables[table].insert().values(**values))
        return values["id"]

    def setting(self, tenant_id: str, key: str, value: str) -> str:
        return self.add("tenant_settings", tenant_id=tenant_id, key=key, value=value)

    def rows(self, table: str, **where):
        query = metadata.tables[table].select()
        for column, value in where.items():
            query = query.where(metadata.tables[table].c[column] == value)
        with self.bind.connect() as connection:
            return connection.execute(query).fetchall()


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def tenants(seed):
    """A small hierarchy: operator > admin > two resellers."""
    operator = seed.add("tenants", name="Platform", tenant_type="operator")
    admin = seed.add("tenants", name="Org One", tenant_type="admin", parent_tenant_id=operator)
    reseller = seed.add("tenants", name="Loja Azul", tenant_type="reseller", parent_tenant_id=admin)
    other_reseller = seed.add("tenants", name="Loja Verde", tenant_type="reseller", parent_tenant_id=admin)
    return {
        "operator": operator,
        "admin": admin,
        "reseller": reseller,
        "other_reseller": other_reseller,
    }


@pytest.fixture
def today():
    return date.today()


