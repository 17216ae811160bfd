"""
Tests for the schema bootstrap, additive migrations and model helpers.
"""

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from backoffice_db.migrations import init_schema, run_additive_migrations
from backoffice_db.models import (
    Base,
    Client,
    DeletionStatus,
    ClientStatus,
    AuditOperation,
    row_to_dict,
)


@pytest.fixture
def raw_engine():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    yield engine
    engine.dispose()


LEGACY_CLIENTS_DDL = """
CREATE TABLE clients (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name VARCHAR(100) NOT NULL,
    last_name VARCHAR(100) NOT NULL,
    kyc_number VARCHAR(50),
    pan_number VARCHAR(10),
    aadhaar_number VARCHAR(14),
    address_id INTEGER,
    linked_client_id INTEGER,
    status VARCHAR(32) NOT NULL DEFAULT 'active',
    deletion_status VARCHAR(32) NOT NULL DEFAULT 'active',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP NOT NULL
)
"""


class TestSchemaBootstrap:
    """Tests for init_schema and the additive column migration."""

    def test_creates_every_table(self, raw_engine):
        init_schema(raw_engine)
        tables = set(inspect(raw_engine).get_table_names())
        assert set(Base.metadata.tables) <= tables

    def test_fresh_schema_needs_no_migration(self, raw_engine):
        assert init_schema(raw_engine) == []

    def test_init_schema_is_idempotent(self, raw_engine):
        init_schema(raw_engine)
        with raw_engine.begin() as conn:
            conn.execute(text("INSERT INTO addresses (address_line1, country) VALUES ('1 MG Road', 'India')"))

        assert init_schema(raw_engine) == []
        with raw_engine.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM addresses")).scalar_one() == 1

    def test_legacy_table_gets_missing_columns(self, raw_engine):
        with raw_engine.begin() as conn:
            conn.execute(text(LEGACY_CLIENTS_DDL))
            conn.execute(text("INSERT INTO clients (first_name, last_name) VALUES ('Ravi', 'Kumar')"))

        added = init_schema(raw_engine)

        assert added == [
            "clients.title",
            "clients.middle_name",
            "clients.date_of_birth",
            "clients.gender",
            "clients.occupation",
            "clients.linked_client_relationship",
        ]
        columns = {c["name"] for c in inspect(raw_engine).get_columns("clients")}
        assert {"title", "middle_name", "linked_client_relationship"} <= columns

        # existing rows survive
        with raw_engine.connect() as conn:
            assert conn.execute(text("SELECT first_name FROM clients")).scalar_one() == "Ravi"

    def test_second_migration_run_reports_nothing(self, raw_engine):
        with raw_engine.begin() as conn:
            conn.execute(text(LEGACY_CLIENTS_DDL))
        init_schema(raw_engine)
        assert run_additive_migrations(raw_engine) == []


class TestEngineSetup:
    """Connection pragmas installed by the provider."""

    def test_foreign_keys_enabled(self, db_provider):
        with db_provider.engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_health_check(self, db_provider):
        assert db_provider.health_check() is True


class TestModels:
    """Tests for model defaults and constraints."""

    def test_client_defaults(self, session):
        client = Client(first_name="Meena", last_name="Iyer")
        session.add(client)
        session.flush()
        assert client.status == ClientStatus.ACTIVE
        assert client.deletion_status == DeletionStatus.ACTIVE
        assert client.is_deleted is False
        assert client.full_name == "Meena Iyer"

    def test_enum_rejects_unknown_value(self, session):
        with pytest.raises((LookupError, IntegrityError)):
            session.execute(
                text("INSERT INTO clients (first_name, last_name, status, deletion_status) "
                     "VALUES ('A', 'B', 'archived', 'active')")
            )
            session.flush()

    def test_row_to_dict_reduces_enums(self, session):
        client = Client(first_name="Meena", last_name="Iyer")
        session.add(client)
        session.flush()
        snapshot = row_to_dict(client)
        assert snapshot["status"] == "active"
        assert snapshot["deletion_status"] == "active"
        assert snapshot["first_name"] == "Meena"

    def test_row_to_dict_none(self):
        assert row_to_dict(None) == {}

    def test_audit_operation_values(self):
        assert [op.value for op in AuditOperation] == ["INSERT", "UPDATE", "DELETE", "RESTORE"]
