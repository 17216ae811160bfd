"""
Shared fixtures: an in-memory SQLite store per test and a TestClient
whose session dependency is bound to it.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from backoffice_db.connection import create_test_provider, get_db, set_db_provider
from backoffice_db.monitoring import reset_metrics
from backoffice_db.repositories import (
    ClientRepository,
    ContactRepository,
    InstitutionRepository,
    AccountRepository,
)


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads via StaticPool."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db_provider(engine):
    """Initialized provider with the full schema."""
    provider = create_test_provider(engine=engine)
    provider.init()
    provider.create_tables()
    yield provider
    provider.close()


@pytest.fixture
def session(db_provider):
    """A session for repository tests; rolled back after the test."""
    session = db_provider.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def client(db_provider, upload_dir):
    """TestClient bound to the in-memory store and a temporary upload directory."""
    from fastapi.testclient import TestClient
    from backoffice_api import server
    from backoffice_api.dependencies import UploadSettings, get_upload_settings

    set_db_provider(db_provider)
    reset_metrics()
    server.app.dependency_overrides[get_db] = db_provider.get_session
    server.app.dependency_overrides[get_upload_settings] = lambda: UploadSettings(
        directory=upload_dir, max_size_mb=1
    )
    try:
        yield TestClient(server.app, raise_server_exceptions=False)
    finally:
        server.app.dependency_overrides.clear()
        set_db_provider(None)


# ============================================
# DATA HELPERS
# ============================================

@pytest.fixture
def make_client(session):
    """Create a client (with optional contacts) and return its id."""
    def _make(first_name="Asha", last_name="Verma", contacts=None, **fields):
        client = ClientRepository(session).create({
            "first_name": first_name,
            "last_name": last_name,
            **fields,
        })
        if contacts:
            ContactRepository(session).create_multiple(client.id, contacts)
        session.flush()
        return client.id
    return _make


@pytest.fixture
def institution_id(session):
    institution = InstitutionRepository(session).create({
        "institution_type": "bank",
        "institution_name": "State Bank of India",
        "branch_code": "00123",
        "ifsc_code": "SBIN0000123",
    })
    return institution.id


@pytest.fixture
def make_account(session, institution_id):
    def _make(account_number="SB-0001", **fields):
        account = AccountRepository(session).create({
            "account_number": account_number,
            "account_type": "savings",
            "institution_id": institution_id,
            **fields,
        })
        return account.id
    return _make
