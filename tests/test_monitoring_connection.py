"""
Tests for query monitoring and the session provider.

Covers:
- QueryStatsCollector bookkeeping and the slow query report
- query_timer / timed_query error accounting
- check_health against working and broken session factories
- DatabaseSettings URL resolution and UnitOfWork commit/rollback
"""

import pytest
from sqlalchemy import inspect, select

from backoffice_db.connection import DatabaseSettings
from backoffice_db.models import Client
from backoffice_db.monitoring import (
    QueryStatsCollector,
    check_health,
    configure_monitoring,
    get_db_metrics,
    get_slow_query_report,
    query_timer,
    render_prometheus_metrics,
    reset_metrics,
    timed_query,
)


# ============================================
# FIXTURES
# ============================================

@pytest.fixture(autouse=True)
def fresh_metrics():
    reset_metrics()
    yield
    configure_monitoring()
    reset_metrics()


# ============================================
# QUERY STATS TESTS
# ============================================

class TestQueryStatsCollector:
    """Tests for the in-process stats collector."""

    def test_record_and_summarize(self):
        collector = QueryStatsCollector()
        collector.record("clients.get_all", 10.0)
        collector.record("clients.get_all", 30.0, error=True)

        stats = collector.get_stats("clients.get_all")
        assert stats["count"] == 2
        assert stats["avg_time_ms"] == 20.0
        assert stats["min_time_ms"] == 10.0
        assert stats["max_time_ms"] == 30.0
        assert stats["errors"] == 1

    def test_unknown_operation(self):
        assert QueryStatsCollector().get_stats("nothing") == {}

    def test_slow_queries_and_reset(self):
        collector = QueryStatsCollector()
        collector.record("accounts.get_all", 1500.0, slow=True)
        collector.record("shops.get_all", 5.0)

        assert [s["operation"] for s in collector.get_slow_queries()] == ["accounts.get_all"]

        collector.reset()
        assert collector.get_stats()["operations"] == {}


class TestQueryTimer:
    """Tests for query_timer and timed_query."""

    def test_timer_records_success(self):
        with query_timer("test.success"):
            pass
        assert get_db_metrics()["operations"]["test.success"]["count"] == 1

    def test_timer_counts_errors_and_reraises(self):
        with pytest.raises(RuntimeError):
            with query_timer("test.failure"):
                raise RuntimeError("boom")
        assert get_db_metrics()["operations"]["test.failure"]["errors"] == 1

    def test_decorator(self):
        @timed_query("test.decorated")
        def lookup(value):
            return value * 2

        assert lookup(21) == 42
        assert get_db_metrics()["operations"]["test.decorated"]["count"] == 1

    def test_slow_threshold_from_configuration(self):
        configure_monitoring(slow_query_threshold_ms=0.0, warning_threshold_ms=0.0)
        with query_timer("test.slow"):
            pass
        assert [s["operation"] for s in get_slow_query_report()] == ["test.slow"]

    def test_prometheus_exposition(self):
        with query_timer("test.exported"):
            pass
        payload, content_type = render_prometheus_metrics()
        assert b'operation="test.exported"' in payload
        assert content_type.startswith("text/plain")


class TestHealthCheck:

    def test_healthy_store(self, db_provider):
        status = check_health(db_provider.engine, db_provider.session_factory)
        body = status.to_dict()
        assert body["healthy"] is True
        assert body["dialect"] == "sqlite"
        assert body["foreign_keys"] is True
        assert body["error"] is None

    def test_broken_session_factory(self, db_provider):
        def broken():
            raise RuntimeError("no connection")

        status = check_health(db_provider.engine, broken)
        assert status.healthy is False
        assert status.error == "no connection"


# ============================================
# PROVIDER TESTS
# ============================================

class TestDatabaseSettings:

    def test_path_becomes_sqlite_url(self):
        assert DatabaseSettings(path="data/admin_ui.db").get_url() == "sqlite:///data/admin_ui.db"

    def test_explicit_url_wins(self):
        settings = DatabaseSettings(path="ignored.db", url="sqlite:////srv/backoffice.db")
        assert settings.get_url() == "sqlite:////srv/backoffice.db"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_PATH", "/tmp/env.db")
        monkeypatch.setenv("DB_ECHO", "TRUE")
        monkeypatch.delenv("DATABASE_URL", raising=False)

        settings = DatabaseSettings.from_env()
        assert settings.path == "/tmp/env.db"
        assert settings.url is None
        assert settings.echo is True


class TestUnitOfWork:
    """Explicit transactions outside the request cycle."""

    def test_commit_persists(self, db_provider):
        with db_provider.get_unit_of_work() as uow:
            uow.session.add(Client(first_name="Farah", last_name="Khan"))
            uow.commit()

        with db_provider.session_scope() as session:
            names = session.scalars(select(Client.first_name)).all()
        assert names == ["Farah"]

    def test_exception_rolls_back(self, db_provider):
        with pytest.raises(ValueError):
            with db_provider.get_unit_of_work() as uow:
                uow.session.add(Client(first_name="Lost", last_name="Row"))
                uow.session.flush()
                raise ValueError("abort")

        with db_provider.session_scope() as session:
            assert session.scalars(select(Client)).all() == []

    def test_session_outside_context(self, db_provider):
        uow = db_provider.get_unit_of_work()
        with pytest.raises(RuntimeError):
            uow.session

    def test_drop_tables(self, db_provider):
        db_provider.drop_tables()
        assert "clients" not in inspect(db_provider.engine).get_table_names()
