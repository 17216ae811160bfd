"""
Store handle for the back office: one SQLite engine per process.

Sessions flow outward from here: the provider owns the engine, request
handlers receive a session through the `get_db` dependency, and
repositories receive that session in their constructor. Nothing below
the provider keeps a module-level session.

SQLite specifics handled on every new connection:
- `PRAGMA foreign_keys=ON` so CASCADE / SET NULL / RESTRICT rules fire
- `PRAGMA journal_mode=WAL` so readers do not block the writer
- pysqlite's implicit transaction handling is switched off and an explicit
  BEGIN is emitted instead, which is what makes SAVEPOINT (`begin_nested`)
  behave
"""

import os
import logging
from pathlib import Path
from typing import Generator, Optional
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, event, text, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from backoffice_db.models import Base
from backoffice_db.migrations import init_schema

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = os.path.join("data", "admin_ui.db")


# ============================================
# SETTINGS
# ============================================

def _env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


@dataclass
class DatabaseSettings:
    """Where the store lives. An explicit `url` wins over `path`."""
    path: str = DEFAULT_DB_PATH
    url: Optional[str] = None
    echo: bool = False

    @classmethod
    def from_env(cls) -> 'DatabaseSettings':
        """DB_PATH, DATABASE_URL and DB_ECHO, falling back to the defaults."""
        return cls(
            path=os.getenv("DB_PATH", DEFAULT_DB_PATH),
            url=os.getenv("DATABASE_URL") or None,
            echo=_env_flag("DB_ECHO", False),
        )

    @classmethod
    def from_config(cls, config) -> 'DatabaseSettings':
        """
        Build settings from a loaded ConfigManager.

        The same environment variables as `from_env` still override the
        `database` section of config.yaml.
        """
        section = config.database
        return cls(
            path=os.getenv("DB_PATH", section.path),
            url=os.getenv("DATABASE_URL") or section.url,
            echo=_env_flag("DB_ECHO", section.echo),
        )

    def get_url(self) -> str:
        return self.url or f"sqlite:///{self.path}"

    @property
    def is_file_store(self) -> bool:
        """True when the store is a SQLite file given by `path`."""
        return not self.url and self.path != ":memory:"


# ============================================
# UNIT OF WORK
# ============================================

class UnitOfWork:
    """
    A session whose commit is the caller's decision.

    Used for maintenance jobs that run outside a request, e.g. audit-log
    pruning:

        with provider.get_unit_of_work() as uow:
            removed = AuditLogRepository(uow.session).delete_older_than(90)
            uow.commit()

    Leaving the block through an exception rolls back; leaving it without
    calling commit() discards the work when the session closes.
    """

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory
        self._session: Optional[Session] = None

    def __enter__(self) -> 'UnitOfWork':
        self._session = self._factory()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.rollback()
        self.close()

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not active; enter it with a `with` block first")
        return self._session

    def commit(self) -> None:
        if self._session is not None:
            self._session.commit()

    def rollback(self) -> None:
        if self._session is not None:
            self._session.rollback()

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None


# ============================================
# SESSION PROVIDER
# ============================================

class DatabaseSessionProvider:
    """
    Owns the engine and the session factory.

    A provider is created once at startup (`init_db`) or per test
    (`create_test_provider` with an in-memory StaticPool engine) and
    closed at shutdown. Its `get_session` generator is the FastAPI
    dependency behind `get_db`:

        @router.get("/clients")
        def list_clients(db: Session = Depends(get_db)):
            return ClientRepository(db).get_all()
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        engine: Optional[Engine] = None
    ):
        """
        Args:
            settings: Store location; read from the environment when omitted
            engine: Ready-made engine, used as-is (tests pass one in)
        """
        self._settings = settings or DatabaseSettings.from_env()
        self._engine = engine
        self._session_factory: Optional[sessionmaker] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def init(self, echo: Optional[bool] = None) -> None:
        """
        Build the engine (unless one was supplied), install the SQLite
        connection hooks and create the session factory. Safe to call twice.

        Args:
            echo: Log every SQL statement; overrides the settings value
        """
        if self._initialized:
            return

        if echo is not None:
            self._settings.echo = echo
        if self._engine is None:
            self._engine = self._build_engine()

        self._install_sqlite_hooks(self._engine)
        self._session_factory = sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False
        )
        self._initialized = True
        logger.info("Store ready: %s", self._engine.url)

    def _build_engine(self) -> Engine:
        url = self._settings.get_url()
        if self._settings.is_file_store:
            Path(self._settings.path).parent.mkdir(parents=True, exist_ok=True)

        connect_args = {}
        if url.startswith("sqlite"):
            # sync routes run in the threadpool, async ones on the loop thread
            connect_args["check_same_thread"] = False

        return create_engine(url, echo=self._settings.echo, connect_args=connect_args)

    @staticmethod
    def _install_sqlite_hooks(engine: Engine) -> None:
        if engine.dialect.name != "sqlite":
            return

        @event.listens_for(engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()
            logger.debug("Opened SQLite connection with foreign keys and WAL")

        @event.listens_for(engine, "begin")
        def on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def _require_init(self) -> None:
        if not self._initialized:
            self.init()

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Store not initialized; call init() first")
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            raise RuntimeError("Store not initialized; call init() first")
        return self._session_factory

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        One transaction: commit when the block finishes, roll back if it raises.

        Usage:
            with provider.session_scope() as session:
                ClientRepository(session).restore(client_id)
        """
        self._require_init()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get_session(self) -> Generator[Session, None, None]:
        """Request-scoped session for FastAPI; same commit/rollback rule as session_scope."""
        with self.session_scope() as session:
            yield session

    def get_unit_of_work(self) -> UnitOfWork:
        self._require_init()
        return UnitOfWork(self._session_factory)

    def create_tables(self) -> list:
        """
        Create missing tables and indexes, then add any columns an older
        store file lacks.

        Returns:
            "table.column" names added by the migration step
        """
        self._require_init()
        added = init_schema(self._engine)
        if added:
            logger.info("Schema migrated, added columns: %s", ", ".join(added))
        else:
            logger.info("Schema up to date")
        return added

    def drop_tables(self) -> None:
        """Drop every table. Only tests and resets should call this."""
        self._require_init()
        Base.metadata.drop_all(self._engine)
        logger.warning("All back-office tables dropped")

    def health_check(self) -> bool:
        """True when a trivial query round-trips."""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Store health check failed: %s", e)
            return False
        return True

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Store connections closed")
        self._initialized = False


# ============================================
# PROCESS-WIDE PROVIDER
# ============================================

_db_provider: Optional[DatabaseSessionProvider] = None


def get_db_provider() -> DatabaseSessionProvider:
    """The provider `get_db` uses; an uninitialized one is created on first access."""
    global _db_provider
    if _db_provider is None:
        _db_provider = DatabaseSessionProvider()
    return _db_provider


def set_db_provider(provider: Optional[DatabaseSessionProvider]) -> None:
    """Install (or clear, with None) the process-wide provider."""
    global _db_provider
    _db_provider = provider


def init_db(
    settings: Optional[DatabaseSettings] = None,
    echo: Optional[bool] = None
) -> DatabaseSessionProvider:
    """
    Open the store at startup and bring its schema up to date.

    An already-installed provider is reused; `settings` only applies when
    none is installed yet.

    Returns:
        The initialized process-wide provider
    """
    if settings is not None and _db_provider is None:
        set_db_provider(DatabaseSessionProvider(settings=settings))
    provider = get_db_provider()
    provider.init(echo=echo)
    provider.create_tables()
    return provider


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency: a session from the process-wide provider."""
    yield from get_db_provider().get_session()


def close_db() -> None:
    """Dispose of the process-wide provider at shutdown."""
    global _db_provider
    if _db_provider is not None:
        _db_provider.close()
        _db_provider = None


# ============================================
# TEST SUPPORT
# ============================================

def create_test_provider(
    engine: Optional[Engine] = None,
    settings: Optional[DatabaseSettings] = None
) -> DatabaseSessionProvider:
    """
    Provider for tests. Pass an in-memory engine built with StaticPool so
    every session shares the one connection that holds the data.
    """
    return DatabaseSessionProvider(
        settings=settings or DatabaseSettings(path=":memory:"),
        engine=engine
    )
