"""
Database Package for the Back Office

This package provides:
- SQLAlchemy ORM models for clients, accounts, shops and their attachments
- FastAPI Dependency Injection for database sessions
- Unit of Work pattern for transaction management
- Repository pattern for data access
- Schema bootstrap with additive (alembic) column migrations
- Performance monitoring and query timing
"""

from backoffice_db.models import (
    Base,
    Address,
    Institution,
    Client,
    Contact,
    Shop,
    ShopClient,
    Account,
    AccountHolder,
    Transaction,
    AuditLog,
    Document,
    ProfilePicture,
    DeletionStatus,
)
from backoffice_db.connection import (
    DatabaseSessionProvider,
    DatabaseSettings,
    UnitOfWork,
    # FastAPI dependencies
    get_db,
    get_db_provider,
    set_db_provider,
    # Initialization
    init_db,
    close_db,
    # Testing support
    create_test_provider,
)
from backoffice_db.migrations import init_schema, run_additive_migrations
from backoffice_db.monitoring import (
    query_timer,
    timed_query,
    get_db_metrics,
    get_slow_query_report,
    reset_metrics,
    configure_monitoring,
    check_health,
    HealthStatus,
)

__all__ = [
    # Base
    'Base',
    # Models
    'Address',
    'Institution',
    'Client',
    'Contact',
    'Shop',
    'ShopClient',
    'Account',
    'AccountHolder',
    'Transaction',
    'AuditLog',
    'Document',
    'ProfilePicture',
    'DeletionStatus',
    # Database provider
    'DatabaseSessionProvider',
    'DatabaseSettings',
    'UnitOfWork',
    # FastAPI dependencies
    'get_db',
    'get_db_provider',
    'set_db_provider',
    # Initialization
    'init_db',
    'close_db',
    'init_schema',
    'run_additive_migrations',
    # Testing support
    'create_test_provider',
    # Monitoring
    'query_timer',
    'timed_query',
    'get_db_metrics',
    'get_slow_query_report',
    'reset_metrics',
    'configure_monitoring',
    'check_health',
    'HealthStatus',
]
