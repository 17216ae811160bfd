"""
Schema bootstrap and additive migrations.

`init_schema` is safe to run on every startup: `create_all` only creates
missing tables and indexes, and the additive step only adds columns that a
store created by an older release does not have yet.
"""

import logging
from typing import List, Tuple

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Column, Date, Engine, Float, Numeric, String
from sqlalchemy.exc import OperationalError

from backoffice_db.models import Base

logger = logging.getLogger(__name__)


def _additive_columns() -> List[Tuple[str, Column]]:
    """Columns introduced after the first schema, in the order they are applied."""
    return [
        ("clients", Column("title", String(20), nullable=True)),
        ("clients", Column("middle_name", String(100), nullable=True)),
        ("clients", Column("date_of_birth", Date, nullable=True)),
        ("clients", Column("gender", String(20), nullable=True)),
        ("clients", Column("occupation", String(100), nullable=True)),
        ("clients", Column("linked_client_relationship", String(32), nullable=True)),
        ("shops", Column("license_number", String(100), nullable=True)),
        ("accounts", Column("interest_rate", Float, nullable=True)),
        ("accounts", Column("balance", Numeric(15, 2), nullable=True, server_default="0")),
        ("account_holders", Column("share_percentage", Numeric(5, 2), nullable=True)),
        ("shop_clients", Column("relationship_type", String(32), nullable=True,
                               server_default="customer")),
    ]


def _is_duplicate_column(error: OperationalError) -> bool:
    return "duplicate column" in str(error.orig).lower()


def run_additive_migrations(engine: Engine) -> List[str]:
    """
    Add post-release columns to existing tables.

    Each column is added in its own transaction. A "duplicate column" error
    means the column is already there and is skipped; any other error
    propagates.

    Args:
        engine: Engine bound to the store

    Returns:
        "table.column" names of the columns actually added
    """
    added = []
    for table_name, column in _additive_columns():
        try:
            with engine.begin() as conn:
                op = Operations(MigrationContext.configure(conn))
                op.add_column(table_name, column)
        except OperationalError as e:
            if not _is_duplicate_column(e):
                raise
            logger.debug("Column %s.%s already present", table_name, column.name)
            continue
        added.append(f"{table_name}.{column.name}")
        logger.info("Added column %s.%s", table_name, column.name)
    return added


def init_schema(engine: Engine) -> List[str]:
    """
    Create every table and index that does not exist yet, then run the
    additive migrations.

    Returns:
        Columns added by the migration step
    """
    Base.metadata.create_all(engine)
    return run_additive_migrations(engine)
