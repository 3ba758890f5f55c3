#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
SQLite database access for the Story Timeline application.

This module opens connections, creates the schema from the declarative
models and provides the scoped transaction helper used by every write path.
"""

import os
import logging
import sqlite3
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from sqlalchemy.dialects import sqlite
from sqlalchemy.schema import CreateIndex, CreateTable, Table

from story_timeline.models import Base, ITEM_TYPES

# Set up logging
logger = logging.getLogger(__name__)

_DIALECT = sqlite.dialect()


class TimelineConnection(sqlite3.Connection):
    """SQLite connection that can tie work to the outcome of the open transaction."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._after_commit: List[Callable[[], None]] = []
        self._on_rollback: List[Callable[[], None]] = []

    def call_after_commit(self, callback: Callable[[], None]) -> None:
        """Run a callback once the current transaction commits.

        Outside a transaction the callback runs immediately. Callbacks queued
        inside a transaction that rolls back are dropped.
        """
        if self.in_transaction:
            self._after_commit.append(callback)
        else:
            callback()

    def call_on_rollback(self, callback: Callable[[], None]) -> None:
        """Run a callback if the current transaction rolls back.

        Used to undo side effects outside the database, such as files written
        for rows that are never committed. Outside a transaction there is
        nothing to roll back and the callback is dropped.
        """
        if self.in_transaction:
            self._on_rollback.append(callback)

    def _committed(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        self._on_rollback = []
        for callback in callbacks:
            callback()

    def _rolled_back(self) -> None:
        callbacks, self._on_rollback = self._on_rollback, []
        self._after_commit = []
        for callback in reversed(callbacks):
            callback()


# Database functions
def create_connection(db_path: str) -> TimelineConnection:
    """Create a database connection to the SQLite database specified by db_path.

    The connection runs in autocommit mode; writes are grouped with
    transaction(). Foreign key enforcement is switched on.
    """
    try:
        conn = sqlite3.connect(db_path, factory=TimelineConnection, isolation_level=None)
    except sqlite3.Error as e:
        logger.error(f"Error connecting to database {db_path}: {e}")
        raise
    conn.row_factory = sqlite3.Row  # Return rows as mappings
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block of statements as one transaction.

    Commits when the block exits normally and rolls back, re-raising the
    original error, when it raises. If a transaction is already open the block
    joins it and the outermost caller decides the outcome.

    Args:
        conn: Database connection opened with create_connection()

    Yields:
        The same connection
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute('BEGIN')
    try:
        yield conn
    except BaseException:
        conn.rollback()
        if isinstance(conn, TimelineConnection):
            conn._rolled_back()
        raise
    conn.commit()
    if isinstance(conn, TimelineConnection):
        conn._committed()


def table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    """Check whether a table exists."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT name FROM sqlite_master
    WHERE type='table' AND name=?
    ''', (table_name,))
    return cursor.fetchone() is not None


def get_table_columns(conn: sqlite3.Connection, table_name: str) -> List[str]:
    """Get the column names of a table, or an empty list if it does not exist."""
    cursor = conn.cursor()
    cursor.execute(f'PRAGMA table_info("{table_name}")')
    return [row['name'] for row in cursor.fetchall()]


def get_table_sql(conn: sqlite3.Connection, table_name: str) -> Optional[str]:
    """Get the CREATE statement stored for a table."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT sql FROM sqlite_master
    WHERE type='table' AND name=?
    ''', (table_name,))
    row = cursor.fetchone()
    return row['sql'] if row else None


def compile_create_table(table: Table, if_not_exists: bool = False) -> str:
    """Compile the CREATE TABLE statement of a model table for SQLite."""
    return str(CreateTable(table, if_not_exists=if_not_exists).compile(dialect=_DIALECT)).strip()


def shadow_table_ddl(table: Table, shadow_name: str) -> str:
    """Compile the current shape of a table under another name.

    Used by migrations that rebuild a table: create the shadow, copy rows,
    drop the original and rename the shadow into place.
    """
    ddl = compile_create_table(table)
    return ddl.replace(f'CREATE TABLE {table.name} (', f'CREATE TABLE {shadow_name} (', 1)


def create_tables(conn: sqlite3.Connection) -> None:
    """Create the database tables if they don't exist."""
    with transaction(conn):
        cursor = conn.cursor()
        for table in Base.metadata.sorted_tables:
            cursor.execute(compile_create_table(table, if_not_exists=True))


def seed_item_types(conn: sqlite3.Connection) -> None:
    """Insert the fixed item types, leaving existing rows untouched."""
    with transaction(conn):
        cursor = conn.cursor()
        for type_id, name, description in ITEM_TYPES:
            cursor.execute('''
            INSERT OR IGNORE INTO item_types (id, name, description)
            VALUES (?, ?, ?)
            ''', (type_id, name, description))


def create_indexes(conn: sqlite3.Connection) -> None:
    """Create the lookup indexes declared on the models.

    Must run after migrations so legacy tables already carry every indexed
    column. An index whose columns are still missing is skipped with a warning.
    """
    with transaction(conn):
        cursor = conn.cursor()
        for table in Base.metadata.sorted_tables:
            existing = set(get_table_columns(conn, table.name))
            for index in sorted(table.indexes, key=lambda i: i.name):
                missing = [c.name for c in index.columns if c.name not in existing]
                if missing:
                    logger.warning(f"Skipping index {index.name}: missing columns {missing}")
                    continue
                ddl = CreateIndex(index, if_not_exists=True).compile(dialect=_DIALECT)
                cursor.execute(str(ddl))


def initialize_database(db_path: str, media_root: Optional[str] = None,
                        create_default_timeline: bool = False) -> TimelineConnection:
    """Initialize the database, creating and upgrading the schema.

    Args:
        db_path: Path to the database file
        media_root: Directory holding picture files, used by migrations that
            move or remove files
        create_default_timeline: Create a default timeline when none exists

    Returns:
        Open database connection

    Raises:
        MigrationError: If a migration fails; the connection is closed
    """
    from story_timeline.migration_manager import run_migrations
    from story_timeline.timelines import ensure_default_timeline

    # Create directory if it doesn't exist
    dirname = os.path.dirname(db_path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)

    conn = create_connection(db_path)
    try:
        create_tables(conn)
        run_migrations(conn, media_root)
        seed_item_types(conn)
        create_indexes(conn)
        if create_default_timeline:
            ensure_default_timeline(conn)
    except Exception:
        conn.close()
        raise

    logger.info(f"Database ready at {db_path}")
    return conn
