#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Migration manager for the Story Timeline application.

This module brings a database of any earlier shape up to the current schema.
Migrations are listed in order; each one checks whether it applies and runs
in its own transaction. Applied migrations are recorded in migration_status.
"""

import logging
import sqlite3
from functools import partial
from typing import Callable, List, Optional

from story_timeline.db_sqlite import transaction
from story_timeline.errors import MigrationError
from story_timeline.media import cleanup_orphaned_images
from story_timeline.migrations import (add_missing_columns, consolidate_settings_css,
                                       migrate_picture_references, migrate_universe_data)
from story_timeline.models import MigrationStatus
from story_timeline.utils.files import remove_files

# Set up logging
logger = logging.getLogger(__name__)


class Migration:
    """A forward-only schema change guarded by a precondition."""

    def __init__(self, version: int, name: str, description: str,
                 needs_migration: Callable[[sqlite3.Connection], bool],
                 migrate: Callable[[sqlite3.Connection, Optional[str]], Optional[List[str]]]) -> None:
        self.version = version
        self.name = name
        self.description = description
        self.needs_migration = needs_migration
        self.migrate = migrate

    def __repr__(self) -> str:
        return f"<Migration(version={self.version}, name='{self.name}')>"


MIGRATIONS = [
    Migration(1, 'add_missing_columns',
              'Add columns introduced after tables were first created',
              add_missing_columns.needs_migration, add_missing_columns.migrate),
    Migration(2, 'universe_data_to_timelines',
              'Turn the single-universe layout into a timeline',
              migrate_universe_data.needs_migration, migrate_universe_data.migrate),
    Migration(3, 'consolidate_settings_css',
              'Merge main and items CSS into one custom_css setting',
              consolidate_settings_css.needs_migration, consolidate_settings_css.migrate),
    Migration(4, 'picture_references',
              'Share pictures between items through item_pictures',
              migrate_picture_references.needs_migration, migrate_picture_references.migrate),
]

SCHEMA_VERSION = max(migration.version for migration in MIGRATIONS)


def get_pending_migrations(conn: sqlite3.Connection) -> List[Migration]:
    """Get the migrations whose precondition holds, in order.

    Args:
        conn: Database connection

    Returns:
        List of migrations that need to be run
    """
    return [migration for migration in MIGRATIONS if migration.needs_migration(conn)]


def get_completed_migrations(conn: sqlite3.Connection) -> List[MigrationStatus]:
    """Get the recorded migration runs, oldest first."""
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM migration_status ORDER BY id')
    return [MigrationStatus.from_row(row) for row in cursor.fetchall()]


def register_migration_complete(conn: sqlite3.Connection, migration_name: str,
                                version: Optional[int] = None) -> None:
    """Record that a migration has been applied.

    A migration whose precondition holds again later (for example after a
    legacy table reappears) runs again; the timestamp is refreshed.
    """
    cursor = conn.cursor()
    cursor.execute('''
    INSERT INTO migration_status (migration_name, version, completed_at)
    VALUES (?, ?, CURRENT_TIMESTAMP)
    ON CONFLICT(migration_name) DO UPDATE SET completed_at = CURRENT_TIMESTAMP
    ''', (migration_name, version))


def get_schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute('PRAGMA user_version').fetchone()[0]


def run_migrations(conn: sqlite3.Connection, media_root: Optional[str] = None) -> List[str]:
    """Run every pending migration.

    Foreign keys are disabled while migrations run because table rebuilds drop
    and rename tables that others reference.

    Args:
        conn: Database connection, not inside a transaction
        media_root: Directory holding picture files

    Returns:
        Names of the migrations that were applied

    Raises:
        MigrationError: If a migration fails; its changes are rolled back
    """
    pending = get_pending_migrations(conn)
    if not pending:
        logger.info("No migrations needed.")
        if get_schema_version(conn) != SCHEMA_VERSION:
            conn.execute(f'PRAGMA user_version = {SCHEMA_VERSION}')
        return []

    logger.info(f"The following migrations are needed: {', '.join(m.name for m in pending)}")

    applied = []
    conn.execute('PRAGMA foreign_keys = OFF')
    try:
        for migration in pending:
            logger.info(f"Running migration {migration.name} (v{migration.version})...")
            try:
                with transaction(conn):
                    obsolete_files = migration.migrate(conn, media_root) or []
                    register_migration_complete(conn, migration.name, migration.version)
                    conn.call_after_commit(partial(remove_files, obsolete_files))
            except Exception as e:
                logger.error(f"Migration {migration.name} failed: {e}")
                raise MigrationError(f"Migration failed: {e}", migration.name) from e
            applied.append(migration.name)
            logger.info(f"Migration {migration.name} completed")

        conn.execute(f'PRAGMA user_version = {SCHEMA_VERSION}')
    finally:
        conn.execute('PRAGMA foreign_keys = ON')

    if 'picture_references' in applied:
        cleanup_orphaned_images(conn)

    return applied
