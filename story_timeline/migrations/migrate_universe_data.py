#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Convert the single-universe layout into a timeline.

Databases created before multiple timelines were supported keep their one
timeline's metadata in a universe_data table and leave timeline_id empty on
settings and items. This migration turns that row into a timeline, attaches
the orphaned rows to it and drops universe_data.
"""

import logging
import sqlite3
from typing import List, Optional

from story_timeline.db_sqlite import get_table_columns, table_exists
from story_timeline.models.timeline import DEFAULT_GRANULARITY

logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'New Timeline'


def needs_migration(conn: sqlite3.Connection) -> bool:
    return table_exists(conn, 'universe_data')


def _value(row: Optional[sqlite3.Row], key: str, default):
    if row is None or key not in row.keys() or row[key] in (None, ''):
        return default
    return row[key]


def migrate(conn: sqlite3.Connection, media_root: Optional[str] = None) -> List[str]:
    """Create a timeline from universe_data and drop the legacy table."""
    cursor = conn.cursor()

    cursor.execute('SELECT * FROM universe_data LIMIT 1')
    universe = cursor.fetchone()

    title = _value(universe, 'title', DEFAULT_TITLE)
    author = _value(universe, 'author', '')

    cursor.execute('SELECT id FROM timelines WHERE title = ? AND author = ?', (title, author))
    existing = cursor.fetchone()
    if existing:
        timeline_id = existing['id']
        logger.info(f"Reusing timeline {timeline_id} for universe data")
    else:
        cursor.execute('''
        INSERT INTO timelines (title, author, description, start_year, granularity)
        VALUES (?, ?, ?, ?, ?)
        ''', (
            title,
            author,
            _value(universe, 'description', ''),
            _value(universe, 'start_year', 0),
            _value(universe, 'granularity', DEFAULT_GRANULARITY),
        ))
        timeline_id = cursor.lastrowid
        logger.info(f"Created timeline {timeline_id} ('{title}') from universe data")

    if 'timeline_id' in get_table_columns(conn, 'settings'):
        cursor.execute('UPDATE settings SET timeline_id = ? WHERE timeline_id IS NULL',
                       (timeline_id,))
        cursor.execute('SELECT id FROM settings WHERE timeline_id = ?', (timeline_id,))
        if cursor.fetchone() is None:
            cursor.execute('INSERT INTO settings (timeline_id) VALUES (?)', (timeline_id,))

    if 'timeline_id' in get_table_columns(conn, 'items'):
        cursor.execute('UPDATE items SET timeline_id = ? WHERE timeline_id IS NULL',
                       (timeline_id,))
        logger.info(f"Attached {cursor.rowcount} items to timeline {timeline_id}")

    cursor.execute('DROP TABLE universe_data')
    return []
