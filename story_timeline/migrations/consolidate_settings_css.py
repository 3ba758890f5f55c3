#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Merge the separate main/items CSS settings into a single custom_css field.

The settings table is rebuilt in its current shape: the rows are copied into
a shadow table, the old table is dropped and the shadow renamed into place.
"""

import logging
import sqlite3
from typing import List, Optional

from story_timeline.db_sqlite import get_table_columns, shadow_table_ddl, table_exists
from story_timeline.models.timeline import DEFAULT_SETTINGS, TimelineSettings

logger = logging.getLogger(__name__)

LEGACY_CSS_COLUMNS = ('custom_main_css', 'custom_items_css', 'use_main_css', 'use_items_css')
LEGACY_FLAG_COLUMNS = ('use_custom_css', 'use_timeline_css', 'use_main_css', 'use_items_css')


def merge_css(custom_css: Optional[str], main_css: Optional[str],
              items_css: Optional[str]) -> str:
    """Join the non-empty CSS sections, each trimmed, separated by a blank line."""
    parts = []
    if custom_css and custom_css.strip():
        parts.append(custom_css.strip())
    if main_css and main_css.strip():
        parts.append('/* Main CSS */\n' + main_css.strip())
    if items_css and items_css.strip():
        parts.append('/* Items CSS */\n' + items_css.strip())
    return '\n\n'.join(parts)


def needs_migration(conn: sqlite3.Connection) -> bool:
    if not table_exists(conn, 'settings'):
        return False
    columns = set(get_table_columns(conn, 'settings'))
    return any(column in columns for column in LEGACY_CSS_COLUMNS)


def migrate(conn: sqlite3.Connection, media_root: Optional[str] = None) -> List[str]:
    """Rebuild settings with the CSS sections merged."""
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM settings')
    rows = cursor.fetchall()

    table = TimelineSettings.__table__
    target_columns = [column.name for column in table.columns]

    cursor.execute('DROP TABLE IF EXISTS settings_new')
    cursor.execute(shadow_table_ddl(table, 'settings_new'))

    for row in rows:
        keys = row.keys()
        values = {}
        for column in target_columns:
            if column in keys:
                values[column] = row[column]
            else:
                values[column] = DEFAULT_SETTINGS.get(column)

        values['custom_css'] = merge_css(
            row['custom_css'] if 'custom_css' in keys else None,
            row['custom_main_css'] if 'custom_main_css' in keys else None,
            row['custom_items_css'] if 'custom_items_css' in keys else None,
        )
        values['use_custom_css'] = 1 if any(
            row[flag] for flag in LEGACY_FLAG_COLUMNS if flag in keys
        ) else 0
        if values.get('updated_at') is None:
            values.pop('updated_at')

        columns = list(values.keys())
        cursor.execute(
            f"INSERT INTO settings_new ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            [values[c] for c in columns],
        )

    cursor.execute('DROP TABLE settings')
    cursor.execute('ALTER TABLE settings_new RENAME TO settings')
    logger.info(f"Consolidated CSS for {len(rows)} settings rows")
    return []
