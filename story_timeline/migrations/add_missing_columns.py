#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Add columns that older databases lack.

Columns introduced after a table was first shipped are listed in
COLUMN_ADDITIONS and added with ALTER TABLE when absent.
"""

import logging
import sqlite3
from typing import Any, List, Optional

from story_timeline.db_sqlite import get_table_columns, table_exists

logger = logging.getLogger(__name__)

COLUMN_ADDITIONS = [
    # Items
    {'table': 'items', 'column': 'content', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'original_subtick', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'end_year', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'end_subtick', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'original_end_subtick', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'creation_granularity', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'book_title', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'chapter', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'page', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'color', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'story_id', 'type': 'TEXT', 'default': None},
    {'table': 'items', 'column': 'timeline_id', 'type': 'INTEGER', 'default': None},
    {'table': 'items', 'column': 'item_index', 'type': 'INTEGER', 'default': 0},
    {'table': 'items', 'column': 'show_in_notes', 'type': 'BOOLEAN', 'default': 1},
    {'table': 'items', 'column': 'importance', 'type': 'INTEGER', 'default': 5},
    # Pictures
    {'table': 'pictures', 'column': 'file_path', 'type': 'TEXT', 'default': None},
    {'table': 'pictures', 'column': 'file_name', 'type': 'TEXT', 'default': None},
    {'table': 'pictures', 'column': 'file_size', 'type': 'INTEGER', 'default': None},
    {'table': 'pictures', 'column': 'file_type', 'type': 'TEXT', 'default': None},
    {'table': 'pictures', 'column': 'width', 'type': 'INTEGER', 'default': None},
    {'table': 'pictures', 'column': 'height', 'type': 'INTEGER', 'default': None},
    {'table': 'pictures', 'column': 'title', 'type': 'TEXT', 'default': None},
    {'table': 'pictures', 'column': 'description', 'type': 'TEXT', 'default': None},
    # Settings
    {'table': 'settings', 'column': 'timeline_id', 'type': 'INTEGER', 'default': None},
    {'table': 'settings', 'column': 'font', 'type': 'TEXT', 'default': 'Arial'},
    {'table': 'settings', 'column': 'font_size_scale', 'type': 'FLOAT', 'default': 1.0},
    {'table': 'settings', 'column': 'pixels_per_subtick', 'type': 'INTEGER', 'default': 20},
    {'table': 'settings', 'column': 'custom_css', 'type': 'TEXT', 'default': None},
    {'table': 'settings', 'column': 'use_custom_css', 'type': 'BOOLEAN', 'default': 0},
    {'table': 'settings', 'column': 'is_fullscreen', 'type': 'BOOLEAN', 'default': 0},
    {'table': 'settings', 'column': 'show_guides', 'type': 'BOOLEAN', 'default': 1},
    {'table': 'settings', 'column': 'window_size_x', 'type': 'INTEGER', 'default': 1000},
    {'table': 'settings', 'column': 'window_size_y', 'type': 'INTEGER', 'default': 700},
    {'table': 'settings', 'column': 'window_position_x', 'type': 'INTEGER', 'default': 300},
    {'table': 'settings', 'column': 'window_position_y', 'type': 'INTEGER', 'default': 100},
    {'table': 'settings', 'column': 'use_custom_scaling', 'type': 'BOOLEAN', 'default': 0},
    {'table': 'settings', 'column': 'custom_scale', 'type': 'FLOAT', 'default': 1.0},
    {'table': 'settings', 'column': 'display_radius', 'type': 'INTEGER', 'default': 10},
    # Characters
    {'table': 'characters', 'column': 'nicknames', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'aliases', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'race', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'description', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'notes', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'birth_year', 'type': 'INTEGER', 'default': None},
    {'table': 'characters', 'column': 'birth_subtick', 'type': 'INTEGER', 'default': None},
    {'table': 'characters', 'column': 'birth_date', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'birth_alternative_year', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'death_year', 'type': 'INTEGER', 'default': None},
    {'table': 'characters', 'column': 'death_subtick', 'type': 'INTEGER', 'default': None},
    {'table': 'characters', 'column': 'death_date', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'death_alternative_year', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'importance', 'type': 'INTEGER', 'default': 5},
    {'table': 'characters', 'column': 'color', 'type': 'TEXT', 'default': None},
    {'table': 'characters', 'column': 'timeline_id', 'type': 'INTEGER', 'default': None},
    # Character relationships and references
    {'table': 'character_relationships', 'column': 'timeline_id', 'type': 'INTEGER', 'default': None},
    {'table': 'character_relationships', 'column': 'custom_relationship_type', 'type': 'TEXT', 'default': None},
    {'table': 'character_relationships', 'column': 'relationship_degree', 'type': 'TEXT', 'default': None},
    {'table': 'character_relationships', 'column': 'relationship_modifier', 'type': 'TEXT', 'default': None},
    {'table': 'character_relationships', 'column': 'relationship_strength', 'type': 'INTEGER', 'default': 50},
    {'table': 'character_relationships', 'column': 'is_bidirectional', 'type': 'BOOLEAN', 'default': 0},
    {'table': 'character_relationships', 'column': 'notes', 'type': 'TEXT', 'default': None},
    {'table': 'item_characters', 'column': 'timeline_id', 'type': 'INTEGER', 'default': None},
    {'table': 'item_characters', 'column': 'relationship_type', 'type': 'TEXT', 'default': 'appears'},
]

# SQLite cannot add a column with a non-constant default, so timestamps added
# to legacy tables start out NULL.
TIMESTAMP_COLUMNS = {
    'timelines': ('created_at', 'updated_at'),
    'settings': ('updated_at',),
    'items': ('created_at', 'updated_at'),
    'stories': ('created_at', 'updated_at'),
    'item_story_refs': ('created_at',),
    'notes': ('created_at', 'updated_at'),
    'pictures': ('created_at',),
    'item_pictures': ('created_at',),
    'characters': ('created_at', 'updated_at'),
    'character_relationships': ('created_at', 'updated_at'),
    'item_characters': ('created_at',),
}

COLUMN_ADDITIONS += [
    {'table': table, 'column': column, 'type': 'DATETIME', 'default': None}
    for table, columns in TIMESTAMP_COLUMNS.items()
    for column in columns
]


def _sql_literal(value: Any) -> str:
    if isinstance(value, bool):
        return '1' if value else '0'
    if isinstance(value, (int, float)):
        return repr(value)
    return "'{}'".format(str(value).replace("'", "''"))


def add_column_if_missing(conn: sqlite3.Connection, table: str, column: str,
                          column_type: str, default: Optional[Any] = None) -> bool:
    """Add a column to an existing table unless it is already there.

    Args:
        conn: Database connection
        table: Table name
        column: Column name
        column_type: SQLite type name
        default: Constant default value, or None for no default

    Returns:
        True if the column was added
    """
    if not table_exists(conn, table):
        return False
    if column in get_table_columns(conn, table):
        return False

    statement = f'ALTER TABLE "{table}" ADD COLUMN "{column}" {column_type}'
    if default is not None:
        statement += f' DEFAULT {_sql_literal(default)}'
    conn.execute(statement)
    logger.info(f"Added column {table}.{column}")
    return True


def missing_columns(conn: sqlite3.Connection) -> List[str]:
    """List the known columns absent from existing tables as table.column."""
    missing = []
    columns_by_table = {}
    for addition in COLUMN_ADDITIONS:
        table = addition['table']
        if table not in columns_by_table:
            columns_by_table[table] = (
                set(get_table_columns(conn, table)) if table_exists(conn, table) else None
            )
        existing = columns_by_table[table]
        if existing is not None and addition['column'] not in existing:
            missing.append(f"{table}.{addition['column']}")
    return missing


def needs_migration(conn: sqlite3.Connection) -> bool:
    return bool(missing_columns(conn))


def migrate(conn: sqlite3.Connection, media_root: Optional[str] = None) -> List[str]:
    """Add every missing column from COLUMN_ADDITIONS."""
    for addition in COLUMN_ADDITIONS:
        add_column_if_missing(conn, addition['table'], addition['column'],
                              addition['type'], addition['default'])
    return []
