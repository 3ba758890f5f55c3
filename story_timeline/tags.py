#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Tag storage for the Story Timeline application.
"""

import sqlite3
from typing import Iterable, List, Optional

from story_timeline.db_sqlite import transaction
from story_timeline.models import Tag


def get_or_create_tag(conn: sqlite3.Connection, name: str) -> int:
    """Get the id of a tag, creating it if needed."""
    cursor = conn.cursor()
    cursor.execute('INSERT OR IGNORE INTO tags (name) VALUES (?)', (name,))
    cursor.execute('SELECT id FROM tags WHERE name = ?', (name,))
    return cursor.fetchone()['id']


def add_tags_to_item(conn: sqlite3.Connection, item_id: str,
                     tags: Optional[Iterable[str]]) -> None:
    """Attach tags to an item. Blank names are ignored."""
    cursor = conn.cursor()
    for name in tags or []:
        name = name.strip() if isinstance(name, str) else name
        if not name:
            continue
        tag_id = get_or_create_tag(conn, name)
        cursor.execute('''
        INSERT OR IGNORE INTO item_tags (item_id, tag_id) VALUES (?, ?)
        ''', (item_id, tag_id))


def update_item_tags(conn: sqlite3.Connection, item_id: str,
                     tags: Optional[Iterable[str]]) -> None:
    """Replace an item's tags."""
    with transaction(conn):
        conn.execute('DELETE FROM item_tags WHERE item_id = ?', (item_id,))
        add_tags_to_item(conn, item_id, tags)


def get_item_tags(conn: sqlite3.Connection, item_id: str) -> List[str]:
    cursor = conn.cursor()
    cursor.execute('''
    SELECT t.name
    FROM tags t
    JOIN item_tags it ON it.tag_id = t.id
    WHERE it.item_id = ?
    ORDER BY t.name
    ''', (item_id,))
    return [row['name'] for row in cursor.fetchall()]


def get_all_tags(conn: sqlite3.Connection) -> List[str]:
    cursor = conn.cursor()
    cursor.execute('SELECT name FROM tags ORDER BY name')
    return [row['name'] for row in cursor.fetchall()]


def get_all_tags_with_counts(conn: sqlite3.Connection) -> List[Tag]:
    """Get every tag with the number and ids of the items using it.

    Returns:
        Tags ordered by usage, most used first
    """
    cursor = conn.cursor()
    cursor.execute('''
    SELECT t.id, t.name,
           COUNT(it.item_id) AS item_count,
           GROUP_CONCAT(it.item_id) AS item_ids
    FROM tags t
    LEFT JOIN item_tags it ON it.tag_id = t.id
    GROUP BY t.id
    ORDER BY item_count DESC, t.name
    ''')
    tags = []
    for row in cursor.fetchall():
        tag = Tag.from_row(row)
        tag.item_ids = row['item_ids'].split(',') if row['item_ids'] else []
        tags.append(tag)
    return tags


def delete_tag(conn: sqlite3.Connection, tag_id: int) -> bool:
    """Delete a tag and remove it from every item."""
    with transaction(conn):
        conn.execute('DELETE FROM item_tags WHERE tag_id = ?', (tag_id,))
        cursor = conn.execute('DELETE FROM tags WHERE id = ?', (tag_id,))
        deleted = cursor.rowcount > 0
    return deleted
