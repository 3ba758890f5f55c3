#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Story storage for the Story Timeline application.

Stories are identified by a caller-supplied string id and referenced from
items through item_story_refs.
"""

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional

from story_timeline.db_sqlite import transaction
from story_timeline.models import ItemStoryRef, Story

logger = logging.getLogger(__name__)


def add_story(conn: sqlite3.Connection, story_id: str, title: str,
              description: str = '') -> str:
    """Add a story unless one with the same id exists.

    Returns:
        The story id
    """
    cursor = conn.cursor()
    cursor.execute('''
    INSERT OR IGNORE INTO stories (id, title, description)
    VALUES (?, ?, ?)
    ''', (story_id, title, description))
    return story_id


def get_story(conn: sqlite3.Connection, story_id: str) -> Optional[Story]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM stories WHERE id = ?', (story_id,))
    return Story.from_row(cursor.fetchone())


def get_all_stories(conn: sqlite3.Connection) -> List[Story]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM stories ORDER BY title')
    return [Story.from_row(row) for row in cursor.fetchall()]


def get_or_create_story(conn: sqlite3.Connection, title: Optional[str],
                        story_id: Optional[str]) -> Optional[Story]:
    """Find a story by title and id, creating it when it does not exist.

    Returns:
        The story, or None if either the title or the id is missing
    """
    if not title or not story_id:
        return None

    cursor = conn.cursor()
    cursor.execute('SELECT * FROM stories WHERE title = ? AND id = ?', (title, story_id))
    story = Story.from_row(cursor.fetchone())
    if story is not None:
        return story

    add_story(conn, story_id, title)
    return get_story(conn, story_id)


def update_story(conn: sqlite3.Connection, story_id: str, title: Optional[str] = None,
                 description: Optional[str] = None) -> Optional[Story]:
    """Update a story's title and/or description."""
    story = get_story(conn, story_id)
    if story is None:
        return None
    conn.execute('''
    UPDATE stories
    SET title = ?, description = ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ?
    ''', (
        title if title is not None else story.title,
        description if description is not None else story.description,
        story_id,
    ))
    return get_story(conn, story_id)


def delete_story(conn: sqlite3.Connection, story_id: str) -> bool:
    """Delete a story and every item reference to it."""
    with transaction(conn):
        conn.execute('DELETE FROM item_story_refs WHERE story_id = ?', (story_id,))
        conn.execute('UPDATE items SET story_id = NULL WHERE story_id = ?', (story_id,))
        cursor = conn.execute('DELETE FROM stories WHERE id = ?', (story_id,))
        deleted = cursor.rowcount > 0
    return deleted


# Item references
def add_story_references_to_item(conn: sqlite3.Connection, item_id: str,
                                 story_refs: Optional[Iterable[Dict[str, Any]]]) -> None:
    """Reference stories from an item.

    Each entry has a story_id and a story_title; stories that do not exist
    yet are created. Entries missing either value are skipped.
    """
    cursor = conn.cursor()
    for ref in story_refs or []:
        story = get_or_create_story(conn, ref.get('story_title'), ref.get('story_id'))
        if story is None:
            logger.warning(f"Skipping incomplete story reference for item {item_id}: {ref}")
            continue
        cursor.execute('''
        INSERT OR IGNORE INTO item_story_refs (item_id, story_id) VALUES (?, ?)
        ''', (item_id, story.id))


def set_item_story_references(conn: sqlite3.Connection, item_id: str,
                              story_refs: Optional[Iterable[Dict[str, Any]]]) -> None:
    """Replace an item's story references."""
    with transaction(conn):
        conn.execute('DELETE FROM item_story_refs WHERE item_id = ?', (item_id,))
        add_story_references_to_item(conn, item_id, story_refs)


def get_item_story_references(conn: sqlite3.Connection, item_id: str) -> List[Story]:
    cursor = conn.cursor()
    cursor.execute('''
    SELECT s.*
    FROM stories s
    JOIN item_story_refs r ON r.story_id = s.id
    WHERE r.item_id = ?
    ORDER BY s.title
    ''', (item_id,))
    return [Story.from_row(row) for row in cursor.fetchall()]


def get_all_story_references(conn: sqlite3.Connection) -> List[ItemStoryRef]:
    """Get every item-to-story reference with the story title."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT r.*, s.title AS story_title
    FROM item_story_refs r
    JOIN stories s ON s.id = r.story_id
    ORDER BY r.item_id, s.title
    ''')
    return [ItemStoryRef.from_row(row) for row in cursor.fetchall()]
