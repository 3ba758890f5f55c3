#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
References from timeline items to characters.
"""

import logging
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Union

from story_timeline.db_sqlite import transaction
from story_timeline.models import ItemCharacter

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TYPE = 'appears'

CharacterRef = Union[str, Dict[str, Any]]


def add_character_reference(conn: sqlite3.Connection, item_id: str, character_id: str,
                            timeline_id: int,
                            relationship_type: Optional[str] = None) -> bool:
    """Reference a character from an item. Existing references are kept."""
    cursor = conn.cursor()
    cursor.execute('''
    INSERT OR IGNORE INTO item_characters (item_id, character_id, relationship_type, timeline_id)
    VALUES (?, ?, ?, ?)
    ''', (item_id, character_id, relationship_type or DEFAULT_REFERENCE_TYPE, timeline_id))
    return cursor.rowcount > 0


def set_item_character_references(conn: sqlite3.Connection, item_id: str,
                                  character_refs: Optional[Iterable[CharacterRef]],
                                  timeline_id: int) -> int:
    """Replace the characters an item references.

    Args:
        conn: Database connection
        item_id: Referencing item
        character_refs: Character ids, or dicts with character_id and an
            optional relationship_type
        timeline_id: Timeline the references belong to

    Returns:
        Number of references stored
    """
    with transaction(conn):
        conn.execute('DELETE FROM item_characters WHERE item_id = ?', (item_id,))
        count = 0
        for ref in character_refs or []:
            if isinstance(ref, str):
                ref = {'character_id': ref}
            if not ref.get('character_id'):
                logger.warning(f"Skipping character reference without id for item {item_id}")
                continue
            if add_character_reference(conn, item_id, ref['character_id'], timeline_id,
                                       ref.get('relationship_type')):
                count += 1
    logger.debug(f"Stored {count} character references for item {item_id}")
    return count


def get_item_character_references(conn: sqlite3.Connection, item_id: str) -> List[ItemCharacter]:
    cursor = conn.cursor()
    cursor.execute('''
    SELECT ic.*, c.name AS character_name, c.color AS character_color
    FROM item_characters ic
    JOIN characters c ON c.id = ic.character_id
    WHERE ic.item_id = ?
    ORDER BY c.name
    ''', (item_id,))
    return [ItemCharacter.from_row(row) for row in cursor.fetchall()]


def get_all_character_references(conn: sqlite3.Connection,
                                 timeline_id: int) -> List[ItemCharacter]:
    cursor = conn.cursor()
    cursor.execute('''
    SELECT ic.*, c.name AS character_name, c.color AS character_color, i.title AS item_title
    FROM item_characters ic
    JOIN characters c ON c.id = ic.character_id
    JOIN items i ON i.id = ic.item_id
    WHERE ic.timeline_id = ?
    ORDER BY c.name, i.title
    ''', (timeline_id,))
    return [ItemCharacter.from_row(row) for row in cursor.fetchall()]


def get_items_referencing_character(conn: sqlite3.Connection,
                                    character_id: str) -> List[ItemCharacter]:
    """Get the references to a character, ordered by the items' position."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT ic.*, c.name AS character_name, i.title AS item_title
    FROM item_characters ic
    JOIN items i ON i.id = ic.item_id
    JOIN characters c ON c.id = ic.character_id
    WHERE ic.character_id = ?
    ORDER BY i.year, i.subtick
    ''', (character_id,))
    return [ItemCharacter.from_row(row) for row in cursor.fetchall()]
