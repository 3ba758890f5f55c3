#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Relationships between characters for the Story Timeline application.

Relationship types come from a fixed vocabulary. The database enforces it
with a CHECK constraint and writes here validate before touching the table.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from story_timeline.models import CharacterRelationship, RELATIONSHIP_TYPES

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_STRENGTH = 50

_RELATIONSHIP_SELECT = '''
SELECT cr.*,
       c1.name AS character_1_name,
       c2.name AS character_2_name
FROM character_relationships cr
JOIN characters c1 ON c1.id = cr.character_1_id
JOIN characters c2 ON c2.id = cr.character_2_id
'''


def validate_relationship_type(relationship_type: Optional[str]) -> bool:
    """Check whether a relationship type is part of the vocabulary."""
    return relationship_type in RELATIONSHIP_TYPES


def _require_valid_type(relationship_type: Optional[str]) -> None:
    if not validate_relationship_type(relationship_type):
        raise ValueError(f"Invalid relationship type: {relationship_type}")


def add_character_relationship(conn: sqlite3.Connection, timeline_id: int,
                               relationship: Dict[str, Any]) -> int:
    """Add a relationship between two characters.

    Args:
        conn: Database connection
        timeline_id: Timeline the characters belong to
        relationship: character_1_id, character_2_id and relationship_type,
            plus optional custom_relationship_type, relationship_degree,
            relationship_modifier, relationship_strength, is_bidirectional
            and notes

    Returns:
        ID of the new relationship

    Raises:
        ValueError: If the relationship type is not recognised
    """
    _require_valid_type(relationship.get('relationship_type'))

    cursor = conn.cursor()
    cursor.execute('''
    INSERT INTO character_relationships (
        character_1_id, character_2_id, relationship_type, custom_relationship_type,
        relationship_degree, relationship_modifier, relationship_strength,
        is_bidirectional, notes, timeline_id
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ''', (
        relationship['character_1_id'],
        relationship['character_2_id'],
        relationship['relationship_type'],
        relationship.get('custom_relationship_type'),
        relationship.get('relationship_degree'),
        relationship.get('relationship_modifier'),
        relationship.get('relationship_strength') or DEFAULT_STRENGTH,
        bool(relationship.get('is_bidirectional')),
        relationship.get('notes'),
        timeline_id,
    ))
    logger.info(f"Added relationship {relationship['character_1_id']} "
                f"-{relationship['relationship_type']}-> {relationship['character_2_id']}")
    return cursor.lastrowid


def get_character_relationship(conn: sqlite3.Connection,
                               relationship_id: int) -> Optional[CharacterRelationship]:
    cursor = conn.cursor()
    cursor.execute(_RELATIONSHIP_SELECT + 'WHERE cr.id = ?', (relationship_id,))
    return CharacterRelationship.from_row(cursor.fetchone())


def get_character_relationships(conn: sqlite3.Connection,
                                character_id: str) -> List[CharacterRelationship]:
    """Get every relationship a character takes part in, strongest first."""
    cursor = conn.cursor()
    cursor.execute(_RELATIONSHIP_SELECT + '''
    WHERE cr.character_1_id = ? OR cr.character_2_id = ?
    ORDER BY cr.relationship_strength DESC, cr.created_at, cr.id
    ''', (character_id, character_id))
    return [CharacterRelationship.from_row(row) for row in cursor.fetchall()]


def get_all_character_relationships(conn: sqlite3.Connection,
                                    timeline_id: int) -> List[CharacterRelationship]:
    cursor = conn.cursor()
    cursor.execute(_RELATIONSHIP_SELECT + '''
    WHERE cr.timeline_id = ?
    ORDER BY cr.relationship_strength DESC, cr.created_at, cr.id
    ''', (timeline_id,))
    return [CharacterRelationship.from_row(row) for row in cursor.fetchall()]


def update_character_relationship(conn: sqlite3.Connection, relationship_id: int,
                                  relationship: Dict[str, Any]) -> bool:
    """Update a relationship's type and details.

    Raises:
        ValueError: If the relationship type is not recognised
    """
    _require_valid_type(relationship.get('relationship_type'))

    cursor = conn.cursor()
    cursor.execute('''
    UPDATE character_relationships SET
        relationship_type = ?, custom_relationship_type = ?,
        relationship_degree = ?, relationship_modifier = ?,
        relationship_strength = ?, is_bidirectional = ?,
        notes = ?, updated_at = CURRENT_TIMESTAMP
    WHERE id = ?
    ''', (
        relationship['relationship_type'],
        relationship.get('custom_relationship_type'),
        relationship.get('relationship_degree'),
        relationship.get('relationship_modifier'),
        relationship.get('relationship_strength') or DEFAULT_STRENGTH,
        bool(relationship.get('is_bidirectional')),
        relationship.get('notes'),
        relationship_id,
    ))
    return cursor.rowcount > 0


def delete_character_relationship(conn: sqlite3.Connection, relationship_id: int) -> bool:
    cursor = conn.execute('DELETE FROM character_relationships WHERE id = ?', (relationship_id,))
    return cursor.rowcount > 0
