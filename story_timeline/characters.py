#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Character storage for the Story Timeline application.

Each character owns a hidden Character-type item on its timeline. The item
spans the character's life and carries the character's pictures, tags and
story references, so characters share the item machinery for media.
"""

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from story_timeline.db_sqlite import transaction
from story_timeline.items import add_item, delete_item, update_item
from story_timeline.media import get_item_pictures
from story_timeline.models import Character
from story_timeline.models.item import CHARACTER_TYPE_ID, RANGE_TYPE_NAMES
from story_timeline.stories import get_item_story_references
from story_timeline.tags import get_item_tags
from story_timeline.utils.files import random_token

logger = logging.getLogger(__name__)

CHARACTER_FIELDS = (
    'name', 'nicknames', 'aliases', 'race', 'description', 'notes',
    'birth_year', 'birth_subtick', 'birth_date', 'birth_alternative_year',
    'death_year', 'death_subtick', 'death_date', 'death_alternative_year',
    'importance', 'color',
)

# Character fields mirrored into the reference item's JSON content
CONTENT_FIELDS = ('notes', 'aliases', 'birth_alternative_year', 'death_alternative_year',
                  'nicknames', 'race')

CHARACTER_ITEM_PREFIX = 'character_item_'


def generate_character_id(conn: sqlite3.Connection) -> str:
    """Generate a random 16 character id not used by any character."""
    cursor = conn.cursor()
    while True:
        character_id = random_token(16)
        cursor.execute('SELECT 1 FROM characters WHERE id = ?', (character_id,))
        if cursor.fetchone() is None:
            return character_id


def _item_content(character: Dict[str, Any]) -> Optional[str]:
    content = {field: character[field] for field in CONTENT_FIELDS if character.get(field)}
    return json.dumps(content) if content else None


def _life_span(character: Dict[str, Any]) -> Dict[str, Any]:
    birth_year = character.get('birth_year') or 0
    birth_subtick = character.get('birth_subtick')
    if birth_subtick is None:
        birth_subtick = 0
    death_subtick = character.get('death_subtick')
    return {
        'year': birth_year,
        'subtick': birth_subtick,
        'end_year': character.get('death_year') or birth_year,
        'end_subtick': death_subtick if death_subtick is not None else birth_subtick,
    }


def _reference_item_data(character: Dict[str, Any]) -> Dict[str, Any]:
    data = {
        'title': f"{CHARACTER_ITEM_PREFIX}{character['name']}",
        'description': character.get('description'),
        'content': _item_content(character),
        'color': character.get('color'),
    }
    data.update(_life_span(character))
    return data


def get_character_item_id(conn: sqlite3.Connection, character_id: str) -> Optional[str]:
    """Get the id of a character's hidden reference item."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT i.id FROM items i
    JOIN item_characters ic ON ic.item_id = i.id
    WHERE ic.character_id = ? AND i.type_id = ?
    LIMIT 1
    ''', (character_id, CHARACTER_TYPE_ID))
    row = cursor.fetchone()
    return row['id'] if row else None


def add_character(conn: sqlite3.Connection, timeline_id: int, character_data: Dict[str, Any],
                  media_root: Optional[str] = None) -> str:
    """Add a character and its reference item.

    Args:
        conn: Database connection
        timeline_id: Owning timeline
        character_data: Character fields plus optional images, tags,
            story_refs and connected_item_type (a type name or id). The last
            one also creates a visible item copying the character.
        media_root: Root directory for new picture files

    Returns:
        ID of the new character
    """
    if not character_data.get('name'):
        raise ValueError("A character needs a name")

    with transaction(conn):
        character_id = character_data.get('id') or generate_character_id(conn)
        columns = ('id',) + CHARACTER_FIELDS + ('timeline_id',)
        values = [character_id]
        for field in CHARACTER_FIELDS:
            value = character_data.get(field)
            if field == 'importance' and value is None:
                value = 5
            values.append(value)
        values.append(timeline_id)
        conn.execute(
            f"INSERT INTO characters ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            values
        )

        media = {
            'tags': character_data.get('tags'),
            'story_refs': character_data.get('story_refs'),
            'pictures': character_data.get('images'),
            'character_refs': [character_id],
        }

        item_data = _reference_item_data(character_data)
        item_data.update(media)
        item_data.update({'type_id': CHARACTER_TYPE_ID, 'show_in_notes': False,
                          'importance': character_data.get('importance')})
        reference_item_id = add_item(conn, timeline_id, item_data, media_root)

        connected_type = character_data.get('connected_item_type')
        if connected_type:
            connected = _reference_item_data(character_data)
            connected.update(media)
            # share the pictures just imported for the reference item
            connected['pictures'] = get_item_pictures(conn, reference_item_id)
            connected['title'] = character_data['name']
            if isinstance(connected_type, int) or str(connected_type).isdigit():
                connected['type_id'] = int(connected_type)
                is_range = int(connected_type) in (2, 3)
            else:
                connected['type'] = connected_type
                is_range = connected_type in RANGE_TYPE_NAMES
            if not is_range:
                connected['end_year'] = connected['year']
                connected['end_subtick'] = connected['subtick']
            add_item(conn, timeline_id, connected, media_root)

    logger.info(f"Added character {character_id} ('{character_data['name']}')")
    return character_id


def _attach_reference_media(conn: sqlite3.Connection, character: Character) -> Character:
    item_id = get_character_item_id(conn, character.id)
    if item_id:
        character.images = get_item_pictures(conn, item_id)
        character.tags = get_item_tags(conn, item_id)
        character.story_refs = get_item_story_references(conn, item_id)
    else:
        character.images = []
        character.tags = []
        character.story_refs = []
    return character


def get_character(conn: sqlite3.Connection, character_id: str) -> Optional[Character]:
    """Get a character with the images, tags and story refs of its reference item."""
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM characters WHERE id = ?', (character_id,))
    character = Character.from_row(cursor.fetchone())
    if character is None:
        return None
    return _attach_reference_media(conn, character)


def get_all_characters(conn: sqlite3.Connection, timeline_id: int) -> List[Character]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM characters WHERE timeline_id = ? ORDER BY name', (timeline_id,))
    return [_attach_reference_media(conn, Character.from_row(row)) for row in cursor.fetchall()]


def update_character(conn: sqlite3.Connection, character_id: str,
                     character_data: Dict[str, Any],
                     media_root: Optional[str] = None) -> bool:
    """Update a character and keep its reference item in step.

    Fields absent from character_data keep their values. images, tags and
    story_refs replace those of the reference item when present.

    Returns:
        True if the character exists
    """
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM characters WHERE id = ?', (character_id,))
        row = cursor.fetchone()
        if row is None:
            return False

        merged = {field: row[field] for field in CHARACTER_FIELDS}
        merged.update({k: v for k, v in character_data.items() if k in CHARACTER_FIELDS})

        assignments = ', '.join(f'{field} = ?' for field in CHARACTER_FIELDS)
        cursor.execute(
            f'UPDATE characters SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
            [merged[field] for field in CHARACTER_FIELDS] + [character_id]
        )

        item_id = get_character_item_id(conn, character_id)
        if item_id:
            item_data = _reference_item_data(merged)
            if 'tags' in character_data:
                item_data['tags'] = character_data['tags']
            if 'story_refs' in character_data:
                item_data['story_refs'] = character_data['story_refs']
            if 'images' in character_data:
                item_data['pictures'] = character_data['images']
            update_item(conn, item_id, item_data, media_root)
        else:
            logger.warning(f"Character {character_id} has no reference item")

    return True


def delete_character(conn: sqlite3.Connection, character_id: str) -> bool:
    """Delete a character, its relationships, references and reference item."""
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM characters WHERE id = ?', (character_id,))
        if cursor.fetchone() is None:
            return False

        cursor.execute('''
        DELETE FROM character_relationships
        WHERE character_1_id = ? OR character_2_id = ?
        ''', (character_id, character_id))

        item_id = get_character_item_id(conn, character_id)
        if item_id:
            delete_item(conn, item_id)

        cursor.execute('DELETE FROM item_characters WHERE character_id = ?', (character_id,))
        cursor.execute('DELETE FROM characters WHERE id = ?', (character_id,))

    logger.info(f"Deleted character {character_id}")
    return True


def search_characters(conn: sqlite3.Connection, timeline_id: int,
                      criteria: Dict[str, Any]) -> List[Character]:
    """Search a timeline's characters.

    Args:
        conn: Database connection
        timeline_id: Timeline to search
        criteria: Any of name (matched against name, nicknames and aliases),
            race, importance_min, importance_max and alive_in_year

    Returns:
        Matching characters, most important first
    """
    query = 'SELECT * FROM characters WHERE timeline_id = ?'
    params: List[Any] = [timeline_id]

    if criteria.get('name'):
        pattern = f"%{criteria['name']}%"
        query += ' AND (name LIKE ? OR nicknames LIKE ? OR aliases LIKE ?)'
        params.extend([pattern, pattern, pattern])

    if criteria.get('race'):
        query += ' AND race LIKE ?'
        params.append(f"%{criteria['race']}%")

    if criteria.get('importance_min') is not None:
        query += ' AND importance >= ?'
        params.append(criteria['importance_min'])

    if criteria.get('importance_max') is not None:
        query += ' AND importance <= ?'
        params.append(criteria['importance_max'])

    if criteria.get('alive_in_year') is not None:
        year = criteria['alive_in_year']
        query += (' AND (birth_year IS NULL OR birth_year <= ?)'
                  ' AND (death_year IS NULL OR death_year >= ?)')
        params.extend([year, year])

    query += ' ORDER BY importance DESC, name'

    cursor = conn.cursor()
    cursor.execute(query, params)
    return [Character.from_row(row) for row in cursor.fetchall()]


def get_character_stats(conn: sqlite3.Connection, timeline_id: int) -> Dict[str, Any]:
    """Summarize a timeline's characters, relationships and references.

    The result is a plain dict of counts and aggregates, not entity records.
    """
    cursor = conn.cursor()

    def count(table: str) -> int:
        cursor.execute(f'SELECT COUNT(*) FROM {table} WHERE timeline_id = ?', (timeline_id,))
        return cursor.fetchone()[0]

    stats = {
        'total_characters': count('characters'),
        'total_relationships': count('character_relationships'),
        'total_references': count('item_characters'),
    }

    cursor.execute('''
    SELECT race, COUNT(*) AS count
    FROM characters
    WHERE timeline_id = ? AND race IS NOT NULL
    GROUP BY race
    ORDER BY count DESC, race
    ''', (timeline_id,))
    stats['race_stats'] = [dict(row) for row in cursor.fetchall()]

    cursor.execute('''
    SELECT AVG(importance) AS avg_importance,
           MIN(importance) AS min_importance,
           MAX(importance) AS max_importance
    FROM characters
    WHERE timeline_id = ?
    ''', (timeline_id,))
    stats['importance_stats'] = dict(cursor.fetchone())
    return stats
