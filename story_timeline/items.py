#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Timeline item storage for the Story Timeline application.

Items are positioned by (year, subtick) in units of their timeline's
granularity. The position an item was created with is kept in
original_subtick/original_end_subtick together with creation_granularity, so
the item can be re-projected whenever the timeline's granularity changes.
"""

import uuid
import logging
import sqlite3
from functools import partial
from typing import Any, Dict, List, Optional

from story_timeline.character_refs import (get_item_character_references,
                                           set_item_character_references)
from story_timeline.db_sqlite import transaction
from story_timeline.media import (add_pictures_to_item, find_pictures_exclusive_to_item,
                                  get_item_pictures, update_item_pictures)
from story_timeline.models import Item, ItemType
from story_timeline.models.item import CHARACTER_TYPE_ID, EVENT_TYPE_ID
from story_timeline.models.timeline import DEFAULT_GRANULARITY
from story_timeline.stories import (add_story_references_to_item, get_item_story_references,
                                    set_item_story_references)
from story_timeline.tags import add_tags_to_item, get_item_tags, update_item_tags
from story_timeline.timelines import convert_subtick
from story_timeline.utils.files import remove_files

# Set up logging
logger = logging.getLogger(__name__)

# Fields copied straight from item data on update
UPDATABLE_FIELDS = (
    'title', 'description', 'content', 'story_id', 'year', 'end_year', 'book_title', 'chapter',
    'page', 'color', 'show_in_notes', 'importance',
)

_ITEM_SELECT = '''
SELECT i.*, t.name AS type_name
FROM items i
LEFT JOIN item_types t ON t.id = i.type_id
'''


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


# Item types
def get_item_types(conn: sqlite3.Connection) -> List[ItemType]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM item_types ORDER BY id')
    return [ItemType.from_row(row) for row in cursor.fetchall()]


def get_item_type_id(conn: sqlite3.Connection, type_name: Optional[str]) -> int:
    """Resolve a type name to its id; unknown or missing names map to Event."""
    if type_name:
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM item_types WHERE name = ?', (type_name,))
        row = cursor.fetchone()
        if row:
            return row['id']
        logger.warning(f"Unknown item type '{type_name}', using Event")
    return EVENT_TYPE_ID


def _resolve_type_id(conn: sqlite3.Connection, item_data: Dict[str, Any]) -> int:
    if item_data.get('type_id') is not None:
        return item_data['type_id']
    return get_item_type_id(conn, item_data.get('type'))


def _timeline_granularity(conn: sqlite3.Connection, timeline_id: int) -> int:
    cursor = conn.cursor()
    cursor.execute('SELECT granularity FROM timelines WHERE id = ?', (timeline_id,))
    row = cursor.fetchone()
    return row['granularity'] if row and row['granularity'] else DEFAULT_GRANULARITY


def _enrich(conn: sqlite3.Connection, item: Item, with_characters: bool = True) -> Item:
    item.tags = get_item_tags(conn, item.id)
    item.story_refs = get_item_story_references(conn, item.id)
    item.pictures = get_item_pictures(conn, item.id)
    if with_characters:
        item.character_refs = get_item_character_references(conn, item.id)
    return item


# CRUD
def add_item(conn: sqlite3.Connection, timeline_id: int, item_data: Dict[str, Any],
             media_root: Optional[str] = None) -> str:
    """Add an item to a timeline.

    Args:
        conn: Database connection
        timeline_id: Owning timeline
        item_data: Item fields. Optional keys: id, type (name) or type_id,
            tags (names), story_refs (dicts with story_id and story_title),
            pictures (see media.add_pictures_to_item) and character_refs
        media_root: Root directory for new picture files

    Returns:
        ID of the new item
    """
    item_id = item_data.get('id') or str(uuid.uuid4())
    subtick = item_data.get('subtick')
    year = item_data.get('year')
    original_subtick = _first_not_none(item_data.get('original_subtick'), subtick)

    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('SELECT MAX(item_index) AS max_index FROM items WHERE timeline_id = ?',
                       (timeline_id,))
        max_index = cursor.fetchone()['max_index']
        next_index = (max_index or 0) + 1

        end_subtick = _first_not_none(item_data.get('end_subtick'), subtick)
        cursor.execute('''
        INSERT INTO items (
            id, title, description, content, story_id, type_id, year, subtick, original_subtick,
            end_year, end_subtick, original_end_subtick, creation_granularity,
            book_title, chapter, page, color, timeline_id, item_index,
            show_in_notes, importance
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            item_id,
            item_data.get('title') or '',
            item_data.get('description') or '',
            item_data.get('content') or '',
            item_data.get('story_id'),
            _resolve_type_id(conn, item_data),
            year,
            subtick,
            original_subtick,
            _first_not_none(item_data.get('end_year'), year),
            end_subtick,
            _first_not_none(item_data.get('original_end_subtick'),
                            item_data.get('end_subtick'), original_subtick),
            _first_not_none(item_data.get('creation_granularity'),
                            _timeline_granularity(conn, timeline_id)),
            item_data.get('book_title') or '',
            item_data.get('chapter') or '',
            item_data.get('page') or '',
            item_data.get('color'),
            timeline_id,
            next_index,
            _first_not_none(item_data.get('show_in_notes'), True),
            _first_not_none(item_data.get('importance'), 5),
        ))

        add_tags_to_item(conn, item_id, item_data.get('tags'))
        add_story_references_to_item(conn, item_id, item_data.get('story_refs'))
        add_pictures_to_item(conn, item_id, item_data.get('pictures'), timeline_id, media_root)
        if item_data.get('character_refs'):
            set_item_character_references(conn, item_id, item_data['character_refs'], timeline_id)

    logger.debug(f"Added item {item_id} to timeline {timeline_id} at index {next_index}")
    return item_id


def get_item(conn: sqlite3.Connection, item_id: str) -> Optional[Item]:
    """Get an item with its type name, tags, story refs, pictures and characters."""
    cursor = conn.cursor()
    cursor.execute(_ITEM_SELECT + 'WHERE i.id = ?', (item_id,))
    item = Item.from_row(cursor.fetchone())
    if item is None:
        return None
    return _enrich(conn, item)


def get_items_by_timeline(conn: sqlite3.Connection, timeline_id: int,
                          include_character_items: bool = False) -> List[Item]:
    """Get a timeline's items ordered by position and index.

    Character reference items are hidden unless include_character_items is set.
    """
    query = _ITEM_SELECT + 'WHERE i.timeline_id = ?'
    params: List[Any] = [timeline_id]
    if not include_character_items:
        query += ' AND (i.type_id IS NULL OR i.type_id != ?)'
        params.append(CHARACTER_TYPE_ID)
    query += ' ORDER BY i.year, i.subtick, i.item_index'

    cursor = conn.cursor()
    cursor.execute(query, params)
    return [_enrich(conn, Item.from_row(row)) for row in cursor.fetchall()]


def update_item(conn: sqlite3.Connection, item_id: str, item_data: Dict[str, Any],
                media_root: Optional[str] = None) -> Optional[Item]:
    """Update an item.

    Fields absent from item_data keep their stored values. original_subtick
    is replaced only when a different subtick is supplied, and likewise for
    original_end_subtick and end_subtick. tags, story_refs, pictures and
    character_refs replace the existing sets when present.

    Returns:
        The updated item, or None if it does not exist
    """
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('SELECT * FROM items WHERE id = ?', (item_id,))
        current = cursor.fetchone()
        if current is None:
            return None

        values = {field: current[field] for field in UPDATABLE_FIELDS}
        for field in UPDATABLE_FIELDS:
            if field in item_data:
                values[field] = item_data[field]

        if 'type' in item_data or 'type_id' in item_data:
            values['type_id'] = _resolve_type_id(conn, item_data)

        start_changed = 'subtick' in item_data and item_data['subtick'] != current['subtick']
        end_changed = ('end_subtick' in item_data
                       and item_data['end_subtick'] != current['end_subtick'])
        if start_changed:
            values['subtick'] = item_data['subtick']
            values['original_subtick'] = item_data['subtick']
        if end_changed:
            values['end_subtick'] = item_data['end_subtick']
            values['original_end_subtick'] = item_data['end_subtick']

        if start_changed or end_changed:
            # New positions are in the current granularity; rebase the untouched
            # original so both share one creation_granularity.
            granularity = _timeline_granularity(conn, current['timeline_id'])
            source = current['creation_granularity'] or granularity
            if source != granularity:
                values['creation_granularity'] = granularity
                if not start_changed and current['original_subtick'] is not None:
                    values['original_subtick'] = convert_subtick(
                        current['original_subtick'], source, granularity)
                if not end_changed and current['original_end_subtick'] is not None:
                    values['original_end_subtick'] = convert_subtick(
                        current['original_end_subtick'], source, granularity)

        assignments = ', '.join(f'{field} = ?' for field in values)
        cursor.execute(
            f'UPDATE items SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
            tuple(values.values()) + (item_id,)
        )

        timeline_id = current['timeline_id']
        if 'tags' in item_data:
            update_item_tags(conn, item_id, item_data['tags'])
        if 'story_refs' in item_data:
            set_item_story_references(conn, item_id, item_data['story_refs'])
        if 'pictures' in item_data:
            update_item_pictures(conn, item_id, item_data['pictures'], timeline_id, media_root)
        if 'character_refs' in item_data:
            set_item_character_references(conn, item_id, item_data['character_refs'],
                                          timeline_id)

    return get_item(conn, item_id)


def delete_item(conn: sqlite3.Connection, item_id: str) -> bool:
    """Delete an item and its references.

    Pictures referenced only by this item are deleted with it; their files are
    removed once the transaction commits.

    Returns:
        True if the item existed
    """
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('SELECT id FROM items WHERE id = ?', (item_id,))
        if cursor.fetchone() is None:
            return False

        exclusive = find_pictures_exclusive_to_item(conn, item_id)

        cursor.execute('DELETE FROM item_tags WHERE item_id = ?', (item_id,))
        cursor.execute('DELETE FROM item_pictures WHERE item_id = ?', (item_id,))
        cursor.execute('DELETE FROM item_story_refs WHERE item_id = ?', (item_id,))
        cursor.execute('DELETE FROM item_characters WHERE item_id = ?', (item_id,))
        for picture in exclusive:
            cursor.execute('DELETE FROM pictures WHERE id = ?', (picture.id,))
        cursor.execute('DELETE FROM items WHERE id = ?', (item_id,))

        if exclusive:
            conn.call_after_commit(partial(remove_files, [p.file_path for p in exclusive]))

    logger.info(f"Deleted item {item_id} and {len(exclusive)} unshared pictures")
    return True


def reindex_items(conn: sqlite3.Connection, timeline_id: Optional[int] = None) -> None:
    """Rewrite item_index as 0..N-1 in (year, subtick) order.

    Runs per timeline; all timelines when timeline_id is None.
    """
    with transaction(conn):
        cursor = conn.cursor()
        if timeline_id is None:
            cursor.execute('SELECT DISTINCT timeline_id FROM items WHERE timeline_id IS NOT NULL')
            timeline_ids = [row['timeline_id'] for row in cursor.fetchall()]
        else:
            timeline_ids = [timeline_id]

        for tid in timeline_ids:
            cursor.execute('''
            SELECT id FROM items
            WHERE timeline_id = ?
            ORDER BY year, subtick, item_index, id
            ''', (tid,))
            ids = [row['id'] for row in cursor.fetchall()]
            cursor.executemany('UPDATE items SET item_index = ? WHERE id = ?',
                               [(index, item) for index, item in enumerate(ids)])
            logger.debug(f"Reindexed {len(ids)} items of timeline {tid}")


def search_items(conn: sqlite3.Connection, criteria: Dict[str, Any],
                 timeline_id: Optional[int] = None) -> List[Item]:
    """Search items.

    Args:
        conn: Database connection
        criteria: Any of story (title substring), tags (list of names, any
            match), start_year/start_subtick, end_year/end_subtick (inclusive
            bounds) and text (substring of title, description or content)
        timeline_id: Restrict the search to one timeline

    Returns:
        Matching items ordered by position, with tags, pictures and story refs
    """
    query = _ITEM_SELECT + 'WHERE 1=1'
    params: List[Any] = []

    if timeline_id is not None:
        query += ' AND i.timeline_id = ?'
        params.append(timeline_id)

    story = criteria.get('story')
    if story:
        query += '''
        AND (
            EXISTS (SELECT 1 FROM item_story_refs r JOIN stories s ON s.id = r.story_id
                    WHERE r.item_id = i.id AND s.title LIKE ?)
            OR EXISTS (SELECT 1 FROM stories s WHERE s.id = i.story_id AND s.title LIKE ?)
        )'''
        params.extend([f'%{story}%', f'%{story}%'])

    tags = criteria.get('tags')
    if tags:
        query += f'''
        AND EXISTS (SELECT 1 FROM item_tags it JOIN tags tg ON tg.id = it.tag_id
                    WHERE it.item_id = i.id AND tg.name IN ({', '.join('?' for _ in tags)}))'''
        params.extend(tags)

    start_year = criteria.get('start_year')
    if start_year is not None:
        start_subtick = criteria.get('start_subtick') or 0
        query += ' AND (i.year > ? OR (i.year = ? AND i.subtick >= ?))'
        params.extend([start_year, start_year, start_subtick])

    end_year = criteria.get('end_year')
    if end_year is not None:
        end_subtick = criteria.get('end_subtick')
        if end_subtick is None:
            query += ' AND i.year <= ?'
            params.append(end_year)
        else:
            query += ' AND (i.year < ? OR (i.year = ? AND i.subtick <= ?))'
            params.extend([end_year, end_year, end_subtick])

    text = criteria.get('text')
    if text:
        query += ' AND (i.title LIKE ? OR i.description LIKE ? OR i.content LIKE ?)'
        params.extend([f'%{text}%'] * 3)

    query += ' ORDER BY i.year, i.subtick, i.item_index'

    cursor = conn.cursor()
    cursor.execute(query, params)
    return [_enrich(conn, Item.from_row(row), with_characters=False)
            for row in cursor.fetchall()]
