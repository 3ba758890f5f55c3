#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Timeline and settings storage for the Story Timeline application.

Every item, character and setting belongs to exactly one timeline, and the
timeline id is always passed explicitly.
"""

import math
import logging
import sqlite3
from functools import partial
from typing import Any, List, Optional

from story_timeline.db_sqlite import transaction
from story_timeline.media import delete_picture_rows, timeline_media_dir
from story_timeline.models import DEFAULT_SETTINGS, Picture, Timeline, TimelineSettings
from story_timeline.models.item import RANGE_TYPE_NAMES
from story_timeline.models.timeline import DEFAULT_GRANULARITY
from story_timeline.utils.files import remove_directory

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_TITLE = 'New Timeline'

SETTINGS_FIELDS = tuple(DEFAULT_SETTINGS.keys())


def convert_subtick(original_subtick: int, original_granularity: Optional[int],
                    new_granularity: int) -> int:
    """Project a subtick recorded at one granularity onto another.

    Halves round up. A missing or zero original granularity leaves the value
    unchanged.
    """
    if not original_granularity or original_granularity == new_granularity:
        return original_subtick
    return int(math.floor(original_subtick / original_granularity * new_granularity + 0.5))


# Timelines
def create_timeline(conn: sqlite3.Connection, title: Optional[str] = None, author: str = '',
                    description: str = '', start_year: int = 0,
                    granularity: int = DEFAULT_GRANULARITY) -> int:
    """Create a timeline together with its default settings.

    Args:
        conn: Database connection
        title: Timeline title, "New Timeline" when empty
        author: Author name
        description: Free-form description
        start_year: First year shown
        granularity: Subticks per year

    Returns:
        ID of the new timeline

    Raises:
        sqlite3.IntegrityError: If a timeline with the same title and author exists
    """
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('''
        INSERT INTO timelines (title, author, description, start_year, granularity)
        VALUES (?, ?, ?, ?, ?)
        ''', (title or DEFAULT_TIMELINE_TITLE, author or '', description or '',
              start_year or 0, granularity or DEFAULT_GRANULARITY))
        timeline_id = cursor.lastrowid
        _insert_default_settings(conn, timeline_id)

    logger.info(f"Created timeline {timeline_id} ('{title or DEFAULT_TIMELINE_TITLE}')")
    return timeline_id


def get_timeline(conn: sqlite3.Connection, timeline_id: int) -> Optional[Timeline]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM timelines WHERE id = ?', (timeline_id,))
    return Timeline.from_row(cursor.fetchone())


def get_timeline_by_title(conn: sqlite3.Connection, title: str,
                          author: str = '') -> Optional[Timeline]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM timelines WHERE title = ? AND author = ?', (title, author))
    return Timeline.from_row(cursor.fetchone())


def get_all_timelines(conn: sqlite3.Connection) -> List[Timeline]:
    """Get all timelines with their year span and item count.

    Period and Age items count towards max_year with their end year.
    year_range is "min - max", or " - " for a timeline without items.
    """
    cursor = conn.cursor()
    cursor.execute(f'''
    SELECT t.*,
           MIN(i.year) AS min_year,
           MAX(CASE WHEN it.name IN ({', '.join('?' for _ in RANGE_TYPE_NAMES)})
                    THEN COALESCE(i.end_year, i.year)
                    ELSE i.year END) AS max_year,
           COUNT(i.id) AS item_count
    FROM timelines t
    LEFT JOIN items i ON i.timeline_id = t.id
    LEFT JOIN item_types it ON it.id = i.type_id
    GROUP BY t.id
    ORDER BY t.title, t.author
    ''', RANGE_TYPE_NAMES)

    timelines = []
    for row in cursor.fetchall():
        timeline = Timeline.from_row(row)
        if timeline.item_count:
            timeline.year_range = f"{timeline.min_year} - {timeline.max_year}"
        else:
            timeline.year_range = ' - '
        timelines.append(timeline)
    return timelines


def update_timeline(conn: sqlite3.Connection, timeline_id: int, title: Optional[str] = None,
                    author: Optional[str] = None, description: Optional[str] = None,
                    start_year: Optional[int] = None,
                    granularity: Optional[int] = None) -> Optional[Timeline]:
    """Update a timeline's metadata.

    Only the given fields change. When the granularity changes every item of
    the timeline is re-projected in the same transaction.

    Returns:
        The updated timeline, or None if it does not exist
    """
    with transaction(conn):
        timeline = get_timeline(conn, timeline_id)
        if timeline is None:
            return None

        previous_granularity = timeline.granularity
        new_granularity = granularity if granularity is not None else previous_granularity

        conn.execute('''
        UPDATE timelines
        SET title = ?, author = ?, description = ?, start_year = ?, granularity = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        ''', (
            title if title is not None else timeline.title,
            author if author is not None else timeline.author,
            description if description is not None else timeline.description,
            start_year if start_year is not None else timeline.start_year,
            new_granularity,
            timeline_id,
        ))

        if new_granularity != previous_granularity:
            update_items_for_granularity_change(conn, timeline_id, new_granularity,
                                                previous_granularity)

    return get_timeline(conn, timeline_id)


def update_items_for_granularity_change(conn: sqlite3.Connection, timeline_id: int,
                                        new_granularity: int,
                                        previous_granularity: Optional[int] = None) -> int:
    """Recompute every item's subticks for a new granularity.

    Positions are derived from the values recorded at creation
    (original_subtick, original_end_subtick and creation_granularity), so
    repeated changes do not accumulate rounding error.

    Returns:
        Number of items updated
    """
    with transaction(conn):
        cursor = conn.cursor()
        cursor.execute('''
        SELECT id, subtick, end_subtick, original_subtick, original_end_subtick,
               creation_granularity
        FROM items
        WHERE timeline_id = ?
        ''', (timeline_id,))
        rows = cursor.fetchall()

        updated = 0
        for row in rows:
            source_granularity = row['creation_granularity'] or previous_granularity
            subtick = row['subtick']
            end_subtick = row['end_subtick']
            if row['original_subtick'] is not None:
                subtick = convert_subtick(row['original_subtick'], source_granularity,
                                          new_granularity)
            if row['original_end_subtick'] is not None:
                end_subtick = convert_subtick(row['original_end_subtick'], source_granularity,
                                              new_granularity)
            if subtick == row['subtick'] and end_subtick == row['end_subtick']:
                continue
            cursor.execute('''
            UPDATE items SET subtick = ?, end_subtick = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            ''', (subtick, end_subtick, row['id']))
            updated += 1

    logger.info(f"Re-projected {updated} of {len(rows)} items of timeline {timeline_id} "
                f"to granularity {new_granularity}")
    return updated


def delete_timeline(conn: sqlite3.Connection, timeline_id: int,
                    media_root: Optional[str] = None) -> bool:
    """Delete a timeline and everything that belongs to it.

    Pictures left without references are deleted too. Their files and the
    timeline's media directory are removed once the transaction commits.

    Returns:
        True if the timeline existed
    """
    with transaction(conn):
        if get_timeline(conn, timeline_id) is None:
            return False

        cursor = conn.cursor()
        item_ids = 'SELECT id FROM items WHERE timeline_id = ?'
        cursor.execute('DELETE FROM settings WHERE timeline_id = ?', (timeline_id,))
        cursor.execute(f'DELETE FROM item_tags WHERE item_id IN ({item_ids})', (timeline_id,))
        cursor.execute(f'DELETE FROM item_pictures WHERE item_id IN ({item_ids})', (timeline_id,))
        cursor.execute(f'DELETE FROM item_story_refs WHERE item_id IN ({item_ids})', (timeline_id,))
        cursor.execute('DELETE FROM item_characters WHERE timeline_id = ? '
                       f'OR item_id IN ({item_ids}) '
                       'OR character_id IN (SELECT id FROM characters WHERE timeline_id = ?)',
                       (timeline_id, timeline_id, timeline_id))
        cursor.execute('DELETE FROM character_relationships WHERE timeline_id = ?', (timeline_id,))
        cursor.execute('DELETE FROM characters WHERE timeline_id = ?', (timeline_id,))

        cursor.execute('''
        SELECT p.* FROM pictures p
        WHERE NOT EXISTS (SELECT 1 FROM item_pictures ip WHERE ip.picture_id = p.id)
        ''')
        orphans = [Picture.from_row(row) for row in cursor.fetchall()]
        delete_picture_rows(conn, orphans)

        cursor.execute('DELETE FROM items WHERE timeline_id = ?', (timeline_id,))
        cursor.execute('DELETE FROM timelines WHERE id = ?', (timeline_id,))

        if media_root:
            conn.call_after_commit(partial(remove_directory,
                                           timeline_media_dir(media_root, timeline_id)))

    logger.info(f"Deleted timeline {timeline_id}")
    return True


def ensure_default_timeline(conn: sqlite3.Connection) -> Optional[int]:
    """Create a default timeline if the database has none.

    Returns:
        ID of the created timeline, or None if timelines already exist
    """
    cursor = conn.cursor()
    cursor.execute('SELECT COUNT(*) FROM timelines')
    if cursor.fetchone()[0]:
        return None
    return create_timeline(conn, title=DEFAULT_TIMELINE_TITLE)


# Settings
def _insert_default_settings(conn: sqlite3.Connection, timeline_id: int) -> None:
    columns = ('timeline_id',) + SETTINGS_FIELDS
    conn.execute(
        f"INSERT INTO settings ({', '.join(columns)}) "
        f"VALUES ({', '.join('?' for _ in columns)})",
        (timeline_id,) + tuple(DEFAULT_SETTINGS[field] for field in SETTINGS_FIELDS)
    )


def get_timeline_settings(conn: sqlite3.Connection, timeline_id: int) -> TimelineSettings:
    """Get a timeline's settings, creating them from the defaults if missing."""
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM settings WHERE timeline_id = ? ORDER BY id LIMIT 1',
                   (timeline_id,))
    row = cursor.fetchone()
    if row is None:
        logger.info(f"Creating default settings for timeline {timeline_id}")
        _insert_default_settings(conn, timeline_id)
        cursor.execute('SELECT * FROM settings WHERE timeline_id = ? ORDER BY id LIMIT 1',
                       (timeline_id,))
        row = cursor.fetchone()
    return TimelineSettings.from_row(row)


def update_timeline_settings(conn: sqlite3.Connection, timeline_id: int,
                             **fields: Any) -> TimelineSettings:
    """Update some of a timeline's settings.

    Raises:
        ValueError: If a field is not a known setting
    """
    unknown = [name for name in fields if name not in SETTINGS_FIELDS]
    if unknown:
        raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

    with transaction(conn):
        settings = get_timeline_settings(conn, timeline_id)
        if fields:
            assignments = ', '.join(f'{name} = ?' for name in fields)
            conn.execute(
                f'UPDATE settings SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?',
                tuple(fields.values()) + (settings.id,)
            )
    return get_timeline_settings(conn, timeline_id)


def get_timeline_with_settings(conn: sqlite3.Connection,
                               timeline_id: int) -> Optional[Timeline]:
    """Get a timeline with its settings attached as .settings."""
    timeline = get_timeline(conn, timeline_id)
    if timeline is None:
        return None
    timeline.settings = get_timeline_settings(conn, timeline_id)
    return timeline
