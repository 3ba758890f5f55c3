#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Media reference management for the Story Timeline application.

Pictures are shared records: items point at them through item_pictures and a
picture lives as long as at least one reference exists. Files are removed
from disk only after the transaction that deleted their rows has committed.
"""

import os
import shutil
import logging
import mimetypes
import sqlite3
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Union

from PIL import Image

from story_timeline.config import (JPEG_QUALITY, MAX_IMAGE_FILE_SIZE, MAX_IMAGE_HEIGHT,
                                   MAX_IMAGE_WIDTH)
from story_timeline.db_sqlite import transaction
from story_timeline.errors import MediaError
from story_timeline.models import BaseModel, Picture
from story_timeline.utils.files import file_sha256, remove_files, unique_image_name

# Set up logging
logger = logging.getLogger(__name__)

PictureInput = Union[Dict[str, Any], Picture]


def timeline_media_dir(media_root: str, timeline_id: Union[int, str]) -> str:
    """Get the directory holding a timeline's picture files."""
    return os.path.join(media_root, str(timeline_id))


# Reference counting
def add_image_reference(conn: sqlite3.Connection, item_id: str, picture_id: int) -> bool:
    """Reference a picture from an item.

    Returns:
        True if a new reference was created, False if it already existed
    """
    cursor = conn.cursor()
    cursor.execute('''
    INSERT OR IGNORE INTO item_pictures (item_id, picture_id)
    VALUES (?, ?)
    ''', (item_id, picture_id))
    return cursor.rowcount > 0


def remove_image_reference(conn: sqlite3.Connection, item_id: str, picture_id: int) -> bool:
    """Drop one item's reference to a picture. The picture row is kept."""
    cursor = conn.cursor()
    cursor.execute('''
    DELETE FROM item_pictures WHERE item_id = ? AND picture_id = ?
    ''', (item_id, picture_id))
    return cursor.rowcount > 0


def get_picture_usage_count(conn: sqlite3.Connection, picture_id: int) -> int:
    """Count the items referencing a picture."""
    cursor = conn.cursor()
    cursor.execute('SELECT COUNT(*) FROM item_pictures WHERE picture_id = ?', (picture_id,))
    return cursor.fetchone()[0]


# Lookups
def get_picture(conn: sqlite3.Connection, picture_id: int) -> Optional[Picture]:
    cursor = conn.cursor()
    cursor.execute('SELECT * FROM pictures WHERE id = ?', (picture_id,))
    return Picture.from_row(cursor.fetchone())


def get_item_pictures(conn: sqlite3.Connection, item_id: str) -> List[Picture]:
    """Get the pictures referenced by an item, in the order they were attached."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT p.*
    FROM pictures p
    JOIN item_pictures ip ON ip.picture_id = p.id
    WHERE ip.item_id = ?
    ORDER BY ip.id
    ''', (item_id,))
    return [Picture.from_row(row) for row in cursor.fetchall()]


def get_all_pictures(conn: sqlite3.Connection, timeline_id: int) -> List[Picture]:
    """Get the pictures used by a timeline's items.

    Each picture carries usage_count (references from this timeline) and
    linked_items (the referencing item ids). Pictures whose file is missing
    or unreadable are left out.
    """
    cursor = conn.cursor()
    cursor.execute('''
    SELECT p.*,
           COUNT(ip.item_id) AS usage_count,
           GROUP_CONCAT(ip.item_id) AS linked_items
    FROM pictures p
    JOIN item_pictures ip ON ip.picture_id = p.id
    JOIN items i ON i.id = ip.item_id
    WHERE i.timeline_id = ?
    GROUP BY p.id
    ORDER BY p.created_at DESC, p.id DESC
    ''', (timeline_id,))

    pictures = []
    for row in cursor.fetchall():
        picture = Picture.from_row(row)
        picture.linked_items = row['linked_items'].split(',') if row['linked_items'] else []
        if not picture.file_exists:
            logger.warning(f"Picture {picture.id} file missing: {picture.file_path}")
            continue
        pictures.append(picture)
    return pictures


def update_picture_description(conn: sqlite3.Connection, picture_id: int,
                               description: Optional[str]) -> bool:
    cursor = conn.cursor()
    cursor.execute('UPDATE pictures SET description = ? WHERE id = ?', (description, picture_id))
    return cursor.rowcount > 0


# Creating pictures
def insert_picture(conn: sqlite3.Connection, picture_data: Dict[str, Any]) -> int:
    """Insert a metadata-only picture row and return its id."""
    cursor = conn.cursor()
    cursor.execute('''
    INSERT INTO pictures (file_path, file_name, file_size, file_type, width, height, title, description)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ''', (
        picture_data.get('file_path'),
        picture_data.get('file_name'),
        picture_data.get('file_size'),
        picture_data.get('file_type'),
        picture_data.get('width'),
        picture_data.get('height'),
        picture_data.get('title'),
        picture_data.get('description'),
    ))
    return cursor.lastrowid


def _mime_type(image_format: Optional[str], path: str) -> Optional[str]:
    if image_format and image_format in Image.MIME:
        return Image.MIME[image_format]
    return mimetypes.guess_type(path)[0]


def save_new_image(conn: sqlite3.Connection, timeline_id: int, media_root: str,
                   file_info: Union[str, Dict[str, Any]]) -> Picture:
    """Import an image file into the timeline's media directory.

    Images larger than the maximum display size are scaled down to fit it,
    keeping their aspect ratio. Files over the size limit are re-encoded as
    JPEG. Other files are copied unchanged. The new file is removed again if
    the surrounding transaction rolls back.

    Args:
        conn: Database connection
        timeline_id: Timeline whose media directory receives the file
        media_root: Root directory for picture files
        file_info: Source path, or a dict with file_path/temp_path and
            optional file_name, title and description

    Returns:
        The new picture record

    Raises:
        MediaError: If the source cannot be read or the copy cannot be written
    """
    if isinstance(file_info, str):
        file_info = {'file_path': file_info}

    source = file_info.get('temp_path') or file_info.get('file_path')
    if not source or not os.path.isfile(source):
        raise MediaError("Source image not found", source)

    original_name = file_info.get('file_name') or os.path.basename(source)
    stem, extension = os.path.splitext(original_name)

    target_dir = timeline_media_dir(media_root, timeline_id)
    source_size = os.path.getsize(source)

    try:
        os.makedirs(target_dir, exist_ok=True)
        with Image.open(source) as img:
            image_format = img.format
            needs_resize = img.width > MAX_IMAGE_WIDTH or img.height > MAX_IMAGE_HEIGHT
            needs_reencode = source_size > MAX_IMAGE_FILE_SIZE

            if not extension and image_format:
                extension = '.jpg' if image_format == 'JPEG' else f'.{image_format.lower()}'

            if needs_reencode:
                extension = '.jpg'
            target_path = os.path.join(target_dir, unique_image_name(extension))
            conn.call_on_rollback(partial(remove_files, [target_path]))

            if needs_resize or needs_reencode:
                output = img.copy()
                if needs_resize:
                    output.thumbnail((MAX_IMAGE_WIDTH, MAX_IMAGE_HEIGHT), Image.Resampling.LANCZOS)
                save_kwargs = {}
                if needs_reencode:
                    if output.mode not in ('RGB', 'L'):
                        output = output.convert('RGB')
                    image_format = 'JPEG'
                    save_kwargs['quality'] = JPEG_QUALITY
                output.save(target_path, format=image_format, **save_kwargs)
                width, height = output.size
                logger.info(f"Processed image {source}: {img.size} -> {output.size}"
                            f"{' as JPEG' if needs_reencode else ''}")
            else:
                shutil.copyfile(source, target_path)
                width, height = img.size
    except OSError as e:
        raise MediaError(f"Could not import image: {e}", source) from e

    picture_id = insert_picture(conn, {
        'file_path': target_path,
        'file_name': os.path.basename(target_path),
        'file_size': os.path.getsize(target_path),
        'file_type': _mime_type(image_format, target_path),
        'width': width,
        'height': height,
        'title': file_info.get('title') or stem,
        'description': file_info.get('description') or '',
    })
    logger.debug(f"Saved picture {picture_id} at {target_path}")
    return get_picture(conn, picture_id)


def _as_dict(picture: PictureInput) -> Dict[str, Any]:
    if isinstance(picture, BaseModel):
        data = picture.to_dict()
        data['is_reference'] = True
        return data
    return picture


def add_pictures_to_item(conn: sqlite3.Connection, item_id: str,
                         pictures: Optional[Iterable[PictureInput]],
                         timeline_id: Optional[int] = None,
                         media_root: Optional[str] = None) -> List[int]:
    """Attach pictures to an item.

    Each entry is either a reference to an existing picture (is_reference or
    is_existing with an id), a new file to import (is_new or temp_path), or
    picture metadata with a file_path that is inserted as-is. Picture records
    are treated as references.

    Returns:
        Ids of the pictures now referenced by the item
    """
    attached = []
    for picture in pictures or []:
        picture = _as_dict(picture)
        if (picture.get('is_reference') or picture.get('is_existing')) and picture.get('id') is not None:
            picture_id = picture['id']
        elif picture.get('is_new') or picture.get('temp_path'):
            if media_root is None or timeline_id is None:
                raise MediaError("A media root and timeline are required to import pictures",
                                 picture.get('temp_path') or picture.get('file_path'))
            picture_id = save_new_image(conn, timeline_id, media_root, picture).id
        elif picture.get('file_path'):
            picture_id = insert_picture(conn, picture)
        else:
            logger.warning(f"Skipping picture entry without id or file for item {item_id}")
            continue

        add_image_reference(conn, item_id, picture_id)
        attached.append(picture_id)
    return attached


def update_item_pictures(conn: sqlite3.Connection, item_id: str,
                         pictures: Optional[Iterable[PictureInput]],
                         timeline_id: Optional[int] = None,
                         media_root: Optional[str] = None) -> List[int]:
    """Replace an item's picture references.

    Pictures that lose their last reference are kept until the next orphan
    cleanup.
    """
    with transaction(conn):
        conn.execute('DELETE FROM item_pictures WHERE item_id = ?', (item_id,))
        attached = []
        for entry in pictures or []:
            entry = _as_dict(entry)
            ids = add_pictures_to_item(conn, item_id, [entry], timeline_id, media_root)
            is_reference = entry.get('is_reference') or entry.get('is_existing')
            if ids and is_reference and 'description' in entry:
                update_picture_description(conn, ids[0], entry['description'])
            attached.extend(ids)
    return attached


# Deleting pictures
def delete_picture(conn: sqlite3.Connection, picture_id: int) -> bool:
    """Delete a picture, every reference to it and its file."""
    with transaction(conn):
        picture = get_picture(conn, picture_id)
        if picture is None:
            return False
        conn.execute('DELETE FROM item_pictures WHERE picture_id = ?', (picture_id,))
        conn.execute('DELETE FROM pictures WHERE id = ?', (picture_id,))
        conn.call_after_commit(partial(remove_files, [picture.file_path]))
    logger.info(f"Deleted picture {picture_id}")
    return True


def find_orphaned_pictures(conn: sqlite3.Connection) -> List[Picture]:
    """Get the pictures no item references."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT p.*
    FROM pictures p
    WHERE NOT EXISTS (SELECT 1 FROM item_pictures ip WHERE ip.picture_id = p.id)
    ORDER BY p.id
    ''')
    return [Picture.from_row(row) for row in cursor.fetchall()]


def find_pictures_exclusive_to_item(conn: sqlite3.Connection, item_id: str) -> List[Picture]:
    """Get the pictures that only this item references."""
    cursor = conn.cursor()
    cursor.execute('''
    SELECT p.*
    FROM pictures p
    JOIN item_pictures ip ON ip.picture_id = p.id
    WHERE ip.item_id = ?
      AND NOT EXISTS (
          SELECT 1 FROM item_pictures other
          WHERE other.picture_id = p.id AND other.item_id != ?
      )
    ''', (item_id, item_id))
    return [Picture.from_row(row) for row in cursor.fetchall()]


def delete_picture_rows(conn: sqlite3.Connection, pictures: List[Picture]) -> None:
    """Delete picture rows and schedule their files for removal after commit."""
    for picture in pictures:
        conn.execute('DELETE FROM pictures WHERE id = ?', (picture.id,))
    if pictures:
        conn.call_after_commit(partial(remove_files, [p.file_path for p in pictures]))


def cleanup_orphaned_images(conn: sqlite3.Connection) -> int:
    """Delete every picture with no references, along with its file.

    Returns:
        Number of pictures removed
    """
    with transaction(conn):
        orphans = find_orphaned_pictures(conn)
        delete_picture_rows(conn, orphans)

    if orphans:
        logger.info(f"Cleaned up {len(orphans)} orphaned pictures")
    else:
        logger.debug("No orphaned pictures found")
    return len(orphans)


def consolidate_duplicate_images(conn: sqlite3.Connection) -> Dict[str, int]:
    """Merge pictures whose files have identical contents.

    The lowest id of each group is kept. References to the others are moved
    to it, or dropped when the item already references it.

    Returns:
        Statistics about the run
    """
    stats = {
        'total_images_analyzed': 0,
        'duplicate_groups_found': 0,
        'duplicates_consolidated': 0,
        'files_deleted': 0,
        'references_updated': 0,
    }

    cursor = conn.cursor()
    cursor.execute('SELECT * FROM pictures ORDER BY id')
    groups: Dict[str, List[Picture]] = {}
    for row in cursor.fetchall():
        picture = Picture.from_row(row)
        if not picture.file_exists:
            continue
        try:
            digest = file_sha256(picture.file_path)
        except OSError as e:
            logger.warning(f"Could not hash {picture.file_path}: {e}")
            continue
        stats['total_images_analyzed'] += 1
        groups.setdefault(digest, []).append(picture)

    obsolete_files = []

    def _delete_files() -> None:
        stats['files_deleted'] = remove_files(obsolete_files)

    with transaction(conn):
        for group in groups.values():
            if len(group) < 2:
                continue
            stats['duplicate_groups_found'] += 1
            master = group[0]
            for duplicate in group[1:]:
                cursor.execute('SELECT item_id FROM item_pictures WHERE picture_id = ?',
                               (duplicate.id,))
                item_ids = [row['item_id'] for row in cursor.fetchall()]
                for item_id in item_ids:
                    add_image_reference(conn, item_id, master.id)
                    stats['references_updated'] += 1
                cursor.execute('DELETE FROM item_pictures WHERE picture_id = ?', (duplicate.id,))
                cursor.execute('DELETE FROM pictures WHERE id = ?', (duplicate.id,))
                stats['duplicates_consolidated'] += 1
                if duplicate.file_path != master.file_path:
                    obsolete_files.append(duplicate.file_path)
        conn.call_after_commit(_delete_files)

    logger.info(f"Duplicate consolidation finished: {stats}")
    return stats
