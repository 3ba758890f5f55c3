#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Move pictures from per-item ownership to shared references.

Older databases stored one pictures row per item (pictures.item_id), and the
oldest kept the image itself as a base64 string in pictures.picture. This
migration:

1. extracts any embedded base64 images into files under the media root,
2. finds byte-identical files and keeps the lowest id of each group,
3. rebuilds pictures without item_id/picture,
4. creates one item_pictures row per former owner, pointing duplicates at
   the kept picture.

Files of discarded duplicates are returned so they are deleted only after the
transaction commits.
"""

import os
import base64
import logging
import sqlite3
from functools import partial
from io import BytesIO
from typing import Dict, List, Optional

from PIL import Image, UnidentifiedImageError

from story_timeline.db_sqlite import get_table_columns, shadow_table_ddl
from story_timeline.models.image import Picture
from story_timeline.utils.files import file_sha256, remove_files, unique_image_name

logger = logging.getLogger(__name__)

LEGACY_MEDIA_DIR = 'legacy'


def needs_migration(conn: sqlite3.Connection) -> bool:
    return 'item_id' in get_table_columns(conn, 'pictures')


def _decode_embedded(data: str) -> bytes:
    if data.startswith('data:') and ',' in data:
        data = data.split(',', 1)[1]
    return base64.b64decode(data)


def extract_embedded_pictures(conn: sqlite3.Connection, media_root: Optional[str]) -> int:
    """Write base64 pictures to files and fill in their file metadata.

    Returns:
        Number of pictures extracted
    """
    if 'picture' not in get_table_columns(conn, 'pictures'):
        return 0

    cursor = conn.cursor()
    cursor.execute('''
    SELECT p.id, p.picture, p.title, i.timeline_id
    FROM pictures p
    LEFT JOIN items i ON i.id = p.item_id
    WHERE p.picture IS NOT NULL AND p.picture != ''
      AND (p.file_path IS NULL OR p.file_path = '')
    ORDER BY p.id
    ''')
    rows = cursor.fetchall()
    if not rows:
        return 0
    if not media_root:
        raise ValueError("A media root is required to extract embedded pictures")

    for row in rows:
        data = _decode_embedded(row['picture'])
        try:
            with Image.open(BytesIO(data)) as img:
                width, height = img.size
                image_format = img.format or 'PNG'
        except UnidentifiedImageError as e:
            raise ValueError(f"Picture {row['id']} does not contain a readable image") from e

        folder = str(row['timeline_id']) if row['timeline_id'] is not None else LEGACY_MEDIA_DIR
        target_dir = os.path.join(media_root, folder)
        os.makedirs(target_dir, exist_ok=True)
        file_name = unique_image_name(_extension_for(image_format))
        file_path = os.path.join(target_dir, file_name)
        conn.call_on_rollback(partial(remove_files, [file_path]))
        with open(file_path, 'wb') as f:
            f.write(data)

        cursor.execute('''
        UPDATE pictures
        SET file_path = ?, file_name = ?, file_size = ?, file_type = ?, width = ?, height = ?
        WHERE id = ?
        ''', (file_path, file_name, len(data), Image.MIME.get(image_format, 'image/png'),
              width, height, row['id']))
        logger.info(f"Extracted embedded picture {row['id']} to {file_path}")

    return len(rows)


def _extension_for(image_format: str) -> str:
    if image_format.upper() == 'JPEG':
        return '.jpg'
    return f'.{image_format.lower()}'


def find_duplicate_pictures(conn: sqlite3.Connection) -> Dict[int, int]:
    """Map each duplicate picture id to the lowest id with identical file bytes."""
    cursor = conn.cursor()
    cursor.execute('SELECT id, file_path FROM pictures ORDER BY id')

    masters: Dict[str, int] = {}
    duplicates: Dict[int, int] = {}
    for row in cursor.fetchall():
        path = row['file_path']
        if not path or not os.path.isfile(path):
            continue
        try:
            digest = file_sha256(path)
        except OSError as e:
            logger.warning(f"Could not hash {path}: {e}")
            continue
        if digest in masters:
            duplicates[row['id']] = masters[digest]
        else:
            masters[digest] = row['id']
    return duplicates


def migrate(conn: sqlite3.Connection, media_root: Optional[str] = None) -> List[str]:
    """Rebuild pictures as shared records referenced through item_pictures."""
    cursor = conn.cursor()

    extract_embedded_pictures(conn, media_root)

    cursor.execute('SELECT id, item_id, file_path FROM pictures ORDER BY id')
    old_rows = cursor.fetchall()
    paths = {row['id']: row['file_path'] for row in old_rows}

    duplicates = find_duplicate_pictures(conn)
    obsolete_files = [
        paths[dup_id] for dup_id, master_id in duplicates.items()
        if paths[dup_id] and paths[dup_id] != paths[master_id]
    ]
    if duplicates:
        logger.info(f"Found {len(duplicates)} duplicate pictures")

    table = Picture.__table__
    existing_columns = set(get_table_columns(conn, 'pictures'))
    copy_columns = ', '.join(c.name for c in table.columns if c.name in existing_columns)

    cursor.execute('DROP TABLE IF EXISTS pictures_new')
    cursor.execute(shadow_table_ddl(table, 'pictures_new'))
    for row in old_rows:
        if row['id'] in duplicates:
            continue
        cursor.execute(
            f'INSERT INTO pictures_new ({copy_columns}) '
            f'SELECT {copy_columns} FROM pictures WHERE id = ?',
            (row['id'],)
        )

    cursor.execute('DROP TABLE pictures')
    cursor.execute('ALTER TABLE pictures_new RENAME TO pictures')

    references = 0
    for row in old_rows:
        if row['item_id'] is None:
            continue
        picture_id = duplicates.get(row['id'], row['id'])
        cursor.execute('''
        INSERT OR IGNORE INTO item_pictures (item_id, picture_id)
        SELECT ?, ? WHERE EXISTS (SELECT 1 FROM items WHERE id = ?)
        ''', (row['item_id'], picture_id, row['item_id']))
        references += cursor.rowcount

    logger.info(f"Created {references} picture references from {len(old_rows)} pictures")
    return obsolete_files
