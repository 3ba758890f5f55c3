#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Free-standing notes pinned to a point in time.
"""

import sqlite3
from typing import List, Optional

from story_timeline.models import Note


def add_note(conn: sqlite3.Connection, content: str, year: int, subtick: int) -> int:
    cursor = conn.cursor()
    cursor.execute('''
    INSERT INTO notes (year, subtick, content) VALUES (?, ?, ?)
    ''', (year, subtick, content))
    return cursor.lastrowid


def get_notes(conn: sqlite3.Connection, year: Optional[int] = None,
              subtick: Optional[int] = None) -> List[Note]:
    """Get notes, optionally only those at a given year and subtick."""
    query = 'SELECT * FROM notes'
    conditions = []
    params = []
    if year is not None:
        conditions.append('year = ?')
        params.append(year)
    if subtick is not None:
        conditions.append('subtick = ?')
        params.append(subtick)
    if conditions:
        query += ' WHERE ' + ' AND '.join(conditions)
    query += ' ORDER BY year, subtick, created_at, id'

    cursor = conn.cursor()
    cursor.execute(query, params)
    return [Note.from_row(row) for row in cursor.fetchall()]


def delete_note(conn: sqlite3.Connection, note_id: int) -> bool:
    cursor = conn.execute('DELETE FROM notes WHERE id = ?', (note_id,))
    return cursor.rowcount > 0
