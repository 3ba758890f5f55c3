import base64
import os
import sqlite3
from io import BytesIO

import pytest
from PIL import Image

from conftest import count_rows
from story_timeline.db_sqlite import (create_connection, get_table_columns, initialize_database,
                                      table_exists)
from story_timeline.errors import MigrationError
from story_timeline.characters import get_character, update_character
from story_timeline.items import get_item, update_item
from story_timeline.migration_manager import (MIGRATIONS, SCHEMA_VERSION, get_completed_migrations,
                                              get_pending_migrations, get_schema_version,
                                              run_migrations)
from story_timeline.migrations.add_missing_columns import add_column_if_missing
from story_timeline.migrations.consolidate_settings_css import merge_css
from story_timeline.stories import update_story
from story_timeline.timelines import (get_timeline_by_title, get_timeline_settings, update_timeline,
                                      update_timeline_settings)


def png_bytes(color, size=(32, 24)):
    buffer = BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def write_file(path, data):
    with open(path, 'wb') as f:
        f.write(data)
    return path


@pytest.fixture
def legacy_db(tmp_path):
    """Build a database in the single-universe layout with per-item pictures."""
    files = tmp_path / 'old_files'
    files.mkdir()
    red = png_bytes((255, 0, 0))
    paths = {
        'duplicate': write_file(str(files / 'red_copy.png'), red),
        'blue': write_file(str(files / 'blue.png'), png_bytes((0, 0, 255))),
        'ghost': write_file(str(files / 'green.png'), png_bytes((0, 255, 0))),
    }

    db_path = str(tmp_path / 'legacy.db')
    conn = sqlite3.connect(db_path)
    conn.executescript('''
    CREATE TABLE universe_data (
        id INTEGER PRIMARY KEY, title TEXT, author TEXT, description TEXT,
        start_year INTEGER, granularity INTEGER
    );
    CREATE TABLE items (
        id TEXT PRIMARY KEY, title TEXT NOT NULL, description TEXT,
        year INTEGER, subtick INTEGER, type_id INTEGER DEFAULT 1
    );
    CREATE TABLE settings (
        id INTEGER PRIMARY KEY, font TEXT,
        custom_main_css TEXT, custom_items_css TEXT,
        use_main_css BOOLEAN, use_items_css BOOLEAN
    );
    CREATE TABLE pictures (
        id INTEGER PRIMARY KEY, item_id TEXT, picture TEXT,
        file_path TEXT, file_name TEXT, title TEXT, description TEXT
    );
    CREATE TABLE stories (id TEXT PRIMARY KEY, title TEXT NOT NULL, description TEXT);
    CREATE TABLE characters (id TEXT PRIMARY KEY, name TEXT NOT NULL);
    ''')
    conn.execute("INSERT INTO universe_data VALUES (1, 'Old World', 'Ann', 'before', 10, 8)")
    conn.execute("INSERT INTO items (id, title, year, subtick) VALUES ('i1', 'First', 10, 2)")
    conn.execute("INSERT INTO items (id, title, year, subtick) VALUES ('i2', 'Second', 11, 5)")
    conn.execute("INSERT INTO stories (id, title) VALUES ('s1', 'Saga')")
    conn.execute("INSERT INTO characters (id, name) VALUES ('c1', 'Old Hero')")
    conn.execute('''
    INSERT INTO settings (id, font, custom_main_css, custom_items_css, use_main_css, use_items_css)
    VALUES (1, 'Georgia', '  body {}  ', '.item {}', 1, 0)
    ''')
    conn.execute('INSERT INTO pictures (id, item_id, picture, title) VALUES (?, ?, ?, ?)',
                 (1, 'i1', base64.b64encode(red).decode('ascii'), 'embedded'))
    conn.execute('INSERT INTO pictures (id, item_id, file_path, file_name) VALUES (?, ?, ?, ?)',
                 (2, 'i2', paths['duplicate'], 'red_copy.png'))
    conn.execute('INSERT INTO pictures (id, item_id, file_path, file_name) VALUES (?, ?, ?, ?)',
                 (3, 'i1', paths['blue'], 'blue.png'))
    conn.execute('INSERT INTO pictures (id, item_id, file_path, file_name) VALUES (?, ?, ?, ?)',
                 (4, 'ghost', paths['ghost'], 'green.png'))
    conn.commit()
    conn.close()
    return db_path, paths


def test_legacy_database_is_upgraded(legacy_db, media_root):
    db_path, paths = legacy_db
    conn = initialize_database(db_path, media_root=media_root)
    try:
        assert get_schema_version(conn) == SCHEMA_VERSION
        assert [m.migration_name for m in get_completed_migrations(conn)] == [
            'add_missing_columns', 'universe_data_to_timelines',
            'consolidate_settings_css', 'picture_references',
        ]
        assert not table_exists(conn, 'universe_data')

        timeline = get_timeline_by_title(conn, 'Old World', 'Ann')
        assert timeline.granularity == 8
        assert timeline.start_year == 10
        assert count_rows(conn, 'items', 'timeline_id = ?', (timeline.id,)) == 2

        settings = get_timeline_settings(conn, timeline.id)
        assert settings.font == 'Georgia'
        assert settings.custom_css == '/* Main CSS */\nbody {}\n\n/* Items CSS */\n.item {}'
        assert settings.use_custom_css is True
        assert 'custom_main_css' not in get_table_columns(conn, 'settings')

        columns = get_table_columns(conn, 'pictures')
        assert 'item_id' not in columns
        assert 'picture' not in columns

        first = get_item(conn, 'i1')
        second = get_item(conn, 'i2')
        assert [p.id for p in first.pictures] == [1, 3]
        assert [p.id for p in second.pictures] == [1]

        extracted = first.pictures[0]
        assert extracted.title == 'embedded'
        assert (extracted.width, extracted.height) == (32, 24)
        assert os.path.dirname(extracted.file_path) == os.path.join(media_root, str(timeline.id))
        assert os.path.isfile(extracted.file_path)

        # Duplicate and unreferenced pictures are gone with their files.
        assert count_rows(conn, 'pictures') == 2
        assert not os.path.exists(paths['duplicate'])
        assert not os.path.exists(paths['ghost'])
        assert os.path.exists(paths['blue'])
    finally:
        conn.close()


def test_upgraded_tables_accept_current_writes(legacy_db, media_root):
    db_path, _ = legacy_db
    conn = initialize_database(db_path, media_root=media_root)
    try:
        for table in ('items', 'settings', 'stories', 'characters'):
            assert 'updated_at' in get_table_columns(conn, table)
        assert 'timeline_id' in get_table_columns(conn, 'characters')

        assert update_item(conn, 'i1', {'title': 'Renamed'}).title == 'Renamed'

        timeline = get_timeline_by_title(conn, 'Old World', 'Ann')
        assert update_timeline(conn, timeline.id, granularity=4).granularity == 4
        assert update_timeline_settings(conn, timeline.id, font='Arial').font == 'Arial'
        assert update_story(conn, 's1', title='Saga II').title == 'Saga II'

        assert update_character(conn, 'c1', {'race': 'human'}) is True
        assert get_character(conn, 'c1').race == 'human'
    finally:
        conn.close()


def test_upgraded_database_has_nothing_pending(legacy_db, media_root):
    db_path, _ = legacy_db
    initialize_database(db_path, media_root=media_root).close()

    conn = create_connection(db_path)
    try:
        assert get_pending_migrations(conn) == []
        assert run_migrations(conn, media_root) == []
        assert len(get_completed_migrations(conn)) == len(MIGRATIONS)
    finally:
        conn.close()


def test_fresh_database_needs_no_migrations(conn):
    assert get_pending_migrations(conn) == []
    assert get_completed_migrations(conn) == []


def test_failed_migration_is_rolled_back(tmp_path, media_root):
    db_path = str(tmp_path / 'broken.db')
    raw = sqlite3.connect(db_path)
    raw.executescript('''
    CREATE TABLE items (id TEXT PRIMARY KEY, title TEXT NOT NULL);
    CREATE TABLE pictures (id INTEGER PRIMARY KEY, item_id TEXT, picture TEXT, file_path TEXT);
    ''')
    raw.execute("INSERT INTO items (id, title) VALUES ('a', 'A')")
    raw.execute('INSERT INTO pictures (id, item_id, picture) VALUES (?, ?, ?)',
                (1, 'a', base64.b64encode(png_bytes((1, 2, 3))).decode('ascii')))
    raw.execute('INSERT INTO pictures (id, item_id, picture) VALUES (?, ?, ?)',
                (2, 'a', base64.b64encode(b'not an image').decode('ascii')))
    raw.commit()
    raw.close()

    with pytest.raises(MigrationError) as excinfo:
        initialize_database(db_path, media_root=media_root)
    assert excinfo.value.migration_name == 'picture_references'

    conn = create_connection(db_path)
    try:
        assert 'item_id' in get_table_columns(conn, 'pictures')
        assert count_rows(conn, 'item_pictures') == 0
        completed = [m.migration_name for m in get_completed_migrations(conn)]
        assert completed == ['add_missing_columns']
        assert conn.execute('PRAGMA foreign_keys').fetchone()[0] == 1
    finally:
        conn.close()
    assert [f for _, _, files in os.walk(media_root) for f in files] == []


def test_add_column_if_missing(conn):
    assert add_column_if_missing(conn, 'notes', 'mood', 'TEXT', "it's fine") is True
    assert add_column_if_missing(conn, 'notes', 'mood', 'TEXT') is False
    assert add_column_if_missing(conn, 'no_such_table', 'x', 'TEXT') is False

    conn.execute('INSERT INTO notes (year, subtick, content) VALUES (1, 0, ?)', ('x',))
    assert conn.execute('SELECT mood FROM notes').fetchone()[0] == "it's fine"


@pytest.mark.parametrize('custom, main, items, expected', [
    (None, None, None, ''),
    ('a {}', None, '  ', 'a {}'),
    (' a {} ', 'b {}', None, 'a {}\n\n/* Main CSS */\nb {}'),
    ('', '', 'c {}', '/* Items CSS */\nc {}'),
])
def test_merge_css(custom, main, items, expected):
    assert merge_css(custom, main, items) == expected
