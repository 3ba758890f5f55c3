import os

import pytest
from PIL import Image

from story_timeline.db_sqlite import initialize_database
from story_timeline.timelines import create_timeline


@pytest.fixture
def media_root(tmp_path):
    path = tmp_path / 'media' / 'pictures'
    path.mkdir(parents=True)
    return str(path)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'timeline.db')


@pytest.fixture
def conn(db_path, media_root):
    connection = initialize_database(db_path, media_root=media_root)
    yield connection
    connection.close()


@pytest.fixture
def timeline_id(conn):
    return create_timeline(conn, title='T', author='A', granularity=4)


@pytest.fixture
def make_image(tmp_path):
    """Write a solid-colour image to a scratch directory and return its path."""
    source_dir = tmp_path / 'sources'
    source_dir.mkdir(exist_ok=True)

    def _make(name='source.png', size=(64, 48), color=(200, 30, 30)):
        path = source_dir / name
        Image.new('RGB', size, color).save(str(path))
        return str(path)

    return _make


def count_rows(conn, table, where='', params=()):
    query = f'SELECT COUNT(*) FROM {table}'
    if where:
        query += f' WHERE {where}'
    return conn.execute(query, params).fetchone()[0]


def file_count(directory):
    if not os.path.isdir(directory):
        return 0
    return len([name for name in os.listdir(directory)
                if os.path.isfile(os.path.join(directory, name))])
