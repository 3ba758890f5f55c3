import os
import sqlite3

import pytest

from conftest import count_rows
from story_timeline.items import add_item, get_item
from story_timeline.models import DEFAULT_SETTINGS
from story_timeline.timelines import (convert_subtick, create_timeline, delete_timeline,
                                      ensure_default_timeline, get_all_timelines, get_timeline,
                                      get_timeline_settings, get_timeline_with_settings,
                                      update_timeline, update_timeline_settings)


@pytest.mark.parametrize('first, second', [(4, 8), (8, 4), (12, 7), (7, 4), (24, 100)])
def test_convert_subtick_round_trip_within_one(first, second):
    for subtick in range(first):
        there = convert_subtick(subtick, first, second)
        back = convert_subtick(there, second, first)
        assert abs(back - subtick) <= 1


def test_convert_subtick_rounds_halves_up():
    assert convert_subtick(1, 4, 2) == 1
    assert convert_subtick(2, 4, 8) == 4
    assert convert_subtick(3, 0, 8) == 3


def test_create_timeline_defaults(conn):
    timeline_id = create_timeline(conn)
    timeline = get_timeline(conn, timeline_id)
    assert timeline.title == 'New Timeline'
    assert timeline.author == ''
    assert timeline.granularity == 4

    settings = get_timeline_settings(conn, timeline_id)
    assert settings.font == 'Arial'
    assert settings.show_guides is True
    assert settings.use_custom_css is False
    assert settings.display_radius == 10


def test_duplicate_title_and_author_is_rejected(conn):
    create_timeline(conn, title='Saga', author='Ann')
    with pytest.raises(sqlite3.IntegrityError):
        create_timeline(conn, title='Saga', author='Ann')
    create_timeline(conn, title='Saga', author='Bob')


def test_get_missing_timeline_returns_none(conn):
    assert get_timeline(conn, 999) is None
    assert get_timeline_with_settings(conn, 999) is None
    assert update_timeline(conn, 999, title='x') is None
    assert delete_timeline(conn, 999) is False


def test_get_all_timelines_aggregates(conn, timeline_id):
    empty_id = create_timeline(conn, title='Empty', author='A')
    add_item(conn, timeline_id, {'title': 'Battle', 'year': 1000, 'subtick': 0})
    add_item(conn, timeline_id, {'title': 'Reign', 'type': 'Period', 'year': 900,
                                 'subtick': 0, 'end_year': 1200, 'end_subtick': 0})

    timelines = {t.id: t for t in get_all_timelines(conn)}
    assert timelines[timeline_id].item_count == 2
    assert timelines[timeline_id].min_year == 900
    assert timelines[timeline_id].max_year == 1200
    assert timelines[timeline_id].year_range == '900 - 1200'
    assert timelines[empty_id].item_count == 0
    assert timelines[empty_id].year_range == ' - '


def test_get_all_timelines_orders_by_title(conn):
    create_timeline(conn, title='Beta', author='A')
    create_timeline(conn, title='Alpha', author='Z')
    create_timeline(conn, title='Alpha', author='B')
    assert [(t.title, t.author) for t in get_all_timelines(conn)] == [
        ('Alpha', 'B'), ('Alpha', 'Z'), ('Beta', 'A')]


def test_granularity_change_reprojects_items(conn, timeline_id):
    item_id = add_item(conn, timeline_id, {'title': 'Span', 'type': 'Period', 'year': 10,
                                           'subtick': 1, 'end_year': 12, 'end_subtick': 3})

    update_timeline(conn, timeline_id, granularity=8)
    item = get_item(conn, item_id)
    assert (item.subtick, item.end_subtick) == (2, 6)
    assert (item.original_subtick, item.original_end_subtick) == (1, 3)
    assert item.creation_granularity == 4

    update_timeline(conn, timeline_id, granularity=4)
    item = get_item(conn, item_id)
    assert (item.subtick, item.end_subtick) == (1, 3)


def test_update_timeline_keeps_unspecified_fields(conn, timeline_id):
    timeline = update_timeline(conn, timeline_id, description='Updated')
    assert timeline.title == 'T'
    assert timeline.author == 'A'
    assert timeline.description == 'Updated'
    assert timeline.granularity == 4


def test_settings_are_recreated_when_missing(conn, timeline_id):
    conn.execute('DELETE FROM settings WHERE timeline_id = ?', (timeline_id,))
    settings = get_timeline_settings(conn, timeline_id)
    assert settings.pixels_per_subtick == DEFAULT_SETTINGS['pixels_per_subtick']
    assert count_rows(conn, 'settings', 'timeline_id = ?', (timeline_id,)) == 1


def test_update_timeline_settings(conn, timeline_id):
    settings = update_timeline_settings(conn, timeline_id, font='Georgia',
                                        use_custom_css=True, custom_css='body {}')
    assert settings.font == 'Georgia'
    assert settings.use_custom_css is True
    assert settings.custom_css == 'body {}'
    assert settings.window_size_x == 1000

    with pytest.raises(ValueError):
        update_timeline_settings(conn, timeline_id, colour='red')


def test_timeline_with_settings(conn, timeline_id):
    timeline = get_timeline_with_settings(conn, timeline_id)
    assert timeline.settings.timeline_id == timeline_id
    assert timeline.to_dict()['settings']['font'] == 'Arial'


def test_ensure_default_timeline(conn):
    created = ensure_default_timeline(conn)
    assert get_timeline(conn, created).title == 'New Timeline'
    assert ensure_default_timeline(conn) is None


def test_delete_timeline_cascades(conn, timeline_id, media_root, make_image):
    other_id = create_timeline(conn, title='Other', author='A')
    kept_item = add_item(conn, other_id, {'title': 'Elsewhere', 'year': 1, 'subtick': 0,
                                          'tags': ['shared']})
    add_item(conn, timeline_id, {
        'title': 'Doomed', 'year': 5, 'subtick': 1, 'tags': ['shared', 'local'],
        'story_refs': [{'story_id': 's1', 'story_title': 'Saga'}],
        'pictures': [{'temp_path': make_image()}],
    }, media_root=media_root)
    timeline_dir = os.path.join(media_root, str(timeline_id))
    assert os.path.isdir(timeline_dir)

    assert delete_timeline(conn, timeline_id, media_root=media_root) is True

    assert get_timeline(conn, timeline_id) is None
    assert count_rows(conn, 'items', 'timeline_id = ?', (timeline_id,)) == 0
    assert count_rows(conn, 'settings', 'timeline_id = ?', (timeline_id,)) == 0
    assert count_rows(conn, 'item_story_refs') == 0
    assert count_rows(conn, 'item_pictures') == 0
    assert count_rows(conn, 'pictures') == 0
    assert count_rows(conn, 'item_tags') == 1
    assert not os.path.exists(timeline_dir)
    assert get_item(conn, kept_item).tags == ['shared']
