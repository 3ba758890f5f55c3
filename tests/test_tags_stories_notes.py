from conftest import count_rows
from story_timeline.items import add_item, get_item
from story_timeline.notes import add_note, delete_note, get_notes
from story_timeline.stories import (add_story, delete_story, get_all_stories,
                                    get_all_story_references, get_item_story_references,
                                    get_or_create_story, get_story, set_item_story_references,
                                    update_story)
from story_timeline.tags import (add_tags_to_item, delete_tag, get_all_tags,
                                 get_all_tags_with_counts, get_item_tags, get_or_create_tag,
                                 update_item_tags)


def _item(conn, timeline_id, title='x', **extra):
    data = {'title': title, 'year': 1, 'subtick': 0}
    data.update(extra)
    return add_item(conn, timeline_id, data)


# Tags

def test_get_or_create_tag_is_stable(conn):
    first = get_or_create_tag(conn, 'war')
    assert get_or_create_tag(conn, 'war') == first
    assert get_or_create_tag(conn, 'peace') != first
    assert get_all_tags(conn) == ['peace', 'war']


def test_tags_are_deduplicated_per_item(conn, timeline_id):
    item_id = _item(conn, timeline_id)
    add_tags_to_item(conn, item_id, ['war', ' war ', '', None, 'siege'])
    assert get_item_tags(conn, item_id) == ['siege', 'war']

    update_item_tags(conn, item_id, ['peace'])
    assert get_item_tags(conn, item_id) == ['peace']
    assert 'war' in get_all_tags(conn)


def test_tag_counts(conn, timeline_id):
    a = _item(conn, timeline_id, 'a', tags=['war', 'north'])
    b = _item(conn, timeline_id, 'b', tags=['war'])
    get_or_create_tag(conn, 'unused')

    tags = get_all_tags_with_counts(conn)
    assert [(t.name, t.item_count) for t in tags] == [('war', 2), ('north', 1), ('unused', 0)]
    assert sorted(tags[0].item_ids) == sorted([a, b])
    assert tags[2].item_ids == []
    assert tags[0].to_dict()['item_count'] == 2


def test_delete_tag(conn, timeline_id):
    item_id = _item(conn, timeline_id, tags=['war', 'north'])
    war = get_or_create_tag(conn, 'war')

    assert delete_tag(conn, war) is True
    assert get_item_tags(conn, item_id) == ['north']
    assert delete_tag(conn, war) is False


# Stories

def test_story_crud(conn):
    assert add_story(conn, 's1', 'Winter', 'cold') == 's1'
    add_story(conn, 's1', 'Ignored')
    assert get_story(conn, 's1').title == 'Winter'

    story = update_story(conn, 's1', description='colder')
    assert (story.title, story.description) == ('Winter', 'colder')
    assert update_story(conn, 'missing', title='x') is None
    assert get_story(conn, 'missing') is None


def test_get_or_create_story(conn):
    assert get_or_create_story(conn, None, 's1') is None
    assert get_or_create_story(conn, 'Winter', '') is None

    created = get_or_create_story(conn, 'Winter', 's1')
    assert (created.id, created.title) == ('s1', 'Winter')
    assert get_or_create_story(conn, 'Winter', 's1').id == 's1'
    assert count_rows(conn, 'stories') == 1


def test_item_story_references(conn, timeline_id):
    item_id = _item(conn, timeline_id, story_refs=[
        {'story_id': 's2', 'story_title': 'Spring'},
        {'story_id': 's1', 'story_title': 'Autumn'},
        {'story_title': 'No id'},
    ])
    assert [s.title for s in get_item_story_references(conn, item_id)] == ['Autumn', 'Spring']
    assert [s.id for s in get_all_stories(conn)] == ['s1', 's2']

    set_item_story_references(conn, item_id, [{'story_id': 's2', 'story_title': 'Spring'}])
    assert [(r.item_id, r.story_id, r.story_title) for r in get_all_story_references(conn)] == [
        (item_id, 's2', 'Spring')]


def test_delete_story_clears_references(conn, timeline_id):
    add_story(conn, 's1', 'Winter')
    item_id = _item(conn, timeline_id, story_id='s1',
                    story_refs=[{'story_id': 's1', 'story_title': 'Winter'}])

    assert delete_story(conn, 's1') is True
    item = get_item(conn, item_id)
    assert item.story_id is None
    assert item.story_refs == []
    assert delete_story(conn, 's1') is False


# Notes

def test_notes_by_position(conn):
    late = add_note(conn, 'late', 10, 2)
    early = add_note(conn, 'early', 10, 0)
    other = add_note(conn, 'other year', 11, 0)

    assert [n.id for n in get_notes(conn)] == [early, late, other]
    assert [n.content for n in get_notes(conn, year=10)] == ['early', 'late']
    assert [n.content for n in get_notes(conn, year=10, subtick=2)] == ['late']
    assert get_notes(conn, year=99) == []

    assert delete_note(conn, early) is True
    assert delete_note(conn, early) is False
    assert [n.id for n in get_notes(conn, year=10)] == [late]
