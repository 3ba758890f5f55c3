import os
import re
import shutil

import pytest
from PIL import Image

from conftest import count_rows, file_count
from story_timeline import media
from story_timeline.errors import MediaError
from story_timeline.items import add_item, get_item, update_item
from story_timeline.media import (add_image_reference, cleanup_orphaned_images,
                                  consolidate_duplicate_images, delete_picture, get_all_pictures,
                                  get_picture, get_picture_usage_count, insert_picture,
                                  remove_image_reference, save_new_image,
                                  update_picture_description)


@pytest.fixture
def two_items(conn, timeline_id):
    first = add_item(conn, timeline_id, {'title': 'one', 'year': 1, 'subtick': 0})
    second = add_item(conn, timeline_id, {'title': 'two', 'year': 2, 'subtick': 0})
    return first, second


def test_save_new_image_copies_small_file(conn, timeline_id, media_root, make_image):
    source = make_image('Castle Gate.png', size=(64, 48))
    picture = save_new_image(conn, timeline_id, media_root, {'file_path': source,
                                                             'description': 'gate'})

    assert os.path.dirname(picture.file_path) == os.path.join(media_root, str(timeline_id))
    assert re.match(r'^img_\d+_[a-z0-9]+\.png$', picture.file_name)
    assert (picture.width, picture.height) == (64, 48)
    assert picture.title == 'Castle Gate'
    assert picture.description == 'gate'
    assert picture.file_type == 'image/png'
    assert picture.file_size == os.path.getsize(picture.file_path)
    with open(source, 'rb') as a, open(picture.file_path, 'rb') as b:
        assert a.read() == b.read()


def test_save_new_image_downscales_large_images(conn, timeline_id, media_root, make_image):
    source = make_image('wide.png', size=(3840, 1000))
    picture = save_new_image(conn, timeline_id, media_root, source)
    assert (picture.width, picture.height) == (1920, 500)
    with Image.open(picture.file_path) as img:
        assert img.size == (1920, 500)


def test_save_new_image_reencodes_oversized_files(conn, timeline_id, media_root, make_image,
                                                  monkeypatch):
    monkeypatch.setattr(media, 'MAX_IMAGE_FILE_SIZE', 10)
    picture = save_new_image(conn, timeline_id, media_root, make_image('heavy.png'))
    assert picture.file_name.endswith('.jpg')
    assert picture.file_type == 'image/jpeg'
    with Image.open(picture.file_path) as img:
        assert img.format == 'JPEG'


def test_save_new_image_rejects_missing_source(conn, timeline_id, media_root, tmp_path):
    with pytest.raises(MediaError):
        save_new_image(conn, timeline_id, media_root, str(tmp_path / 'missing.png'))


def test_save_new_image_rejects_non_images(conn, timeline_id, media_root, tmp_path):
    bogus = tmp_path / 'notes.png'
    bogus.write_text('not an image')
    with pytest.raises(MediaError):
        save_new_image(conn, timeline_id, media_root, str(bogus))


def test_references_are_idempotent_and_counted(conn, two_items):
    first, second = two_items
    picture_id = insert_picture(conn, {'file_path': '/nowhere.png', 'file_name': 'nowhere.png'})

    assert add_image_reference(conn, first, picture_id) is True
    assert add_image_reference(conn, first, picture_id) is False
    add_image_reference(conn, second, picture_id)
    assert get_picture_usage_count(conn, picture_id) == 2

    assert remove_image_reference(conn, first, picture_id) is True
    assert get_picture_usage_count(conn, picture_id) == 1
    assert get_picture(conn, picture_id) is not None


def test_cleanup_removes_unreferenced_pictures_and_files(conn, timeline_id, media_root,
                                                         make_image, two_items):
    first, second = two_items
    kept = save_new_image(conn, timeline_id, media_root, make_image('kept.png'))
    orphan = save_new_image(conn, timeline_id, media_root,
                            make_image('orphan.png', color=(1, 2, 3)))
    add_image_reference(conn, first, kept.id)
    add_image_reference(conn, second, orphan.id)
    remove_image_reference(conn, second, orphan.id)

    assert cleanup_orphaned_images(conn) == 1
    assert get_picture(conn, orphan.id) is None
    assert not os.path.exists(orphan.file_path)
    assert get_picture(conn, kept.id) is not None
    assert os.path.exists(kept.file_path)
    assert cleanup_orphaned_images(conn) == 0


def test_cleanup_tolerates_missing_files(conn):
    insert_picture(conn, {'file_path': '/does/not/exist.png'})
    assert cleanup_orphaned_images(conn) == 1
    assert count_rows(conn, 'pictures') == 0


def test_get_all_pictures_filters_missing_files(conn, timeline_id, media_root, make_image,
                                                two_items):
    first, second = two_items
    present = save_new_image(conn, timeline_id, media_root, make_image('present.png'))
    missing = save_new_image(conn, timeline_id, media_root,
                             make_image('missing.png', color=(9, 9, 9)))
    for item_id in (first, second):
        add_image_reference(conn, item_id, present.id)
    add_image_reference(conn, first, missing.id)
    os.remove(missing.file_path)

    pictures = get_all_pictures(conn, timeline_id)
    assert [p.id for p in pictures] == [present.id]
    assert pictures[0].usage_count == 2
    assert sorted(pictures[0].linked_items) == sorted([first, second])


def test_update_picture_description(conn):
    picture_id = insert_picture(conn, {'file_path': '/x.png'})
    assert update_picture_description(conn, picture_id, 'new words') is True
    assert get_picture(conn, picture_id).description == 'new words'


def test_delete_picture_removes_references_and_file(conn, timeline_id, media_root, make_image,
                                                    two_items):
    first, _ = two_items
    picture = save_new_image(conn, timeline_id, media_root, make_image())
    add_image_reference(conn, first, picture.id)

    assert delete_picture(conn, picture.id) is True
    assert get_picture_usage_count(conn, picture.id) == 0
    assert get_picture(conn, picture.id) is None
    assert not os.path.exists(picture.file_path)
    assert delete_picture(conn, picture.id) is False


def test_item_pictures_can_reference_existing_pictures(conn, timeline_id, media_root,
                                                       make_image):
    first = add_item(conn, timeline_id, {'title': 'a', 'year': 1, 'subtick': 0,
                                         'pictures': [{'temp_path': make_image()}]},
                     media_root=media_root)
    picture = get_item(conn, first).pictures[0]

    second = add_item(conn, timeline_id, {
        'title': 'b', 'year': 2, 'subtick': 0,
        'pictures': [{'id': picture.id, 'is_reference': True}],
    })
    assert [p.id for p in get_item(conn, second).pictures] == [picture.id]
    assert get_picture_usage_count(conn, picture.id) == 2
    assert file_count(os.path.join(media_root, str(timeline_id))) == 1


def test_update_item_pictures_replaces_references(conn, timeline_id, media_root, make_image):
    item_id = add_item(conn, timeline_id, {'title': 'a', 'year': 1, 'subtick': 0,
                                           'pictures': [{'temp_path': make_image()}]},
                       media_root=media_root)
    old = get_item(conn, item_id).pictures[0]

    item = update_item(conn, item_id, {
        'pictures': [{'temp_path': make_image('new.png', color=(0, 255, 0)),
                      'description': 'fresh'}],
    }, media_root=media_root)
    assert len(item.pictures) == 1
    assert item.pictures[0].id != old.id
    assert item.pictures[0].description == 'fresh'
    assert get_picture_usage_count(conn, old.id) == 0

    item = update_item(conn, item_id, {'pictures': [{'id': item.pictures[0].id,
                                                     'is_existing': True,
                                                     'description': 'edited'}]})
    assert item.pictures[0].description == 'edited'


def test_new_pictures_require_media_root(conn, timeline_id, make_image):
    with pytest.raises(MediaError):
        add_item(conn, timeline_id, {'title': 'a', 'year': 1, 'subtick': 0,
                                     'pictures': [{'temp_path': make_image()}]})
    assert count_rows(conn, 'items') == 0


def test_consolidate_duplicate_images(conn, timeline_id, media_root, make_image, two_items):
    first, second = two_items
    master = save_new_image(conn, timeline_id, media_root, make_image('a.png'))
    copy_path = os.path.join(media_root, str(timeline_id), 'copy.png')
    shutil.copyfile(master.file_path, copy_path)
    duplicate_id = insert_picture(conn, {'file_path': copy_path, 'file_name': 'copy.png'})
    unique = save_new_image(conn, timeline_id, media_root,
                            make_image('b.png', color=(5, 5, 5)))

    add_image_reference(conn, first, master.id)
    add_image_reference(conn, first, duplicate_id)
    add_image_reference(conn, second, duplicate_id)
    add_image_reference(conn, second, unique.id)

    stats = consolidate_duplicate_images(conn)

    assert stats['total_images_analyzed'] == 3
    assert stats['duplicate_groups_found'] == 1
    assert stats['duplicates_consolidated'] == 1
    assert stats['references_updated'] == 2
    assert stats['files_deleted'] == 1
    assert get_picture(conn, duplicate_id) is None
    assert not os.path.exists(copy_path)
    assert sorted(p.id for p in get_item(conn, second).pictures) == sorted([master.id, unique.id])
    assert [p.id for p in get_item(conn, first).pictures] == [master.id]


def test_failed_item_import_leaves_no_files(conn, timeline_id, media_root, make_image, tmp_path):
    with pytest.raises(MediaError):
        add_item(conn, timeline_id, {'title': 'a', 'year': 1, 'subtick': 0, 'pictures': [
            {'temp_path': make_image('ok.png')},
            {'temp_path': str(tmp_path / 'missing.png')},
        ]}, media_root=media_root)

    assert count_rows(conn, 'items') == 0
    assert count_rows(conn, 'pictures') == 0
    assert file_count(os.path.join(media_root, str(timeline_id))) == 0
