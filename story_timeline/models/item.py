#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Item models for the Story Timeline application.

This module defines timeline items and the lookup and junction tables that
hang off them: item types, tags, stories and free-standing notes.
"""

from sqlalchemy import (Boolean, Column, DateTime, ForeignKey, Index, Integer,
                        Text, text)

from story_timeline.models.base import BaseModel

# Fixed item types as (id, name, description)
ITEM_TYPES = [
    (1, 'Event', 'A single point in time'),
    (2, 'Period', 'A span of time with a start and end'),
    (3, 'Age', 'A significant era or age'),
    (4, 'Picture', 'An image on the timeline'),
    (5, 'Note', 'A note or annotation'),
    (6, 'Bookmark', 'A bookmarked position'),
    (7, 'Character', 'A character reference item'),
    (8, 'Timeline_start', 'Marks the start of the timeline'),
    (9, 'Timeline_end', 'Marks the end of the timeline'),
]

EVENT_TYPE_ID = 1
CHARACTER_TYPE_ID = 7
RANGE_TYPE_NAMES = ('Period', 'Age')


class ItemType(BaseModel):
    """Lookup of the kinds of item a timeline can hold."""

    __tablename__ = 'item_types'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)
    description = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    def __repr__(self) -> str:
        return f"<ItemType(id={self.id}, name='{self.name}')>"


class Story(BaseModel):
    """A story that items can reference."""

    __tablename__ = 'stories'

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    def __repr__(self) -> str:
        return f"<Story(id='{self.id}', title='{self.title}')>"


class Item(BaseModel):
    """A dated entry on a timeline."""

    __tablename__ = 'items'
    __table_args__ = (
        Index('idx_items_timeline_id', 'timeline_id'),
        Index('idx_items_year_subtick', 'year', 'subtick'),
        Index('idx_items_type_id', 'type_id'),
        Index('idx_items_item_index', 'item_index'),
        Index('idx_items_story_id', 'story_id'),
    )
    __extra_fields__ = ('type_name', 'tags', 'story_refs', 'pictures', 'character_refs')

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    content = Column(Text)
    story_id = Column(Text, ForeignKey('stories.id'))
    type_id = Column(Integer, ForeignKey('item_types.id'), server_default=text('1'))

    # Position, in subticks of the timeline's granularity
    year = Column(Integer)
    subtick = Column(Integer)
    original_subtick = Column(Integer)
    end_year = Column(Integer)
    end_subtick = Column(Integer)
    original_end_subtick = Column(Integer)
    creation_granularity = Column(Integer)

    book_title = Column(Text)
    chapter = Column(Text)
    page = Column(Text)
    color = Column(Text)
    timeline_id = Column(Integer, ForeignKey('timelines.id', ondelete='CASCADE'))
    item_index = Column(Integer, server_default=text('0'))
    show_in_notes = Column(Boolean, server_default=text('1'))
    importance = Column(Integer, server_default=text('5'))
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    type_name = None
    tags = None
    story_refs = None
    pictures = None
    character_refs = None

    def __repr__(self) -> str:
        return (f"<Item(id='{self.id}', title='{self.title}', "
                f"year={self.year}, subtick={self.subtick})>")


class Tag(BaseModel):
    """A free-form label attached to items."""

    __tablename__ = 'tags'
    __table_args__ = (
        Index('idx_tags_name', 'name'),
    )
    __extra_fields__ = ('item_count', 'item_ids')

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)

    item_count = None
    item_ids = None

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class ItemTag(BaseModel):
    """Junction between items and tags."""

    __tablename__ = 'item_tags'
    __table_args__ = (
        Index('idx_item_tags_item_id', 'item_id'),
        Index('idx_item_tags_tag_id', 'tag_id'),
    )

    item_id = Column(Text, ForeignKey('items.id', ondelete='CASCADE'), primary_key=True)
    tag_id = Column(Integer, ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True)


class ItemStoryRef(BaseModel):
    """Junction between items and the stories they reference."""

    __tablename__ = 'item_story_refs'
    __table_args__ = (
        Index('idx_item_story_refs_item_id', 'item_id'),
        Index('idx_item_story_refs_story_id', 'story_id'),
    )

    item_id = Column(Text, ForeignKey('items.id', ondelete='CASCADE'), primary_key=True)
    story_id = Column(Text, ForeignKey('stories.id', ondelete='CASCADE'), primary_key=True)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    __extra_fields__ = ('story_title',)


class Note(BaseModel):
    """A free-standing note pinned to a point in time."""

    __tablename__ = 'notes'
    __table_args__ = (
        Index('idx_notes_year_subtick', 'year', 'subtick'),
    )

    id = Column(Integer, primary_key=True)
    year = Column(Integer, nullable=False)
    subtick = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, year={self.year}, subtick={self.subtick})>"
