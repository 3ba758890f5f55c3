#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Database models for the Story Timeline application.

This package contains all the SQLAlchemy models used to describe the schema
and to carry query results.
"""

from story_timeline.models.base import Base, BaseModel
from story_timeline.models.timeline import Timeline, TimelineSettings, DEFAULT_SETTINGS
from story_timeline.models.item import (Item, ItemType, Tag, ItemTag, Story,
                                        ItemStoryRef, Note, ITEM_TYPES)
from story_timeline.models.image import Picture, ItemPicture
from story_timeline.models.character import (Character, CharacterRelationship,
                                             ItemCharacter, RELATIONSHIP_TYPES)
from story_timeline.models.migration import MigrationStatus

__all__ = [
    'Base',
    'BaseModel',
    'Timeline',
    'TimelineSettings',
    'DEFAULT_SETTINGS',
    'Item',
    'ItemType',
    'Tag',
    'ItemTag',
    'Story',
    'ItemStoryRef',
    'Note',
    'ITEM_TYPES',
    'Picture',
    'ItemPicture',
    'Character',
    'CharacterRelationship',
    'ItemCharacter',
    'RELATIONSHIP_TYPES',
    'MigrationStatus',
]
