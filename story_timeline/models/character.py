#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Character models for the Story Timeline application.

This module defines characters, the relationships between them and the
references that timeline items make to characters.
"""

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, ForeignKey,
                        Integer, Text, UniqueConstraint, text)

from story_timeline.models.base import BaseModel

# Allowed values of character_relationships.relationship_type
RELATIONSHIP_TYPES = (
    # Family
    'parent', 'child', 'sibling', 'spouse', 'partner', 'ex-spouse', 'ex-partner',
    'grandparent', 'grandchild', 'great-grandparent', 'great-grandchild',
    'great-great-grandparent', 'great-great-grandchild',
    'aunt', 'uncle', 'niece', 'nephew', 'cousin',
    'great-aunt', 'great-uncle', 'great-niece', 'great-nephew',
    'step-parent', 'step-child', 'step-sibling', 'half-sibling',
    'step-grandparent', 'step-grandchild',
    'parent-in-law', 'child-in-law', 'sibling-in-law',
    'grandparent-in-law', 'grandchild-in-law',
    'adoptive-parent', 'adoptive-child', 'adoptive-sibling',
    'foster-parent', 'foster-child', 'foster-sibling',
    'biological-parent', 'biological-child',
    'godparent', 'godchild',
    # Social
    'mentor', 'apprentice', 'guardian', 'ward',
    'best-friend', 'friend', 'ally', 'enemy', 'rival', 'acquaintance',
    'colleague', 'neighbor',
    # Fantasy and feudal
    'familiar', 'bonded', 'master', 'servant', 'liege', 'vassal',
    'clan-member', 'pack-member',
    'custom', 'other',
)

_RELATIONSHIP_CHECK = "relationship_type IN ({})".format(
    ', '.join(f"'{value}'" for value in RELATIONSHIP_TYPES)
)


class Character(BaseModel):
    """A character belonging to one timeline."""

    __tablename__ = 'characters'
    __extra_fields__ = ('images', 'tags', 'story_refs')

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    nicknames = Column(Text)
    aliases = Column(Text)
    race = Column(Text)
    description = Column(Text)
    notes = Column(Text)
    birth_year = Column(Integer)
    birth_subtick = Column(Integer)
    birth_date = Column(Text)
    birth_alternative_year = Column(Text)
    death_year = Column(Integer)
    death_subtick = Column(Integer)
    death_date = Column(Text)
    death_alternative_year = Column(Text)
    importance = Column(Integer, server_default=text('5'))
    color = Column(Text)
    timeline_id = Column(Integer, ForeignKey('timelines.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    images = None
    tags = None
    story_refs = None

    def __repr__(self) -> str:
        return f"<Character(id='{self.id}', name='{self.name}')>"


class CharacterRelationship(BaseModel):
    """A typed relationship between two characters."""

    __tablename__ = 'character_relationships'
    __table_args__ = (
        CheckConstraint(_RELATIONSHIP_CHECK),
    )
    __extra_fields__ = ('character_1_name', 'character_2_name')

    id = Column(Integer, primary_key=True)
    character_1_id = Column(Text, ForeignKey('characters.id', ondelete='CASCADE'), nullable=False)
    character_2_id = Column(Text, ForeignKey('characters.id', ondelete='CASCADE'), nullable=False)
    relationship_type = Column(Text, nullable=False)
    custom_relationship_type = Column(Text)
    relationship_degree = Column(Text)
    relationship_modifier = Column(Text)
    relationship_strength = Column(Integer, server_default=text('50'))
    is_bidirectional = Column(Boolean, server_default=text('0'))
    notes = Column(Text)
    timeline_id = Column(Integer, ForeignKey('timelines.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    character_1_name = None
    character_2_name = None

    def __repr__(self) -> str:
        return (f"<CharacterRelationship(id={self.id}, {self.character_1_id} "
                f"-{self.relationship_type}-> {self.character_2_id})>")


class ItemCharacter(BaseModel):
    """Reference from a timeline item to a character."""

    __tablename__ = 'item_characters'
    __table_args__ = (
        UniqueConstraint('item_id', 'character_id'),
    )
    __extra_fields__ = ('character_name', 'character_color', 'item_title')

    id = Column(Integer, primary_key=True)
    item_id = Column(Text, ForeignKey('items.id', ondelete='CASCADE'), nullable=False)
    character_id = Column(Text, ForeignKey('characters.id', ondelete='CASCADE'), nullable=False)
    relationship_type = Column(Text, server_default=text("'appears'"))
    timeline_id = Column(Integer, ForeignKey('timelines.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    character_name = None
    character_color = None
    item_title = None
