#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Picture models for the Story Timeline application.

Pictures are stored once and shared between items through the item_pictures
junction table; a picture's lifetime is governed by its reference count.
"""

import os

from sqlalchemy import (Column, DateTime, ForeignKey, Index, Integer, Text,
                        UniqueConstraint, text)

from story_timeline.models.base import BaseModel


class Picture(BaseModel):
    """Metadata for an image file kept under the media root."""

    __tablename__ = 'pictures'
    __extra_fields__ = ('usage_count', 'linked_items')

    id = Column(Integer, primary_key=True)
    file_path = Column(Text)
    file_name = Column(Text)
    file_size = Column(Integer)
    file_type = Column(Text)
    width = Column(Integer)
    height = Column(Integer)
    title = Column(Text)
    description = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    usage_count = None
    linked_items = None

    def __repr__(self) -> str:
        return f"<Picture(id={self.id}, file_name='{self.file_name}')>"

    @property
    def file_exists(self) -> bool:
        """Whether the backing file exists and can be read."""
        return bool(self.file_path) and os.path.isfile(self.file_path) \
            and os.access(self.file_path, os.R_OK)


class ItemPicture(BaseModel):
    """Reference from an item to a shared picture."""

    __tablename__ = 'item_pictures'
    __table_args__ = (
        UniqueConstraint('item_id', 'picture_id'),
        Index('idx_item_pictures_item_id', 'item_id'),
        Index('idx_item_pictures_picture_id', 'picture_id'),
        Index('idx_item_pictures_combined', 'item_id', 'picture_id'),
    )

    id = Column(Integer, primary_key=True)
    item_id = Column(Text, ForeignKey('items.id', ondelete='CASCADE'), nullable=False)
    picture_id = Column(Integer, ForeignKey('pictures.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
