#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Timeline models for the Story Timeline application.

This module defines the Timeline and TimelineSettings models.
"""

from sqlalchemy import (Boolean, Column, DateTime, Float, ForeignKey, Integer,
                        Text, UniqueConstraint, text)

from story_timeline.models.base import BaseModel

DEFAULT_GRANULARITY = 4

DEFAULT_SETTINGS = {
    'font': 'Arial',
    'font_size_scale': 1.0,
    'pixels_per_subtick': 20,
    'custom_css': '',
    'use_custom_css': False,
    'is_fullscreen': False,
    'show_guides': True,
    'window_size_x': 1000,
    'window_size_y': 700,
    'window_position_x': 300,
    'window_position_y': 100,
    'use_custom_scaling': False,
    'custom_scale': 1.0,
    'display_radius': 10,
}


class Timeline(BaseModel):
    """A named timeline; the root of every item, character and setting."""

    __tablename__ = 'timelines'
    __table_args__ = (
        UniqueConstraint('title', 'author'),
        {'sqlite_autoincrement': True},
    )
    __extra_fields__ = ('min_year', 'max_year', 'item_count', 'year_range', 'settings')

    id = Column(Integer, primary_key=True)
    title = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    description = Column(Text)
    start_year = Column(Integer, server_default=text('0'))
    granularity = Column(Integer, server_default=text(str(DEFAULT_GRANULARITY)))
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    # Listing aggregates
    min_year = None
    max_year = None
    item_count = None
    year_range = None

    settings = None

    def __repr__(self) -> str:
        return f"<Timeline(id={self.id}, title='{self.title}', granularity={self.granularity})>"


class TimelineSettings(BaseModel):
    """Display settings, one row per timeline."""

    __tablename__ = 'settings'

    id = Column(Integer, primary_key=True)
    timeline_id = Column(Integer, ForeignKey('timelines.id', ondelete='CASCADE'))
    font = Column(Text, server_default=text("'Arial'"))
    font_size_scale = Column(Float, server_default=text('1.0'))
    pixels_per_subtick = Column(Integer, server_default=text('20'))
    custom_css = Column(Text)
    use_custom_css = Column(Boolean, server_default=text('0'))
    is_fullscreen = Column(Boolean, server_default=text('0'))
    show_guides = Column(Boolean, server_default=text('1'))
    window_size_x = Column(Integer, server_default=text('1000'))
    window_size_y = Column(Integer, server_default=text('700'))
    window_position_x = Column(Integer, server_default=text('300'))
    window_position_y = Column(Integer, server_default=text('100'))
    use_custom_scaling = Column(Boolean, server_default=text('0'))
    custom_scale = Column(Float, server_default=text('1.0'))
    display_radius = Column(Integer, server_default=text('10'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    def __repr__(self) -> str:
        return f"<TimelineSettings(timeline_id={self.timeline_id}, font='{self.font}')>"
