#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Story Timeline persistence package.

Stores timelines, their settings, dated items, tags, stories, notes,
characters and the pictures attached to them in a single SQLite database.
"""

__version__ = "0.1.0"
