#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Exceptions raised by the Story Timeline persistence layer.
"""

from typing import Optional


class StoryTimelineError(Exception):
    """Base class for errors raised by this package."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


class MigrationError(StoryTimelineError):
    """A schema migration failed and the database could not be upgraded."""

    def __init__(self, msg: str, migration_name: Optional[str] = None) -> None:
        super().__init__(msg)
        self.migration_name = migration_name

    def __str__(self) -> str:
        if self.migration_name:
            return f"{self.msg} (migration: {self.migration_name})"
        return self.msg


class MediaError(StoryTimelineError):
    """An image file could not be read, decoded or written."""

    def __init__(self, msg: str, filename: Optional[str] = None) -> None:
        super().__init__(msg)
        self.filename = filename

    def __str__(self) -> str:
        if self.filename:
            return f"{self.msg}: {self.filename}"
        return self.msg
