#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration for the Story Timeline application.

This module holds the storage constants and resolves where the database,
media files and logs live on disk. A user override of the data directory is
kept in the application's QSettings store.
"""

import os
from typing import Optional, Union

from PyQt6.QtCore import QSettings, QStandardPaths

ORGANIZATION_NAME = "StoryTimeline"
APP_NAME = "StoryTimeline"

DB_FILENAME = "timeline.db"
MEDIA_SUBDIR = os.path.join("media", "pictures")
LOG_SUBDIR = "logs"

# Image limits applied when a picture is imported
MAX_IMAGE_WIDTH = 1920
MAX_IMAGE_HEIGHT = 1080
MAX_IMAGE_FILE_SIZE = 5 * 1024 * 1024
JPEG_QUALITY = 80

USER_DATA_DIR_KEY = "user_data_dir"


def _settings() -> QSettings:
    return QSettings(ORGANIZATION_NAME, APP_NAME)


def get_user_data_dir() -> str:
    """Get the directory holding the database and media files.

    Returns:
        The stored override if one was saved, otherwise the platform's
        writable data location for the application
    """
    stored = _settings().value(USER_DATA_DIR_KEY)
    if stored:
        return str(stored)

    base = QStandardPaths.writableLocation(
        QStandardPaths.StandardLocation.GenericDataLocation
    )
    if not base:
        return os.path.join(os.path.expanduser("~"), f".{APP_NAME}")
    return os.path.join(base, APP_NAME)


def set_user_data_dir(path: str) -> None:
    """Persist a user data directory override."""
    settings = _settings()
    settings.setValue(USER_DATA_DIR_KEY, os.path.abspath(path))
    settings.sync()


class AppPaths:
    """Filesystem locations derived from the user data directory."""

    def __init__(self, user_data_dir: Optional[str] = None) -> None:
        self.user_data_dir = os.path.abspath(user_data_dir or get_user_data_dir())

    @property
    def db_path(self) -> str:
        return os.path.join(self.user_data_dir, DB_FILENAME)

    @property
    def media_root(self) -> str:
        return os.path.join(self.user_data_dir, MEDIA_SUBDIR)

    @property
    def log_dir(self) -> str:
        return os.path.join(self.user_data_dir, LOG_SUBDIR)

    def timeline_media_dir(self, timeline_id: Union[int, str]) -> str:
        return os.path.join(self.media_root, str(timeline_id))

    def ensure_directories(self) -> None:
        """Create the data, media and log directories if they are missing."""
        for path in (self.user_data_dir, self.media_root, self.log_dir):
            os.makedirs(path, exist_ok=True)

    def __repr__(self) -> str:
        return f"<AppPaths(user_data_dir='{self.user_data_dir}')>"
