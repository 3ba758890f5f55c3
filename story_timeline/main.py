#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Startup entry points for the Story Timeline application.

The application shell calls open_database() once at launch and keeps the
returned connection for the lifetime of the process.
"""

import os
import logging
import sqlite3
from typing import Optional, Tuple

from story_timeline.config import AppPaths
from story_timeline.db_sqlite import initialize_database

LOG_FILENAME = "story_timeline.log"


def setup_logging(log_dir: str) -> None:
    """Set up logging configuration for the application.

    Configures logging to output to both console and a log file.
    """
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, LOG_FILENAME)

    # Set up root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # File handler for all logs
    file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    # Console handler for info and above
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.info("Logging initialized")


def open_database(user_data_dir: Optional[str] = None,
                  configure_logging: bool = True) -> Tuple[sqlite3.Connection, AppPaths]:
    """Open the application database, upgrading it if needed.

    Args:
        user_data_dir: Data directory override; the configured one otherwise
        configure_logging: Install the file and console log handlers

    Returns:
        The open connection and the resolved paths

    Raises:
        MigrationError: If the schema could not be brought up to date
    """
    paths = AppPaths(user_data_dir)
    paths.ensure_directories()
    if configure_logging:
        setup_logging(paths.log_dir)

    logging.info(f"Opening database at {paths.db_path}")
    conn = initialize_database(paths.db_path, media_root=paths.media_root,
                               create_default_timeline=True)
    return conn, paths
