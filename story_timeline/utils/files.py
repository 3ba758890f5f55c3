#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
File helpers for picture storage.
"""

import os
import time
import shutil
import string
import secrets
import hashlib
import logging
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

_ALPHANUMERIC = string.ascii_letters + string.digits


def random_token(length: int = 16) -> str:
    """Generate a random alphanumeric string."""
    return ''.join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def unique_image_name(extension: str) -> str:
    """Build a collision-resistant file name: img_<millis>_<random><ext>."""
    if extension and not extension.startswith('.'):
        extension = f'.{extension}'
    return f"img_{int(time.time() * 1000)}_{random_token(9).lower()}{extension.lower()}"


def file_sha256(path: str, chunk_size: int = 65536) -> str:
    """Hash a file's contents with SHA-256."""
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b''):
            digest.update(chunk)
    return digest.hexdigest()


def remove_files(paths: Iterable[Optional[str]]) -> int:
    """Delete files, logging and skipping the ones that cannot be removed.

    Returns:
        Number of files actually deleted
    """
    removed = 0
    for path in paths:
        if not path:
            continue
        try:
            os.remove(path)
            removed += 1
            logger.debug(f"Deleted file {path}")
        except FileNotFoundError:
            logger.warning(f"File already missing: {path}")
        except OSError as e:
            logger.error(f"Error deleting file {path}: {e}")
    return removed


def remove_directory(path: str) -> None:
    """Delete a directory tree, logging instead of raising on failure."""
    if not os.path.isdir(path):
        return
    try:
        shutil.rmtree(path)
        logger.info(f"Deleted media directory {path}")
    except OSError as e:
        logger.error(f"Error deleting directory {path}: {e}")
