#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Script to upgrade and maintain a Story Timeline database.

Opening the database runs every pending migration. Optional flags run the
maintenance passes over picture files and item ordering.
"""

import sys
import logging
import argparse
from typing import List, Optional

from story_timeline.config import AppPaths
from story_timeline.db_sqlite import initialize_database
from story_timeline.errors import MigrationError
from story_timeline.items import reindex_items
from story_timeline.media import cleanup_orphaned_images, consolidate_duplicate_images
from story_timeline.migration_manager import get_completed_migrations


def setup_logging(verbose: bool = False) -> None:
    """Set up logging for the maintenance script."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Upgrade and maintain a Story Timeline database')
    parser.add_argument('--user-data-dir', help='Data directory holding the database and media')
    parser.add_argument('--db-path', help='Path to the database file (overrides --user-data-dir)')
    parser.add_argument('--list', action='store_true', help='List applied migrations')
    parser.add_argument('--cleanup-orphans', action='store_true',
                        help='Delete pictures no item references')
    parser.add_argument('--consolidate-duplicates', action='store_true',
                        help='Merge pictures with identical file contents')
    parser.add_argument('--reindex', action='store_true',
                        help='Rewrite item ordering for every timeline')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug output')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the maintenance script."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    paths = AppPaths(args.user_data_dir)
    db_path = args.db_path or paths.db_path
    logging.info(f"Using database at: {db_path}")

    try:
        conn = initialize_database(db_path, media_root=paths.media_root)
    except MigrationError as e:
        logging.error(f"Database upgrade failed: {e}")
        return 1

    try:
        if args.list:
            for status in get_completed_migrations(conn):
                print(f"{status.version}\t{status.migration_name}\t{status.completed_at}")

        if args.consolidate_duplicates:
            stats = consolidate_duplicate_images(conn)
            logging.info(f"Consolidated {stats['duplicates_consolidated']} duplicate pictures")

        if args.cleanup_orphans:
            removed = cleanup_orphaned_images(conn)
            logging.info(f"Removed {removed} orphaned pictures")

        if args.reindex:
            reindex_items(conn)
            logging.info("Reindexed items")
    finally:
        conn.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
