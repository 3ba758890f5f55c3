#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Schema migrations for the Story Timeline application.

Each module exposes needs_migration(conn) and migrate(conn, media_root).
The migration manager runs them in order, each in its own transaction.
"""
