#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Bookkeeping model for applied schema migrations.
"""

from sqlalchemy import Column, DateTime, Integer, Text, text

from story_timeline.models.base import BaseModel


class MigrationStatus(BaseModel):
    """One row per migration that has been applied to the database."""

    __tablename__ = 'migration_status'
    __table_args__ = {'sqlite_autoincrement': True}

    id = Column(Integer, primary_key=True)
    migration_name = Column(Text, nullable=False, unique=True)
    version = Column(Integer)
    completed_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    def __repr__(self) -> str:
        return f"<MigrationStatus(migration_name='{self.migration_name}', version={self.version})>"
