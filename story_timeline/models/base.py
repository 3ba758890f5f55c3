#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Base database models for the Story Timeline application.

The declarative models describe the current table shapes. They are used to
compile the schema DDL and as the record types that query results are mapped
to, so rows never leave the persistence layer as raw sqlite3.Row objects.
"""

import sqlite3
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy import Boolean
from sqlalchemy.orm import declarative_base

# Create the base model class
Base = declarative_base()

# Type variable for model classes
T = TypeVar('T', bound='BaseModel')


class BaseModel(Base):
    """Base model class with common functionality for all records."""

    __abstract__ = True

    # Non-column attributes filled in by joins or enrichment queries
    __extra_fields__: Tuple[str, ...] = ()

    @classmethod
    def from_row(cls: Type[T], row: Optional[sqlite3.Row]) -> Optional[T]:
        """Build a record from a database row.

        Args:
            row: Row returned by a cursor using sqlite3.Row, or None

        Returns:
            A new record, or None when no row was given
        """
        if row is None:
            return None

        instance = cls()
        columns = cls.__table__.columns
        for key in row.keys():
            value = row[key]
            column = columns.get(key)
            if column is not None:
                if value is not None and isinstance(column.type, Boolean):
                    value = bool(value)
                setattr(instance, key, value)
            elif key in cls.__extra_fields__:
                setattr(instance, key, value)
        return instance

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary."""
        result = {}
        for column in self.__table__.columns:
            result[column.name] = getattr(self, column.name)
        for field in self.__extra_fields__:
            value = getattr(self, field, None)
            if isinstance(value, list):
                value = [v.to_dict() if isinstance(v, BaseModel) else v for v in value]
            elif isinstance(value, BaseModel):
                value = value.to_dict()
            result[field] = value
        return result
