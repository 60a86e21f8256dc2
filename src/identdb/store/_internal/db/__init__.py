"""Database layer for the entity store."""

from identdb.store._internal.db.database import Database

__all__ = ["Database"]
