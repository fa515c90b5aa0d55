"""Utility modules."""

from chesswager.utils.db import engine, get_db, get_db_session

__all__ = [
    "get_db",
    "get_db_session",
    "engine",
]
