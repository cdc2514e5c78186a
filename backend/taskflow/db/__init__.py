"""Database package."""

from taskflow.db.base import Base, JSONType
from taskflow.db.session import async_session_factory, get_db_session

__all__ = ["Base", "JSONType", "async_session_factory", "get_db_session"]
