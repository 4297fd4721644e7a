"""Database package."""

from taskberry.db.base import Base, BaseModel
from taskberry.db.session import DBSession, get_db_session

__all__ = ["Base", "BaseModel", "DBSession", "get_db_session"]
