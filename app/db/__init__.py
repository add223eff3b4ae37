"""Database package - all database-related code."""
from app.db.connection import init_db, get_db_session, close_db
from app.db.models import Base

__all__ = [
    "init_db",
    "get_db_session",
    "close_db",
    "Base",
]
