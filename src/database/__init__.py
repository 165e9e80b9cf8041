"""
Database Package

Async SQLAlchemy persistence for the user → thread mapping.
"""

from src.database.models import Base, ConversationThread
from src.database.session import (
    create_engine_for,
    get_engine,
    get_sessionmaker,
    init_db,
    dispose_db,
    get_db_session,
)

__all__ = [
    "Base",
    "ConversationThread",
    "create_engine_for",
    "get_engine",
    "get_sessionmaker",
    "init_db",
    "dispose_db",
    "get_db_session",
]
