"""
Database Module
"""
from .connection import (
    build_engine,
    build_session_factory,
    close_database,
    create_tables,
    get_db,
    get_session_factory,
    init_database,
    session_scope,
)
from .models import Base

__all__ = [
    "build_engine",
    "build_session_factory",
    "close_database",
    "create_tables",
    "get_db",
    "get_session_factory",
    "init_database",
    "session_scope",
    "Base",
]
